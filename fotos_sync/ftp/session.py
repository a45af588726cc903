"""The single active FTP ingestion session."""

import logging
import re
import secrets
import string
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

PASSWORD_ALPHABET = string.ascii_lowercase + string.digits
PASSWORD_LENGTH = 5
PASSWORD_PATTERN = re.compile(r"^[a-z0-9]{5}$")


def normalize_username(username: Optional[str]) -> str:
    """Strip all whitespace from a username."""
    return re.sub(r"\s+", "", username or "")


def generate_password() -> str:
    """Generate a short lowercase alphanumeric FTP password."""
    return "".join(secrets.choice(PASSWORD_ALPHABET) for _ in range(PASSWORD_LENGTH))


@dataclass(frozen=True)
class FtpSession:
    """Credentials and album binding for the album currently ingesting."""
    username: str
    password: str
    directory: str
    album_id: str
    album_name: str
    auth_token: str
    cloud_sync_enabled: bool = False

    def same_binding(self, other: "FtpSession") -> bool:
        """Check whether two sessions serve the same user, directory and album."""
        return (
            self.username == other.username
            and self.directory == other.directory
            and self.album_id == other.album_id
            and self.album_name == other.album_name
        )

    def connection_details(self, host: str, port: int) -> Dict[str, Any]:
        return {
            "host": host,
            "username": self.username,
            "password": self.password,
            "port": port,
            "mode": "Passive",
        }


class SessionRegistry:
    """Holds the one active session plus the host and port it is served on.

    Replaced wholesale on every start; all collaborators read it through this
    object, never through their own copies.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._session: Optional[FtpSession] = None
        self.host: Optional[str] = None
        self.port: Optional[int] = None

    @property
    def session(self) -> Optional[FtpSession]:
        with self._lock:
            return self._session

    def activate(self, session: FtpSession, host: str, port: int) -> None:
        with self._lock:
            self._session = session
            self.host = host
            self.port = port
        logger.info("Stored credentials for %s (album %s)", session.username, session.album_name)

    def clear(self) -> None:
        with self._lock:
            self._session = None
            self.host = None
            self.port = None

    def _matching(self, username: str) -> Optional[FtpSession]:
        session = self._session
        if session is None or session.username != normalize_username(username):
            return None
        return session

    def lookup(self, username: str) -> Optional[FtpSession]:
        with self._lock:
            return self._matching(username)

    def authenticate(self, username: str, password: str) -> Optional[FtpSession]:
        """Return the session if the credentials match it, else None."""
        with self._lock:
            session = self._matching(username)
            if session is None or not secrets.compare_digest(
                session.password.encode("utf-8"), (password or "").encode("utf-8")
            ):
                return None
            return session

    def set_password(self, username: str, password: str) -> bool:
        with self._lock:
            session = self._matching(username)
            if session is None:
                return False
            self._session = replace(session, password=password)
            return True

    def update(self, username: str, **changes: Any) -> bool:
        """Change fields of the active session in place (token, cloud sync flag)."""
        with self._lock:
            session = self._matching(username)
            if session is None:
                return False
            self._session = replace(session, **changes)
            return True
