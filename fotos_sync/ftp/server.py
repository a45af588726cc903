"""FTP ingress server: one album, one user, one listener at a time."""

import json
import logging
import os
import threading
from typing import Any, Callable, Dict, List, Optional

from pyftpdlib.authorizers import AuthenticationFailed, DummyAuthorizer
from pyftpdlib.handlers import FTPHandler
from pyftpdlib.ioloop import IOLoop
from pyftpdlib.servers import FTPServer

from fotos_sync.config import AppConfig
from fotos_sync.ftp.session import (
    PASSWORD_PATTERN,
    FtpSession,
    SessionRegistry,
    generate_password,
    normalize_username,
)
from fotos_sync.ingest.pipeline import IngestionPipeline
from fotos_sync.ingest.watcher import DirectoryWatcher
from fotos_sync.models import FtpServerError, Result
from fotos_sync.sync.engine import SyncEngine
from fotos_sync.utils.network import find_available_port, get_lan_address

logger = logging.getLogger(__name__)

# Read and write, but no SITE CHMOD.
SESSION_PERMS = "elradfmwT"


class SessionAuthorizer(DummyAuthorizer):
    """Authorizes logins against the registry's active session."""

    def __init__(self, registry: SessionRegistry):
        super().__init__()
        self.registry = registry

    def validate_authentication(self, username, password, handler):
        logger.info("FTP login attempt for %s", username)
        if self.registry.authenticate(username, password) is None:
            logger.error("FTP login failed: invalid credentials for %s", normalize_username(username))
            raise AuthenticationFailed("Invalid credentials")

    def get_home_dir(self, username):
        session = self.registry.lookup(username)
        if session is None:
            raise AuthenticationFailed("Session closed")
        logger.info("FTP login successful for %s, root %s", session.username, session.directory)
        return session.directory

    def has_user(self, username):
        return self.registry.lookup(username) is not None

    def has_perm(self, username, perm, path=None):
        return self.has_user(username) and perm in SESSION_PERMS

    def get_perms(self, username):
        return SESSION_PERMS if self.has_user(username) else ""

    def get_msg_login(self, username):
        return "Login successful."

    def get_msg_quit(self, username):
        return "Goodbye."


class IngressHandler(FTPHandler):
    """FTP command handler that logs transfers."""

    banner = "Welcome to FTP server"

    def on_login(self, username):
        logger.info("FTP client %s logged in as %s", self.remote_ip, username)

    def on_file_received(self, file):
        logger.info("FTP file upload completed: %s", file)

    def on_incomplete_file_received(self, file):
        logger.warning("FTP file upload incomplete: %s", file)


class _ServerThread(threading.Thread):
    """Runs a pyftpdlib server's IO loop until stopped."""

    def __init__(self, server: FTPServer, poll_interval: float = 0.1):
        super().__init__(name="ftp-ingress", daemon=True)
        self.server = server
        self.poll_interval = poll_interval
        self._stop_event = threading.Event()

    def run(self):
        try:
            while not self._stop_event.is_set():
                self.server.serve_forever(timeout=self.poll_interval, blocking=False, handle_exit=False)
        finally:
            self.server.close_all()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self.is_alive():
            self.join(timeout)


class FtpIngressServer:
    """Owns the FTP listener, its session registry and the directory watcher."""

    def __init__(
        self,
        config: AppConfig,
        pipeline: IngestionPipeline,
        sync_engine: SyncEngine,
        registry: Optional[SessionRegistry] = None,
        server_factory: Callable[..., FTPServer] = FTPServer,
        watcher_factory: Callable[..., DirectoryWatcher] = DirectoryWatcher,
        address_resolver: Callable[[], str] = get_lan_address,
        port_finder: Callable[[int, int], int] = find_available_port,
    ):
        self.config = config
        self.pipeline = pipeline
        self.sync_engine = sync_engine
        self.registry = registry or SessionRegistry()
        self.password = config.default_ftp_password
        self._server_factory = server_factory
        self._watcher_factory = watcher_factory
        self._address_resolver = address_resolver
        self._port_finder = port_finder
        self._lock = threading.RLock()
        self._thread: Optional[_ServerThread] = None
        self._watcher: Optional[DirectoryWatcher] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None

    # Password file

    def load_password(self) -> str:
        """Load the saved FTP password, creating the file with the default if missing."""
        try:
            with open(self.config.password_file, "r", encoding="utf-8") as f:
                password = json.load(f).get("password")
        except FileNotFoundError:
            logger.info("Password file not found, initializing with default")
            self.save_password(self.config.default_ftp_password)
            self.password = self.config.default_ftp_password
            return self.password
        except (OSError, ValueError, AttributeError) as e:
            logger.error("Failed to load FTP password: %s", e)
            return self.password

        if password and PASSWORD_PATTERN.match(password):
            self.password = password
            logger.info("Loaded FTP password from file")
        else:
            logger.warning("Invalid password in file, using default")
        return self.password

    def save_password(self, password: str) -> None:
        try:
            os.makedirs(os.path.dirname(self.config.password_file), exist_ok=True)
            with open(self.config.password_file, "w", encoding="utf-8") as f:
                json.dump({"password": password}, f)
            logger.info("Saved FTP password to file")
        except OSError as e:
            logger.error("Failed to save FTP password: %s", e)

    # Lifecycle

    def _details(self) -> Dict[str, Any]:
        session = self.registry.session
        return session.connection_details(self.registry.host, self.registry.port)

    def _make_handler(self, host: str) -> type:
        handler = type("BoundIngressHandler", (IngressHandler,), {})
        handler.authorizer = SessionAuthorizer(self.registry)
        handler.passive_ports = self.config.ftp_passive_ports
        if host != "localhost":
            handler.masquerade_address = host
        return handler

    def _on_file(self, file_path: str) -> None:
        session = self.registry.session
        if session is None:
            logger.info("No active session, ignoring %s", file_path)
            return
        self.pipeline.handle_file(file_path, session)

    def _shutdown(self) -> None:
        thread, self._thread = self._thread, None
        watcher, self._watcher = self._watcher, None
        if watcher is not None:
            watcher.stop()
        if thread is not None:
            thread.stop()

    def _listen(self, host: str, port: int, directory: str) -> None:
        """Bring up the listener thread and the directory watcher.

        Raises:
            FtpServerError: If either fails to start; nothing is left running
        """
        server = None
        try:
            server = self._server_factory(
                (self.config.ftp_bind_address, port), self._make_handler(host), ioloop=IOLoop()
            )
            self._thread = _ServerThread(server)
            self._thread.start()
            self._watcher = self._watcher_factory(
                directory, self._on_file, debounce=self.config.debounce_seconds
            )
            self._watcher.start()
        except Exception as e:
            if self._thread is None and server is not None:
                server.close_all()
            self._shutdown()
            raise FtpServerError(f"Failed to start FTP server: {e}") from e

    def start(
        self,
        username: str,
        directory: str,
        album_id: str,
        album_name: str,
        auth_token: str,
        cloud_sync_enabled: bool = False,
    ) -> Result:
        """Start serving an album over FTP.

        A call matching the running session returns its details without
        restarting anything. Any other call replaces the running listener.

        Returns:
            Result whose data holds host, username, password, port and mode
        """
        normalized = normalize_username(username)
        if not normalized or not directory or not album_id or not album_name or not auth_token:
            logger.error("Missing parameters for FTP server")
            return Result.fail(
                error="Username, directory, album ID, album name, and token are required"
            )

        absolute_dir = os.path.abspath(directory)
        if not os.path.exists(absolute_dir):
            logger.error("Directory inaccessible: %s", directory)
            return Result.fail(error="Directory does not exist or is inaccessible")
        if not os.path.isdir(absolute_dir):
            logger.error("Selected path is not a directory: %s", directory)
            return Result.fail(error="Selected path is not a directory")

        session = FtpSession(
            username=normalized,
            password=self.password,
            directory=absolute_dir,
            album_id=album_id,
            album_name=album_name,
            auth_token=auth_token,
            cloud_sync_enabled=bool(cloud_sync_enabled),
        )

        with self._lock:
            current = self.registry.session
            if self.is_running and current is not None and current.same_binding(session):
                self.registry.update(
                    normalized, auth_token=auth_token, cloud_sync_enabled=bool(cloud_sync_enabled)
                )
                logger.info("FTP server already running with matching credentials for %s", normalized)
                return Result.ok(data=self._details())

            if self.is_running:
                self._shutdown()
                logger.info("Closed existing FTP server to start new one")

            host = self._address_resolver()
            try:
                port = self._port_finder(self.config.ftp_port, self.config.ftp_port_attempts)
            except OSError as e:
                logger.error("Failed to find available port for FTP: %s", e)
                self.registry.clear()
                return Result.fail(error="Failed to find available port for FTP server")
            logger.info("Selected FTP port: %d", port)

            self.registry.activate(session, host, port)
            try:
                self._listen(host, port, absolute_dir)
            except FtpServerError as e:
                logger.error("FTP Server failed to start: %s", e)
                self.registry.clear()
                return Result.fail(error=str(e))

        logger.info("FTP Server running on ftp://%s:%d", host, port)
        return Result.ok(data=self._details())

    def close(self) -> Result:
        """Stop the listener and watcher; a no-op when nothing is running."""
        with self._lock:
            if not self.is_running:
                logger.info("No FTP server running")
                return Result.ok(message="No FTP server running")
            self._shutdown()
        logger.info("FTP server closed successfully")
        return Result.ok(message="FTP server closed successfully")

    def reset_credentials(self) -> Result:
        """Forget the session and dedup state and stop serving."""
        with self._lock:
            self.registry.clear()
            self.pipeline.reset()
            self._shutdown()
        logger.info("Credentials and servers reset")
        return Result.ok(message="Credentials reset successfully")

    def regenerate_password(self, username: str) -> Result:
        """Issue a new password, persist it and apply it to the session."""
        normalized = normalize_username(username)
        new_password = generate_password()
        self.password = new_password
        self.save_password(new_password)
        self.registry.set_password(normalized, new_password)
        logger.info("New FTP password generated for %s", normalized)
        return Result.ok(data={"password": new_password})

    def test_credentials(self, username: str, password: str) -> Result:
        valid = self.registry.authenticate(username, password) is not None
        if valid:
            logger.info("Test credentials successful for %s", normalize_username(username))
        else:
            logger.error("Test credentials failed for %s", normalize_username(username))
        return Result.ok(data={"valid": valid})

    def get_credentials(self) -> List[Dict[str, Any]]:
        """Connection details of the running session, if any."""
        session = self.registry.session
        if not self.is_running or session is None:
            return []
        details = self._details()
        details.update(
            directory=session.directory, albumId=session.album_id, albumName=session.album_name
        )
        return [details]

    def status(self) -> Dict[str, Any]:
        credentials = self.get_credentials()
        if not self.is_running:
            logger.info("FTP server is not running")
        return {"isRunning": self.is_running, "credentials": credentials}

    def update_cloud_sync(self, username: str, cloud_sync_enabled: bool) -> Result:
        """Toggle cloud sync for the session; enabling it drains the sync queue."""
        normalized = normalize_username(username)
        logger.info("Updating cloud sync for %s: %s", normalized, cloud_sync_enabled)
        self.registry.update(normalized, cloud_sync_enabled=bool(cloud_sync_enabled))
        if cloud_sync_enabled:
            logger.info("Triggering album sync due to cloud sync enabled")
            self.sync_engine.sync_albums()
        state = "enabled" if cloud_sync_enabled else "disabled"
        return Result.ok(message=f"Cloud sync {state}")
