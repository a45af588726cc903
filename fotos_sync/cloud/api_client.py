"""Client for the remote metadata REST API."""

import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from fotos_sync.models import ApiError

logger = logging.getLogger(__name__)


class ApiClient:
    """Thin JSON client over the backend's REST endpoints.

    The bearer token is looked up on every request, so a login or logout
    takes effect without rebuilding the client.
    """

    def __init__(
        self,
        base_url: str,
        token_provider: Callable[[], Optional[str]],
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the API client.

        Args:
            base_url: Server root, e.g. https://example.com
            token_provider: Returns the current auth token or None
            timeout: Per-request timeout in seconds
            session: Optional requests session to reuse
        """
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        headers = {"Accept": "application/json"}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method, url, json=payload, headers=headers, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise ApiError(f"{method} {path} failed: {e}") from e

        try:
            body = response.json() if response.content else None
        except ValueError:
            body = None

        if response.status_code >= 400:
            message = body.get("error") if isinstance(body, dict) else None
            raise ApiError(
                f"{method} {path} returned {response.status_code}: "
                f"{message or response.reason or 'Unknown error'}"
            )

        logger.debug("%s %s -> %d", method, path, response.status_code)
        return body

    # Albums

    def list_albums(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/albums") or []

    def create_album(self, album: Dict[str, Any]) -> Any:
        return self._request("POST", "/api/albums", album)

    def update_album(self, album_id: str, fields: Dict[str, Any]) -> Any:
        return self._request("PUT", f"/api/albums/{album_id}", fields)

    def delete_album(self, album_id: str) -> Any:
        return self._request("DELETE", f"/api/albums/{album_id}")

    # Photos

    def register_photo(self, fields: Dict[str, Any]) -> Any:
        """Record an uploaded image URL against an album."""
        body = self._request("POST", "/api/upload-photo", fields)
        if body is None:
            raise ApiError("Failed to save photo to server: empty response")
        return body

    def delete_photo(self, photo_id: str) -> Any:
        return self._request("DELETE", f"/api/photos/{photo_id}")

    def list_cloud_photos(self, album_id: str) -> List[Dict[str, Any]]:
        body = self._request("GET", f"/api/photos/sync-cloud/{album_id}") or {}
        return body.get("photos", [])

    # Auth

    def login(self, email: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/api/auth/login", {"email": email, "password": password})

    def register(self, user: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/auth/register", user)

    def send_email_otp(self, email: str) -> Any:
        return self._request("POST", "/api/auth/send-email-otp", {"email": email})

    def verify_email_otp(self, email: str, otp: str) -> Any:
        return self._request("POST", "/api/auth/verify-email-otp", {"email": email, "otp": otp})

    def forgot_password(self, email: str, otp: str, new_password: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/api/auth/forgot-password",
            {"email": email, "otp": otp, "newPassword": new_password},
        )
