"""Authentication utilities for the fotos backend."""

import logging
import time
from typing import Any, Callable, Dict

from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.database.models import OperationKind, UserSession
from fotos_sync.database.record_store import RecordStore
from fotos_sync.models import FotosSyncError, Result

logger = logging.getLogger(__name__)

OFFLINE_TOKEN = "offline-token"


def session_from_response(response: Dict[str, Any]) -> UserSession:
    """Build the stored session from an auth endpoint's response body.

    Args:
        response: Body holding ``user`` and ``token``

    Returns:
        UserSession carrying the token

    Raises:
        KeyError: If the body has no user id
    """
    user = response["user"]
    return UserSession(
        id=str(user["id"]),
        name=user.get("name") or "",
        email=user.get("email") or "",
        phone=user.get("phone") or "",
        email_verified=bool(user.get("emailVerified")),
        auth_token=response.get("token"),
        trial_start=user.get("trialStart") or response.get("trialStart"),
        subscription_end=user.get("subscriptionEnd"),
    )


class AuthService:
    """Logs users in and out and keeps user.json in step with the backend."""

    def __init__(self, store: RecordStore, api: ApiClient, is_online: Callable[[], bool]):
        self.store = store
        self.api = api
        self.is_online = is_online

    def current_user(self):
        return self.store.load_user()

    def _save_session(self, response: Dict[str, Any]) -> Result:
        try:
            session = session_from_response(response)
        except (KeyError, TypeError) as e:
            return Result.fail(error=f"Malformed auth response: {e}")
        self.store.save_user(session)
        return Result.ok(data=session)

    def login(self, email: str, password: str) -> Result:
        try:
            self.store.ensure_structure()
            response = self.api.login(email.strip(), password.strip())
            return self._save_session(response)
        except FotosSyncError as e:
            logger.error("Login error: %s", e)
            return Result.fail(error="Invalid email or password")

    def register(
        self,
        first_name: str,
        last_name: str,
        email: str,
        password: str,
        phone: str = "",
        email_verified: bool = False,
    ) -> Result:
        """Register a user, or create an offline session and queue the registration."""
        user_data = {
            "firstName": first_name.strip(),
            "lastName": last_name.strip(),
            "email": email.strip(),
            "password": password.strip(),
            "phone": phone.strip(),
            "emailVerified": email_verified,
        }
        try:
            self.store.ensure_structure()
            if self.is_online():
                return self._save_session(self.api.register(user_data))

            offline = UserSession(
                id=str(int(time.time() * 1000)),
                name=f"{user_data['firstName']} {user_data['lastName']}",
                email=user_data["email"],
                phone=user_data["phone"],
                email_verified=email_verified,
                auth_token=OFFLINE_TOKEN,
            )
            self.store.save_user(offline)
            self.store.enqueue(OperationKind.REGISTER_USER, {"userData": user_data})
            return Result.ok(data=offline, message="Registration queued for sync")
        except FotosSyncError as e:
            logger.error("Registration error: %s", e)
            return Result.fail(error=str(e) or "Registration failed")

    def send_email_otp(self, email: str) -> Result:
        try:
            self.api.send_email_otp(email.strip())
        except FotosSyncError as e:
            logger.error("Send OTP error: %s", e)
            return Result.fail(error="Failed to send OTP")
        return Result.ok(message="OTP sent successfully")

    def verify_email_otp(self, email: str, otp: str) -> Result:
        try:
            response = self.api.verify_email_otp(email.strip(), otp.strip())
        except FotosSyncError as e:
            logger.error("Verify OTP error: %s", e)
            return Result.fail(error="OTP verification failed")
        message = response.get("message") if isinstance(response, dict) else None
        return Result.ok(message=message or "OTP verified successfully")

    def forgot_password(self, email: str, otp: str, new_password: str) -> Result:
        """Reset a password, or queue the reset while offline."""
        try:
            self.store.ensure_structure()
            if self.is_online():
                return self._save_session(
                    self.api.forgot_password(email.strip(), otp.strip(), new_password.strip())
                )
            self.store.enqueue(
                OperationKind.RESET_PASSWORD,
                {"email": email.strip(), "otp": otp.strip(), "newPassword": new_password.strip()},
            )
            return Result.ok(message="Password reset queued for sync")
        except FotosSyncError as e:
            logger.error("Forgot password error: %s", e)
            return Result.fail(error="Invalid OTP or reset failed")

    def logout(self) -> Result:
        try:
            self.store.delete_user()
        except FotosSyncError as e:
            logger.error("Error deleting user file: %s", e)
            return Result.fail(error=str(e))
        return Result.ok()
