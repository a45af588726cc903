"""Unit tests for authentication utilities."""
import pytest

from fotos_sync.database.models import OperationKind
from fotos_sync.models import ApiError
from fotos_sync.utils.auth import OFFLINE_TOKEN, AuthService, session_from_response


@pytest.fixture
def mock_auth_response():
    """Create a mock login response body."""
    return {
        "user": {
            "id": 42,
            "name": "Ann Example",
            "email": "ann@example.test",
            "phone": "555-0100",
            "emailVerified": True,
            "subscriptionEnd": "2025-01-01",
        },
        "token": "jwt-token",
        "trialStart": "2024-01-01",
    }


@pytest.fixture
def auth(store, api, online):
    return AuthService(store, api, online)


def test_session_from_response(mock_auth_response):
    """Test building a session from an auth response."""
    session = session_from_response(mock_auth_response)

    assert session.id == "42"
    assert session.auth_token == "jwt-token"
    assert session.email_verified
    assert session.trial_start == "2024-01-01"
    assert session.subscription_end == "2025-01-01"


def test_session_from_response_requires_user():
    """Test that a body without a user is rejected."""
    with pytest.raises(KeyError):
        session_from_response({"token": "x"})


def test_login_saves_session(auth, api, store, mock_auth_response):
    """Test successful login persists user.json."""
    api.login.return_value = mock_auth_response

    result = auth.login(" ann@example.test ", "secret ")

    assert result.success
    api.login.assert_called_once_with("ann@example.test", "secret")
    assert store.load_user().auth_token == "jwt-token"
    assert auth.current_user().id == "42"


def test_login_failure(auth, api, store):
    """Test that API errors map to a generic failure."""
    api.login.side_effect = ApiError("401")

    result = auth.login("ann@example.test", "bad")

    assert not result.success
    assert result.error == "Invalid email or password"
    assert store.load_user() is None


def test_login_malformed_response(auth, api):
    """Test a response body without a user."""
    api.login.return_value = {"token": "x"}
    assert "Malformed auth response" in auth.login("a@b.c", "pw").error


def test_register_online(auth, api, online, store, mock_auth_response):
    """Test online registration."""
    online.force(True)
    api.register.return_value = mock_auth_response

    result = auth.register("Ann", "Example", "ann@example.test", "pw")

    assert result.success
    assert api.register.call_args[0][0]["firstName"] == "Ann"
    assert store.load_queue() == []
    assert store.load_user().id == "42"


def test_register_offline_queues(auth, api, store):
    """Test offline registration creates a local session and queues the call."""
    result = auth.register("Ann", "Example", "ann@example.test", "pw", phone="555")

    assert result.success
    assert result.data.auth_token == OFFLINE_TOKEN
    assert result.data.name == "Ann Example"
    api.register.assert_not_called()
    queue = store.load_queue()
    assert [op.kind for op in queue] == [OperationKind.REGISTER_USER]
    assert queue[0].payload["userData"]["email"] == "ann@example.test"


def test_forgot_password_offline_queues(auth, api, store):
    """Test offline password reset is queued."""
    result = auth.forgot_password("ann@example.test", "123456", "newpw")

    assert result.success
    api.forgot_password.assert_not_called()
    (operation,) = store.load_queue()
    assert operation.kind == OperationKind.RESET_PASSWORD
    assert operation.payload == {"email": "ann@example.test", "otp": "123456", "newPassword": "newpw"}


def test_forgot_password_online_failure(auth, api, online):
    """Test online password reset failure."""
    online.force(True)
    api.forgot_password.side_effect = ApiError("bad otp")

    assert auth.forgot_password("a@b.c", "1", "x").error == "Invalid OTP or reset failed"


def test_email_otp(auth, api):
    """Test sending and verifying email OTPs."""
    assert auth.send_email_otp("a@b.c").message == "OTP sent successfully"

    api.verify_email_otp.return_value = {"message": "Email verified"}
    assert auth.verify_email_otp("a@b.c", " 123 ").message == "Email verified"
    api.verify_email_otp.assert_called_once_with("a@b.c", "123")

    api.send_email_otp.side_effect = ApiError("down")
    assert auth.send_email_otp("a@b.c").error == "Failed to send OTP"


def test_logout(auth, store, user):
    """Test logout removes the stored session."""
    assert auth.logout().success
    assert store.load_user() is None
    assert auth.logout().success
