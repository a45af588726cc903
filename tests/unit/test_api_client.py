"""Unit tests for the REST API client."""

from unittest.mock import MagicMock

import pytest
import requests

from fotos_sync.cloud.api_client import ApiClient
from fotos_sync.models import ApiError


def _response(status=200, body=None, reason="OK"):
    response = MagicMock()
    response.status_code = status
    response.reason = reason
    response.content = b"{}" if body is not None else b""
    response.json.return_value = body
    return response


@pytest.fixture
def http():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def token():
    return {"value": "tok"}


@pytest.fixture
def client(http, token):
    return ApiClient("https://api.example.test/", lambda: token["value"], timeout=5, session=http)


def test_request_sends_bearer_token(client, http):
    http.request.return_value = _response(body=[{"id": "A1"}])

    assert client.list_albums() == [{"id": "A1"}]

    method, url = http.request.call_args[0]
    kwargs = http.request.call_args[1]
    assert (method, url) == ("GET", "https://api.example.test/api/albums")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["timeout"] == 5


def test_token_is_read_per_request(client, http, token):
    http.request.return_value = _response(body={})
    token["value"] = None

    client.delete_album("A1")

    assert "Authorization" not in http.request.call_args[1]["headers"]
    assert http.request.call_args[0] == ("DELETE", "https://api.example.test/api/albums/A1")


def test_error_status_raises_with_server_message(client, http):
    http.request.return_value = _response(status=400, body={"error": "Album name taken"}, reason="Bad")

    with pytest.raises(ApiError, match="Album name taken"):
        client.create_album({"name": "x"})


def test_transport_error_raises(client, http):
    http.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ApiError, match="refused"):
        client.list_albums()


def test_register_photo_requires_body(client, http):
    http.request.return_value = _response(body=None)

    with pytest.raises(ApiError):
        client.register_photo({"albumId": "A1", "imageUrl": "u"})


def test_list_cloud_photos(client, http):
    http.request.return_value = _response(body={"photos": [{"id": "p1"}]})

    assert client.list_cloud_photos("A1") == [{"id": "p1"}]
    assert http.request.call_args[0][1].endswith("/api/photos/sync-cloud/A1")


def test_forgot_password_payload(client, http):
    http.request.return_value = _response(body={"user": {"id": 1}, "token": "t"})

    client.forgot_password("a@b.c", "123", "pw")

    assert http.request.call_args[1]["json"] == {"email": "a@b.c", "otp": "123", "newPassword": "pw"}
