"""Tests for the retry helper."""

from unittest.mock import MagicMock

import pytest

from fotos_sync.models import UploadError
from fotos_sync.utils.retry import retry_with_backoff


def test_returns_first_success():
    fn = MagicMock(return_value="ok")
    sleep = MagicMock()

    assert retry_with_backoff(fn, sleep=sleep) == "ok"
    fn.assert_called_once()
    sleep.assert_not_called()


def test_doubles_delay_between_attempts():
    fn = MagicMock(side_effect=[UploadError("a"), UploadError("b"), "ok"])
    delays = []

    assert retry_with_backoff(fn, attempts=3, base_delay=1.0, sleep=delays.append) == "ok"
    assert fn.call_count == 3
    assert delays == [1.0, 2.0]


def test_reraises_last_error():
    fn = MagicMock(side_effect=[UploadError("first"), UploadError("second"), UploadError("last")])
    delays = []

    with pytest.raises(UploadError, match="last"):
        retry_with_backoff(fn, attempts=3, sleep=delays.append)
    assert fn.call_count == 3
    assert delays == [1.0, 2.0]


def test_other_errors_are_not_retried():
    fn = MagicMock(side_effect=KeyError("x"))

    with pytest.raises(KeyError):
        retry_with_backoff(fn, retry_on=(UploadError,), sleep=MagicMock())
    fn.assert_called_once()


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        retry_with_backoff(MagicMock(), attempts=0)
