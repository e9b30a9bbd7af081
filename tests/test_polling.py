"""
Tests for the bounded poll loop.
"""
import pytest

from abb_automation.errors import PollTimeoutError
from abb_automation.polling import poll_until


def test_returns_first_terminal_value():
    values = iter(["running", "running", "success"])
    sleeps = []
    result = poll_until(lambda: next(values), lambda v: v == "success",
                        interval=4, max_attempts=10, sleep=sleeps.append)
    assert result == "success"
    assert sleeps == [4, 4, 4]


def test_timeout_carries_last_value():
    attempts = []
    with pytest.raises(PollTimeoutError) as exc:
        poll_until(lambda: "running", lambda v: False, interval=1, max_attempts=3,
                   sleep=lambda s: None, on_attempt=lambda n, v: attempts.append(n),
                   what="export job")
    assert exc.value.attempts == 3
    assert exc.value.last == "running"
    assert "export job" in str(exc.value)
    assert attempts == [1, 2, 3]


def test_fetch_errors_propagate():
    def fetch():
        raise ConnectionError("down")

    with pytest.raises(ConnectionError):
        poll_until(fetch, lambda v: True, interval=0, max_attempts=2, sleep=lambda s: None)


def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        poll_until(lambda: 1, lambda v: True, interval=0, max_attempts=0)
