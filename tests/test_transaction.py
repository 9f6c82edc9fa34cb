"""Tests for Deadline and retry_on_conflict."""

import pytest

from gitkanban.errors import DeadlineExceeded
from gitkanban.transaction import Committed, Conflict, Deadline, Failed, retry_on_conflict


class TestDeadline:

    def test_remaining_and_expiry(self):
        now = [10.0]
        deadline = Deadline(5.0, clock=lambda: now[0])
        assert deadline.remaining() == 5.0
        assert not deadline.expired()
        now[0] = 15.0
        assert deadline.expired()

    def test_timeout_uses_smaller_value(self):
        now = [0.0]
        deadline = Deadline(30.0, clock=lambda: now[0])
        assert deadline.timeout(10.0) == 10.0
        now[0] = 25.0
        assert deadline.timeout(10.0) == 5.0

    def test_timeout_raises_when_spent(self):
        now = [0.0]
        deadline = Deadline(1.0, clock=lambda: now[0])
        now[0] = 1.0
        with pytest.raises(DeadlineExceeded):
            deadline.timeout(10.0)


class TestRetryOnConflict:

    def test_first_success_is_returned(self):
        calls = []

        def attempt(n):
            calls.append(n)
            return Committed("sha1")

        assert retry_on_conflict(attempt, 2) == Committed("sha1")
        assert calls == [1]

    def test_retries_after_conflict(self):
        outcomes = iter([Conflict("raced"), Committed("sha2")])
        assert retry_on_conflict(lambda n: next(outcomes), 2) == Committed("sha2")

    def test_gives_up_after_max_attempts(self):
        calls = []

        def attempt(n):
            calls.append(n)
            return Conflict(f"conflict {n}")

        assert retry_on_conflict(attempt, 2) == Conflict("conflict 2")
        assert calls == [1, 2]

    def test_failure_is_not_retried(self):
        calls = []
        error = RuntimeError("boom")

        def attempt(n):
            calls.append(n)
            return Failed(error)

        assert retry_on_conflict(attempt, 3) == Failed(error)
        assert calls == [1]

    def test_rejects_zero_attempts(self):
        with pytest.raises(ValueError):
            retry_on_conflict(lambda n: Committed("x"), 0)
