"""Tests for failure classification and backoff."""

import errno
import sqlite3

import pytest

from capture_bridge.services.retry import FailureClass, RetryPolicy, classify_error


class TestClassifyError:
    @pytest.mark.parametrize("code", [errno.ENOSPC, errno.EROFS, errno.EIO, errno.EFBIG])
    def test_fatal_errnos(self, code):
        assert classify_error(OSError(code, "x")) is FailureClass.FATAL

    @pytest.mark.parametrize("code", [errno.EACCES, errno.EPERM, errno.EBUSY, errno.EAGAIN])
    def test_transient_errnos(self, code):
        assert classify_error(OSError(code, "x")) is FailureClass.TRANSIENT

    def test_permission_error(self):
        assert classify_error(PermissionError(errno.EACCES, "denied")) is FailureClass.TRANSIENT

    def test_unknown_os_error_is_transient(self):
        assert classify_error(OSError("weird")) is FailureClass.TRANSIENT

    def test_sqlite_locked(self):
        error = sqlite3.OperationalError("database is locked")
        assert classify_error(error) is FailureClass.TRANSIENT

    def test_sqlite_disk_full(self):
        error = sqlite3.OperationalError("database or disk is full")
        assert classify_error(error) is FailureClass.FATAL

    def test_programming_errors_are_not_classified(self):
        assert classify_error(ValueError("bug")) is None
        assert classify_error(KeyError("bug")) is None
        assert classify_error(sqlite3.OperationalError("no such table: x")) is None


class TestRetryPolicy:
    def test_success_first_try(self, retry_policy, sleeps):
        outcome = retry_policy.run(lambda: 42)
        assert outcome.ok
        assert outcome.value == 42
        assert outcome.attempts == 1
        assert sleeps == []

    def test_transient_then_success(self, retry_policy, sleeps):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise PermissionError(errno.EACCES, "locked by sync client")
            return "done"

        outcome = retry_policy.run(flaky)
        assert outcome.ok
        assert outcome.value == "done"
        assert outcome.attempts == 3
        assert len(sleeps) == 2

    def test_transient_exhausted(self, retry_policy, sleeps):
        def always_busy():
            raise OSError(errno.EBUSY, "busy")

        outcome = retry_policy.run(always_busy)
        assert not outcome.ok
        assert outcome.exhausted
        assert outcome.attempts == 3
        assert len(sleeps) == 2
        assert outcome.error.errno == errno.EBUSY

    def test_fatal_stops_immediately(self, retry_policy, sleeps):
        def disk_full():
            raise OSError(errno.ENOSPC, "No space left on device")

        outcome = retry_policy.run(disk_full)
        assert outcome.is_fatal
        assert outcome.attempts == 1
        assert sleeps == []

    def test_unclassified_propagates(self, retry_policy):
        def bug():
            raise ValueError("bug")

        with pytest.raises(ValueError):
            retry_policy.run(bug)

    def test_delay_grows_and_caps(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=5.0, multiplier=2.0, jitter=0.0)
        assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]

    def test_jitter_is_positive_and_bounded(self):
        policy = RetryPolicy(base_delay=1.0, jitter=0.3)
        for _ in range(50):
            assert 1.0 <= policy.delay_for(1) <= 1.3

    def test_max_attempts_validated(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
