"""
Recovery / retry policy.

Classifies filesystem and store failures and runs operations under a
bounded exponential backoff. `RetryPolicy.run` never loops on exceptions:
each attempt produces a typed outcome and the loop is capped by
`max_attempts`.

Classification:
- TRANSIENT: permission and availability problems (EACCES, EPERM, network
  mounts going away, lock contention). Retried with backoff.
- FATAL: capacity and medium failures (ENOSPC, EDQUOT, EROFS, EIO). Never
  retried; continuing would risk silent loss across every pending export.
"""

import errno
import logging
import random
import sqlite3
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FailureClass(str, Enum):
    """How a failure should be handled."""

    TRANSIENT = "transient"
    FATAL = "fatal"


FATAL_ERRNOS = frozenset(
    code
    for code in (
        errno.ENOSPC,
        getattr(errno, "EDQUOT", None),
        errno.EROFS,
        errno.EIO,
        errno.EFBIG,
    )
    if code is not None
)

TRANSIENT_ERRNOS = frozenset(
    code
    for code in (
        errno.EACCES,
        errno.EPERM,
        errno.EAGAIN,
        errno.EBUSY,
        errno.EINTR,
        errno.ETIMEDOUT,
        getattr(errno, "ENETDOWN", None),
        getattr(errno, "ENETUNREACH", None),
        getattr(errno, "EHOSTDOWN", None),
        getattr(errno, "EHOSTUNREACH", None),
        getattr(errno, "ESTALE", None),
        getattr(errno, "ENOTCONN", None),
    )
    if code is not None
)

# sqlite3.OperationalError messages
_FATAL_SQLITE_MARKERS = ("database or disk is full", "disk i/o error", "readonly database")
_TRANSIENT_SQLITE_MARKERS = ("database is locked", "database is busy", "database table is locked")


def error_code_name(error: BaseException) -> str:
    """Symbolic errno name for logs (e.g. ENOSPC), or the exception type."""
    code = getattr(error, "errno", None)
    if code is not None and code in errno.errorcode:
        return errno.errorcode[code]
    return type(error).__name__


def classify_error(error: BaseException) -> FailureClass | None:
    """
    Classify an I/O or store failure.

    Returns:
        FailureClass, or None if the error is not an I/O failure at all
        (programming errors must propagate unchanged)
    """
    if isinstance(error, sqlite3.OperationalError):
        message = str(error).lower()
        if any(marker in message for marker in _FATAL_SQLITE_MARKERS):
            return FailureClass.FATAL
        if any(marker in message for marker in _TRANSIENT_SQLITE_MARKERS):
            return FailureClass.TRANSIENT
        return None

    if isinstance(error, OSError):
        if error.errno in FATAL_ERRNOS:
            return FailureClass.FATAL
        if error.errno in TRANSIENT_ERRNOS or isinstance(error, PermissionError):
            return FailureClass.TRANSIENT
        # Unknown filesystem errors get the bounded retry budget
        return FailureClass.TRANSIENT

    return None


@dataclass
class AttemptOutcome(Generic[T]):
    """Result of running an operation under a retry policy."""

    value: T | None
    attempts: int
    error: BaseException | None = None
    failure: FailureClass | None = None

    @property
    def ok(self) -> bool:
        """The operation eventually succeeded."""
        return self.error is None

    @property
    def is_fatal(self) -> bool:
        return self.failure is FailureClass.FATAL

    @property
    def exhausted(self) -> bool:
        """Transient failures used up the whole attempt budget."""
        return self.failure is FailureClass.TRANSIENT


class RetryPolicy:
    """
    Bounded exponential backoff with positive jitter.

    Delay before retry n (1-based) is
    ``min(base_delay * multiplier ** (n - 1), max_delay) * (1 + U(0, jitter))``.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 64.0,
        multiplier: float = 2.0,
        jitter: float = 0.3,
        sleep: Callable[[float], None] = time.sleep,
        classify: Callable[[BaseException], FailureClass | None] = classify_error,
    ):
        """
        Initialize the policy.

        Args:
            max_attempts: Total attempts including the first (>= 1)
            base_delay: Delay before the first retry (seconds)
            max_delay: Cap on a single delay (seconds)
            multiplier: Growth factor per attempt
            jitter: Upper bound of the random positive jitter fraction
            sleep: Sleep function (injected in tests)
            classify: Failure classifier
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter = jitter
        self._sleep = sleep
        self._classify = classify

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given (1-based) failed attempt."""
        raw = min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)
        return raw * (1 + random.uniform(0, self.jitter))

    def run(self, operation: Callable[[], T], description: str = "operation") -> AttemptOutcome[T]:
        """
        Run an operation under this policy.

        Errors the classifier does not recognise propagate immediately.

        Args:
            operation: Zero-argument callable
            description: Label for log messages

        Returns:
            AttemptOutcome with the value, or the last error and its class
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return AttemptOutcome(value=operation(), attempts=attempt)
            except Exception as e:
                failure = self._classify(e)
                if failure is None:
                    raise

                if failure is FailureClass.FATAL:
                    logger.error(
                        f"{description} failed fatally ({error_code_name(e)}) "
                        f"on attempt {attempt}: {e}"
                    )
                    return AttemptOutcome(value=None, attempts=attempt, error=e, failure=failure)

                if attempt == self.max_attempts:
                    logger.warning(
                        f"{description} failed after {attempt} attempts "
                        f"({error_code_name(e)}): {e}"
                    )
                    return AttemptOutcome(value=None, attempts=attempt, error=e, failure=failure)

                delay = self.delay_for(attempt)
                logger.warning(
                    f"{description} failed ({error_code_name(e)}), "
                    f"retrying in {delay:.2f}s (attempt {attempt}/{self.max_attempts})"
                )
                self._sleep(delay)

        raise AssertionError("unreachable")  # pragma: no cover
