"""Bounded retry with a constant delay.

Low-level disk operations (sfdisk right after a device appears, for example)
fail transiently while udev is still settling. :class:`PartitionStrategy`
repeats such an operation until it reports that it is done or the attempt
budget runs out.

The wrapped operation decides what is worth retrying: each attempt returns
``(should_retry, error)``. There is no backoff and no jitter, and the strategy
blocks its caller while sleeping; a hung attempt cannot be interrupted.

Example:
    >>> def attempt():
    ...     result = run_command(["sfdisk", device], check=False, input_text=script)
    ...     if result.returncode != 0:
    ...         return True, RuntimeError(result.stderr)
    ...     return False, None
    >>> PartitionStrategy(RetryableFunc(attempt)).run()
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, Optional, Protocol, Tuple

from hostagent.logging import LoggerFactory

if TYPE_CHECKING:
    from loguru import Logger


DEFAULT_MAX_ATTEMPTS = 20
DEFAULT_DELAY_SECONDS = 3.0

AttemptResult = Tuple[bool, Optional[Exception]]


class Retryable(Protocol):
    def attempt(self) -> AttemptResult: ...


class RetryableFunc:
    """Adapts a plain callable returning ``(should_retry, error)``."""

    def __init__(self, func: Callable[[], AttemptResult]):
        self._func = func

    def attempt(self) -> AttemptResult:
        return self._func()


class PartitionStrategy:
    def __init__(
        self,
        retryable: Retryable,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        delay: float = DEFAULT_DELAY_SECONDS,
        log: Optional[Logger] = None,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._retryable = retryable
        self._sleep = sleep
        self._max_attempts = max_attempts
        self._delay = delay
        self._log = log or LoggerFactory.for_disk()

    def run(self) -> None:
        """Attempt until the retryable stops asking for retries.

        Raises:
            Exception: The error of the attempt that ended the loop, i.e. the
                first attempt reporting ``should_retry=False`` or, when the
                budget is exhausted, the final attempt. Nothing is raised
                when that attempt returned no error.
        """
        error: Optional[Exception] = None

        for attempt_number in range(1, self._max_attempts + 1):
            self._log.debug(f"Making attempt #{attempt_number}")

            should_retry, error = self._retryable.attempt()
            if not should_retry:
                break

            if attempt_number < self._max_attempts:
                self._sleep(self._delay)
        else:
            self._log.warning(
                f"Giving up after {self._max_attempts} attempts: {error}"
            )

        if error is not None:
            raise error
