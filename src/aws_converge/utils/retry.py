"""Backoff retries around AWS mutation calls.

botocore already retries throttling inside each client. The helpers here
cover service-level conflicts that clear up on their own, such as a
parameter group still being applied to a cache or a serverless cache whose
dependencies are being torn down.
"""

import random
import time
from typing import Callable, FrozenSet, Iterable, Optional, TypeVar

from botocore.exceptions import ClientError

from aws_converge.utils.errors import error_code, error_message
from aws_converge.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')

TRANSIENT_ERROR_CODES: FrozenSet[str] = frozenset({
    'InternalError',
    'InternalFailure',
    'RequestLimitExceeded',
    'RequestThrottled',
    'RequestTimeout',
    'ServiceUnavailable',
    'Throttling',
    'ThrottlingException',
    'TooManyRequestsException',
})


def _describe(error: Exception) -> str:
    if isinstance(error, ClientError):
        return f"{error_code(error) or 'Unknown'}: {error_message(error)}"
    return f"{type(error).__name__}: {error}"


class RetryStrategy:
    """Exponential backoff, bounded by a retry count, a time budget, or both.

    Args:
        max_retries: Retries after the first attempt; None means only
            ``timeout`` bounds the loop
        base_delay: First delay in seconds
        max_delay: Cap on any single delay
        exponential_base: Growth factor per attempt
        jitter: Add up to 10% random extra delay
        timeout: Overall budget in seconds. A retry whose delay would end
            past the budget is not attempted.
        retryable_codes: Retry only these AWS error codes. Without it,
            transient AWS codes and connection errors are retried.
    """

    def __init__(
        self,
        max_retries: Optional[int] = 5,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        timeout: Optional[float] = None,
        retryable_codes: Optional[Iterable[str]] = None,
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.timeout = timeout
        self.retryable_codes = None if retryable_codes is None else frozenset(retryable_codes)

    def should_retry(self, error: Exception, attempt: int) -> bool:
        if self.max_retries is not None and attempt >= self.max_retries:
            return False
        if isinstance(error, ClientError):
            codes = TRANSIENT_ERROR_CODES if self.retryable_codes is None else self.retryable_codes
            return error_code(error) in codes
        return self.retryable_codes is None and isinstance(error, (ConnectionError, TimeoutError))

    def get_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * self.exponential_base ** attempt, self.max_delay)
        if self.jitter:
            delay += random.uniform(0, delay / 10)
        return delay

    def execute_with_retry(self, func: Callable[..., T], *args, **kwargs) -> T:
        """Call ``func(*args, **kwargs)``, retrying per this strategy.

        Raises:
            The last error once it is not retryable, retries are used up,
            or the next delay would overrun ``timeout``
        """
        deadline = None if self.timeout is None else time.monotonic() + self.timeout

        attempt = 0
        while True:
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                if not self.should_retry(e, attempt):
                    raise
                delay = self.get_delay(attempt)
                if deadline is not None and time.monotonic() + delay > deadline:
                    logger.warning(f"Giving up after {self.timeout:g}s: {_describe(e)}")
                    raise
                logger.info(f"{_describe(e)}; retrying in {delay:.1f}s (attempt {attempt + 1})")
                time.sleep(delay)
                attempt += 1
            else:
                if attempt:
                    logger.debug(f"Succeeded after {attempt} retries")
                return result


def retry_when_error_code(
    func: Callable[[], T],
    codes: Iterable[str],
    timeout: float,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
) -> T:
    """Call ``func`` until it stops failing with one of ``codes`` or ``timeout`` passes.

    Example:
        retry_when_error_code(
            lambda: client.delete_serverless_cache(ServerlessCacheName=name),
            ['DependencyViolation'],
            timeout=300,
        )
    """
    return RetryStrategy(
        max_retries=None,
        base_delay=base_delay,
        max_delay=max_delay,
        timeout=timeout,
        retryable_codes=codes,
    ).execute_with_retry(func)
