"""
Retry handler with exponential backoff and jitter.

delay(attempt) = min(max_delay_ms, initial_delay_ms * backoff_factor ** attempt),
then jittered uniformly by +/- jitter_factor so that many clients retrying
the same service do not synchronize, and finally capped at max_delay_ms.
"""

import asyncio
import inspect
import logging
import random
import re
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, Tuple, TypeVar, Union

from .config import retry_preset
from .errors import EvidenceIntegrityError, MaxRetriesExceededError
from .logging_config import audit_log

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[], Union[Awaitable[T], T]]

NETWORK_MESSAGE_MARKERS = (
    "network",
    "fetch",
    "connection",
    "timeout",
    "timed out",
    "econnrefused",
    "econnreset",
    "enotfound",
    "rate limit",
    "too many requests",
)

# Exception class names of HTTP client libraries that signal transport failures
NETWORK_ERROR_CLASS_NAMES = frozenset({
    "NetworkError",
    "TransportError",
    "TimeoutException",
    "ClientConnectionError",
    "ServerDisconnectedError",
})

RETRYABLE_STATUS_PATTERN = re.compile(r'\b(5\d\d|429)\b')


@dataclass(frozen=True)
class RetryConfig:
    """Retry parameters for one class of operation."""
    max_attempts: int
    initial_delay_ms: int
    max_delay_ms: int
    backoff_factor: float
    jitter_factor: float
    is_retryable: Optional[Callable[[BaseException], bool]] = None

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_factor <= 0:
            raise ValueError("backoff_factor must be positive")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")


@dataclass
class AttemptInfo:
    """Passed to on_retry between attempts."""
    attempt: int
    max_attempts: int
    delay_ms: int
    error: BaseException


@dataclass
class RetryResult(Generic[T]):
    """Outcome of execute_with_result."""
    success: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None
    attempts: int = 0
    total_delay_ms: int = 0


OnRetryCallback = Callable[[AttemptInfo], None]


def _http_status(error: BaseException) -> Optional[int]:
    for candidate in (
        getattr(error, "status_code", None),
        getattr(error, "status", None),
        getattr(getattr(error, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int) and not isinstance(candidate, bool):
            return candidate
    return None


def default_is_retryable(error: BaseException) -> bool:
    """
    Decide whether an error is transient.

    Retryable: network and timeout errors, HTTP 5xx and HTTP 429.
    Not retryable: other HTTP 4xx, validation errors and this package's
    own errors (an open circuit must not be hammered).
    """
    if isinstance(error, EvidenceIntegrityError):
        return False

    status = _http_status(error)
    if status is not None:
        return status >= 500 or status == 429

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return True
    if any(cls.__name__ in NETWORK_ERROR_CLASS_NAMES for cls in type(error).__mro__):
        return True

    message = str(error).lower()
    if any(marker in message for marker in NETWORK_MESSAGE_MARKERS):
        return True
    return RETRYABLE_STATUS_PATTERN.search(message) is not None


def _resolve_config(service_type: Union[str, RetryConfig, Mapping[str, Any]]) -> RetryConfig:
    if isinstance(service_type, RetryConfig):
        return service_type
    if isinstance(service_type, str):
        return RetryConfig(**retry_preset(service_type))
    defaults = retry_preset("default")
    defaults.update(service_type)
    return RetryConfig(**defaults)


class RetryHandler:
    """
    Runs operations with retry and exponential backoff.

    Args:
        service_type: preset name ("timestamping-authority", "blockchain",
            "upload", ...), a service name resolved to its preset family,
            a RetryConfig, or a dict of overrides on the default preset
        sleep: async sleep taking seconds (asyncio.sleep by default)
        rng: random source for jitter
    """

    def __init__(
        self,
        service_type: Union[str, RetryConfig, Mapping[str, Any]] = "default",
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        rng: Optional[random.Random] = None
    ):
        self.config = _resolve_config(service_type)
        self._sleep = sleep or asyncio.sleep
        self._rng = rng or random.Random()

    def get_config(self) -> RetryConfig:
        return replace(self.config)

    def calculate_delay(self, attempt: int) -> int:
        """
        Backoff delay in ms before retrying after the given 0-based attempt.

        Always within [0, max_delay_ms].
        """
        cfg = self.config
        try:
            exponential = cfg.initial_delay_ms * (cfg.backoff_factor ** attempt)
        except OverflowError:
            exponential = cfg.max_delay_ms
        capped = min(exponential, cfg.max_delay_ms)

        jitter_range = capped * cfg.jitter_factor
        jitter = (self._rng.random() * 2 - 1) * jitter_range

        return int(max(0, min(cfg.max_delay_ms, round(capped + jitter))))

    def is_retryable(self, error: BaseException) -> bool:
        predicate = self.config.is_retryable or default_is_retryable
        return predicate(error)

    async def execute(self, fn: Operation, on_retry: Optional[OnRetryCallback] = None) -> T:
        """
        Run an operation with retry.

        Args:
            fn: Zero-argument callable, usually returning an awaitable
            on_retry: Called synchronously before each backoff wait

        Returns:
            The operation's result

        Raises:
            Exception: the original error when it is not retryable
            MaxRetriesExceededError: when every attempt failed
        """
        outcome, exhausted = await self._run(fn, on_retry)
        if outcome.success:
            return outcome.result
        if not exhausted:
            raise outcome.error
        raise MaxRetriesExceededError(outcome.attempts, outcome.error) from outcome.error

    async def execute_with_result(
        self,
        fn: Operation,
        on_retry: Optional[OnRetryCallback] = None
    ) -> RetryResult:
        """Run an operation with retry, reporting the outcome instead of raising."""
        outcome, _ = await self._run(fn, on_retry)
        return outcome

    async def _run(self, fn: Operation, on_retry: Optional[OnRetryCallback]) -> Tuple[RetryResult, bool]:
        max_attempts = self.config.max_attempts
        total_delay_ms = 0
        last_error: Optional[BaseException] = None

        for attempt in range(max_attempts):
            try:
                result = fn()
                if inspect.isawaitable(result):
                    result = await result
                return RetryResult(
                    success=True,
                    result=result,
                    attempts=attempt + 1,
                    total_delay_ms=total_delay_ms,
                ), False
            except Exception as e:
                last_error = e

                if not self.is_retryable(e):
                    logger.debug("Non-retryable %s on attempt %d", type(e).__name__, attempt + 1)
                    return RetryResult(
                        success=False,
                        error=e,
                        attempts=attempt + 1,
                        total_delay_ms=total_delay_ms,
                    ), False

                if attempt == max_attempts - 1:
                    break

                delay_ms = self.calculate_delay(attempt)
                total_delay_ms += delay_ms

                audit_log.retry_scheduled(attempt + 1, max_attempts, delay_ms, e)
                if on_retry is not None:
                    on_retry(AttemptInfo(
                        attempt=attempt + 1,
                        max_attempts=max_attempts,
                        delay_ms=delay_ms,
                        error=e,
                    ))

                await self._sleep(delay_ms / 1000.0)

        audit_log.retries_exhausted(max_attempts, last_error)
        return RetryResult(
            success=False,
            error=last_error,
            attempts=max_attempts,
            total_delay_ms=total_delay_ms,
        ), True


async def with_retry(
    fn: Operation,
    service_type: Union[str, RetryConfig, Mapping[str, Any]] = "default",
    on_retry: Optional[OnRetryCallback] = None
) -> Any:
    """Shortcut for RetryHandler(service_type).execute(fn, on_retry)."""
    return await RetryHandler(service_type).execute(fn, on_retry)
