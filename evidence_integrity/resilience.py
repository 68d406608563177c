"""
Resilient calls to external trust services.

Composes the two failure-isolation layers: every attempt goes through the
service's circuit breaker, and the retry handler absorbs transient faults
around it. CircuitOpenError is not retryable, so once the breaker opens the
remaining attempts are abandoned.

Usage:

    registry = CircuitBreakerRegistry()

    @resilient("tsa-serpro", registry)
    async def request_timestamp(digest):
        ...

    token = await request_timestamp(manifest.combined_hash)
"""

import functools
from typing import Any, Awaitable, Callable, Optional, TypeVar, Union

from .circuit_breaker import CircuitBreakerRegistry
from .retry import OnRetryCallback, RetryHandler

T = TypeVar("T")


async def protected_call(
    fn: Callable[[], Union[Awaitable[T], T]],
    service_name: str,
    registry: CircuitBreakerRegistry,
    retry_handler: Optional[RetryHandler] = None,
    on_retry: Optional[OnRetryCallback] = None
) -> T:
    """
    Call an external service through its circuit breaker, with retry.

    Args:
        fn: Zero-argument callable, usually returning an awaitable
        service_name: Name of the service, selects the breaker and presets
        registry: Registry owning the service's breaker
        retry_handler: Retry policy; defaults to the preset for service_name
        on_retry: Called between attempts

    Raises:
        CircuitOpenError: if the breaker is (or becomes) open
        MaxRetriesExceededError: if every attempt failed
        Exception: the call's own error when it is not retryable
    """
    breaker = registry.get_breaker(service_name)
    handler = retry_handler or RetryHandler(service_name)
    return await handler.execute(lambda: breaker.execute(fn), on_retry)


def resilient(
    service_name: str,
    registry: CircuitBreakerRegistry,
    retry_handler: Optional[RetryHandler] = None
) -> Callable:
    """
    Decorator routing every call of an async function through protected_call.
    """
    def decorator(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await protected_call(
                lambda: func(*args, **kwargs),
                service_name,
                registry,
                retry_handler=retry_handler,
            )
        return wrapper
    return decorator
