"""
Circuit Breaker for external trust services.

Stops calling a timestamping authority, blockchain anchor or upload
endpoint that keeps failing, until it is likely to have recovered.

States:
- CLOSED: normal operation, calls pass through
- OPEN: calls are rejected immediately with CircuitOpenError
- HALF_OPEN: the next call is a trial of the recovered service

Transitions:
- CLOSED -> OPEN: after failure_threshold consecutive failures
- OPEN -> HALF_OPEN: once reset_timeout_ms has elapsed since the last
  failure, evaluated lazily at the next check
- HALF_OPEN -> CLOSED: on the next success (counters reset)
- HALF_OPEN -> OPEN: on the next failure
"""

import inspect
import logging
import threading
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar, Union

from .config import circuit_preset
from .errors import CircuitOpenError
from .logging_config import audit_log

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


class CircuitState(str, Enum):
    """Externally visible circuit state."""
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class Closed:
    failure_count: int = 0

    @property
    def name(self) -> CircuitState:
        return CircuitState.CLOSED


@dataclass(frozen=True)
class Open:
    since: float
    failure_count: int

    @property
    def name(self) -> CircuitState:
        return CircuitState.OPEN


@dataclass(frozen=True)
class HalfOpen:
    failure_count: int

    @property
    def name(self) -> CircuitState:
        return CircuitState.HALF_OPEN


BreakerState = Union[Closed, Open, HalfOpen]


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Effective configuration of one breaker."""
    service_name: str
    failure_threshold: int
    reset_timeout_ms: int


@dataclass
class CircuitBreakerStats:
    """Point-in-time snapshot of a breaker."""
    service_name: str
    state: CircuitState
    failure_count: int
    success_count: int
    last_failure_time: Optional[str]
    config: CircuitBreakerConfig

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_name": self.service_name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "last_failure_time": self.last_failure_time,
            "config": asdict(self.config),
        }


def _iso(ts: Optional[float]) -> Optional[str]:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class CircuitBreaker:
    """
    Circuit breaker guarding one named service.

    Thread-safe: every state mutation happens under a per-breaker lock.
    Defaults come from the service name (timestamping authorities reset
    after 5 minutes, blockchain services after 1 minute); explicit
    arguments always win.
    """

    def __init__(
        self,
        service_name: str,
        failure_threshold: Optional[int] = None,
        reset_timeout_ms: Optional[int] = None,
        clock: Clock = time.monotonic,
        wall_clock: Clock = time.time
    ):
        """
        Args:
            service_name: Name of the guarded service, also selects the preset
            failure_threshold: Consecutive failures that open the circuit
            reset_timeout_ms: Time spent OPEN before a trial call is allowed
            clock: Monotonic seconds, measures the reset timeout
            wall_clock: Epoch seconds, only stamps last_failure_time
        """
        if not service_name:
            raise ValueError("service_name is required")

        preset = circuit_preset(service_name)
        self.config = CircuitBreakerConfig(
            service_name=service_name,
            failure_threshold=failure_threshold if failure_threshold is not None else preset["failure_threshold"],
            reset_timeout_ms=reset_timeout_ms if reset_timeout_ms is not None else preset["reset_timeout_ms"],
        )
        if self.config.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.config.reset_timeout_ms < 0:
            raise ValueError("reset_timeout_ms must not be negative")

        self._clock = clock
        self._wall_clock = wall_clock
        self._lock = threading.RLock()
        self._state: BreakerState = Closed()
        self._success_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def service_name(self) -> str:
        return self.config.service_name

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_state_transition()
            return self._state.name

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._state.failure_count

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._success_count

    @property
    def last_failure_time(self) -> Optional[float]:
        with self._lock:
            return self._last_failure_time

    def _check_state_transition(self) -> None:
        state = self._state
        if isinstance(state, Open):
            elapsed_ms = (self._clock() - state.since) * 1000.0
            if elapsed_ms >= self.config.reset_timeout_ms:
                self._transition_to(HalfOpen(failure_count=state.failure_count))

    def _transition_to(self, new_state: BreakerState) -> None:
        old_state = self._state
        self._state = new_state
        if old_state.name != new_state.name:
            audit_log.circuit_transition(
                self.service_name,
                old_state.name.value,
                new_state.name.value,
                new_state.failure_count,
            )

    def can_execute(self) -> bool:
        """
        Check whether a call may proceed.

        Returns:
            True when CLOSED or HALF_OPEN

        Raises:
            CircuitOpenError: when OPEN and the reset timeout has not elapsed
        """
        with self._lock:
            self._check_state_transition()
            if isinstance(self._state, Open):
                audit_log.circuit_rejected(self.service_name)
                raise CircuitOpenError(self.service_name)
            return True

    def record_success(self) -> None:
        with self._lock:
            state = self._state
            if isinstance(state, HalfOpen):
                # trial call succeeded: both counters start over
                self._success_count = 0
                self._transition_to(Closed())
                return
            self._success_count += 1
            if isinstance(state, Closed):
                self._state = Closed()

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._last_failure_time = self._wall_clock()
            state = self._state
            failures = state.failure_count + 1

            if isinstance(state, HalfOpen):
                self._transition_to(Open(since=now, failure_count=failures))
            elif isinstance(state, Closed):
                if failures >= self.config.failure_threshold:
                    self._transition_to(Open(since=now, failure_count=failures))
                else:
                    self._state = Closed(failure_count=failures)
            else:
                # late failure of a call admitted before the circuit opened
                self._state = Open(since=now, failure_count=failures)

    async def execute(self, fn: Callable[[], Union[Awaitable[T], T]]) -> T:
        """
        Run a call under circuit breaker protection.

        Args:
            fn: Zero-argument callable, usually returning an awaitable

        Returns:
            The call's result

        Raises:
            CircuitOpenError: if the circuit is open (fn is not invoked)
            Exception: the call's own error, after it has been recorded
        """
        self.can_execute()

        try:
            result = fn()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self.record_failure()
            raise

        self.record_success()
        return result

    def get_stats(self) -> CircuitBreakerStats:
        with self._lock:
            self._check_state_transition()
            return CircuitBreakerStats(
                service_name=self.service_name,
                state=self._state.name,
                failure_count=self._state.failure_count,
                success_count=self._success_count,
                last_failure_time=_iso(self._last_failure_time),
                config=self.config,
            )

    def reset(self) -> None:
        """Reset to the initial CLOSED state."""
        with self._lock:
            self._transition_to(Closed())
            self._success_count = 0
            self._last_failure_time = None

    def force_open(self) -> None:
        """Open the circuit (maintenance or tests)."""
        with self._lock:
            now = self._clock()
            self._last_failure_time = self._wall_clock()
            self._transition_to(Open(since=now, failure_count=self._state.failure_count))

    def force_close(self) -> None:
        """Close the circuit (maintenance or tests)."""
        with self._lock:
            self._transition_to(Closed())


class CircuitBreakerRegistry:
    """
    Circuit breakers keyed by service name.

    Owned by the composition root and passed to callers. Creation is atomic:
    concurrent first calls for one name share a single breaker.
    """

    def __init__(self, clock: Clock = time.monotonic, wall_clock: Clock = time.time):
        self._clock = clock
        self._wall_clock = wall_clock
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_breaker(
        self,
        service_name: str,
        failure_threshold: Optional[int] = None,
        reset_timeout_ms: Optional[int] = None
    ) -> CircuitBreaker:
        """
        Get or create the breaker for a service.

        Overrides only apply when the breaker is first created.
        """
        with self._lock:
            breaker = self._breakers.get(service_name)
            if breaker is None:
                breaker = CircuitBreaker(
                    service_name,
                    failure_threshold=failure_threshold,
                    reset_timeout_ms=reset_timeout_ms,
                    clock=self._clock,
                    wall_clock=self._wall_clock,
                )
                self._breakers[service_name] = breaker
                logger.debug("Created circuit breaker for %s", service_name)
            return breaker

    def service_names(self) -> List[str]:
        with self._lock:
            return list(self._breakers)

    def get_all_stats(self) -> List[CircuitBreakerStats]:
        with self._lock:
            breakers = list(self._breakers.values())
        return [b.get_stats() for b in breakers]

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def __contains__(self, service_name: object) -> bool:
        with self._lock:
            return service_name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)
