"""
Retry with exponential backoff plus a circuit breaker for outbound calls.
Used by the payment gateway client; database work is never retried.
"""
import asyncio
import functools
from typing import Callable, Optional, Type, Tuple, Any
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime

from config import config
from utils.logger import get_logger
from utils.exceptions import NetworkException

logger = get_logger("retry")


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """
    Opens after `failure_threshold` consecutive failures and rejects calls
    until `recovery_timeout` seconds pass, then lets trial calls through.
    """
    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 2

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _last_failure_time: Optional[datetime] = field(default=None, init=False)
    _half_open_calls: int = field(default=0, init=False)

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self._last_failure_time:
            elapsed = (datetime.utcnow() - self._last_failure_time).total_seconds()
            if elapsed >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0
                logger.info(f"Circuit {self.name}: OPEN -> HALF_OPEN")
        return self._state

    def record_success(self):
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_calls += 1
            if self._half_open_calls >= self.half_open_max_calls:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                logger.info(f"Circuit {self.name}: HALF_OPEN -> CLOSED")
        else:
            self._failure_count = 0

    def record_failure(self):
        self._failure_count += 1
        self._last_failure_time = datetime.utcnow()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(f"Circuit {self.name}: HALF_OPEN -> OPEN (failure during recovery)")
        elif self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(f"Circuit {self.name}: CLOSED -> OPEN (threshold reached)")

    def can_execute(self) -> bool:
        return self.state != CircuitState.OPEN


_circuit_breakers: dict[str, CircuitBreaker] = {}


def get_circuit_breaker(name: str, **kwargs) -> CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _circuit_breakers:
        _circuit_breakers[name] = CircuitBreaker(name=name, **kwargs)
    return _circuit_breakers[name]


def reset_circuit_breakers():
    """Forget every breaker's state."""
    _circuit_breakers.clear()


async def retry_async(
    func: Callable,
    *args,
    max_retries: int = None,
    delay: float = None,
    backoff: float = None,
    exceptions: Tuple[Type[Exception], ...] = (NetworkException,),
    circuit_breaker: Optional[CircuitBreaker] = None,
    **kwargs
) -> Any:
    """
    Execute an async function, retrying on `exceptions`.

    Args:
        func: Async function to execute
        max_retries: Maximum retry attempts (config.MAX_RETRIES by default)
        delay: Initial delay between retries
        backoff: Delay multiplier after every failure
        exceptions: Exception types that trigger a retry
        circuit_breaker: Optional breaker consulted before every attempt

    Raises:
        NetworkException when the breaker is open, otherwise the last error.
    """
    max_retries = max_retries if max_retries is not None else config.MAX_RETRIES
    delay = delay if delay is not None else config.RETRY_DELAY
    backoff = backoff if backoff is not None else config.RETRY_BACKOFF

    last_exception = None
    current_delay = delay

    for attempt in range(max_retries + 1):
        if circuit_breaker and not circuit_breaker.can_execute():
            logger.warning(f"Circuit breaker {circuit_breaker.name} is OPEN, rejecting request")
            raise NetworkException(
                f"Service {circuit_breaker.name} unavailable (circuit breaker open)",
                {"circuit_state": circuit_breaker.state.value}
            )

        try:
            result = await func(*args, **kwargs)
            if circuit_breaker:
                circuit_breaker.record_success()
            return result

        except exceptions as e:
            last_exception = e
            if circuit_breaker:
                circuit_breaker.record_failure()

            if attempt < max_retries:
                logger.warning(f"Retry {attempt + 1}/{max_retries} for {func.__name__}: {e}")
                await asyncio.sleep(current_delay)
                current_delay *= backoff
            else:
                logger.error(f"All {max_retries} retries failed for {func.__name__}: {e}")

    raise last_exception


def with_retry(
    max_retries: int = None,
    delay: float = None,
    backoff: float = None,
    exceptions: Tuple[Type[Exception], ...] = (NetworkException,),
    circuit_breaker_name: Optional[str] = None
):
    """
    Decorator form of retry_async.

    Usage:
        @with_retry(exceptions=(NetworkException,), circuit_breaker_name="payment_gateway")
        async def call_gateway():
            ...
    """
    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            cb = get_circuit_breaker(circuit_breaker_name) if circuit_breaker_name else None
            return await retry_async(
                func, *args,
                max_retries=max_retries,
                delay=delay,
                backoff=backoff,
                exceptions=exceptions,
                circuit_breaker=cb,
                **kwargs
            )
        return wrapper
    return decorator
