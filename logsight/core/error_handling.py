"""Typed analysis errors, provider circuit breakers, and retry policy."""

import asyncio
import logging
import time
from datetime import datetime
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field
from tenacity import (
    AsyncRetrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    before_sleep_log,
)

from logsight.core.logging import get_logger
from logsight.monitoring.metrics import get_metrics_collector

logger = get_logger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 1000
BREAKER_PREFIX = "ai_provider_"


def truncate_error_message(message: str, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """Truncate an error message for storage and display."""
    if len(message) <= limit:
        return message
    return message[:limit] + "... (truncated)"


class AnalysisError(Exception):
    """
    Base class for every error the pipeline surfaces.

    Each stage raises its own subclass so callers can dispatch on type
    instead of matching on message text.
    """

    code = "INTERNAL"
    retryable = False

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def user_message(self) -> str:
        """Message safe to hand to callers and storage."""
        return truncate_error_message(self.message)


class InvalidInputError(AnalysisError):
    """Raised for bad arguments (unknown level, out-of-range timeout, ...)."""

    code = "INVALID_INPUT"


class LogIOError(AnalysisError):
    """Raised when the log source cannot be read."""

    code = "IO_ERROR"


class DecodeError(AnalysisError):
    """Raised when input bytes cannot be turned into text."""

    code = "DECODE_ERROR"


class NoMatchingEntriesError(AnalysisError):
    """Raised when nothing survives parsing and level filtering."""

    code = "NO_MATCHING_ENTRIES"


class CircuitOpenError(AnalysisError):
    """Raised when a provider circuit is open and the call was not attempted."""

    code = "CIRCUIT_OPEN"

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        self.provider = (
            breaker_name[len(BREAKER_PREFIX):]
            if breaker_name.startswith(BREAKER_PREFIX)
            else breaker_name
        )
        super().__init__(
            f"Circuit breaker is open for provider '{self.provider}'; request not attempted"
        )


class ProviderAuthError(AnalysisError):
    """Provider rejected the credentials (HTTP 401)."""

    code = "PROVIDER_AUTH"


class ProviderAuthorizationError(ProviderAuthError):
    """Provider refused access to the resource (HTTP 403)."""

    code = "PROVIDER_AUTHORIZATION"


class ProviderBadRequestError(AnalysisError):
    """Provider rejected the request body (HTTP 400)."""

    code = "PROVIDER_BAD_REQUEST"


class ProviderRateLimitError(AnalysisError):
    """Provider throttled the request (HTTP 429)."""

    code = "PROVIDER_RATE_LIMIT"
    retryable = True


class ProviderServerError(AnalysisError):
    """Provider failed server-side or answered with an unexpected status."""

    code = "PROVIDER_SERVER"
    retryable = True

    def __init__(self, message: str = "", status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NetworkError(AnalysisError):
    """Connection to the provider could not be established or was dropped."""

    code = "NETWORK"
    retryable = True


class AnalysisTimeoutError(AnalysisError):
    """An operation exceeded its time budget."""

    code = "TIMEOUT"
    retryable = True


class SerializationError(AnalysisError):
    """Provider payload could not be decoded."""

    code = "SERIALIZATION_ERROR"


class InternalError(AnalysisError):
    """Unexpected failure inside the pipeline."""

    code = "INTERNAL"


# Errors the provider adapter retries before giving up
RECOVERABLE_ERRORS = (
    ProviderRateLimitError,
    ProviderServerError,
    NetworkError,
    AnalysisTimeoutError,
)


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"      # Failing, reject requests
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreakerConfig(BaseModel):
    """Thresholds and timers for one circuit breaker."""

    failure_threshold: int = Field(default=3, ge=1)
    success_threshold: int = Field(default=2, ge=1)
    timeout_seconds: float = Field(default=120.0, gt=0, description="Per-call timeout")
    reset_timeout_seconds: float = Field(default=120.0, ge=0)

    @classmethod
    def for_provider(
        cls,
        request_timeout_seconds: float,
        failure_threshold: int = 3,
        success_threshold: int = 2,
        reset_timeout_seconds: float = 120.0,
        min_timeout_seconds: float = 120.0,
    ) -> "CircuitBreakerConfig":
        """Provider breaker config: the call timeout never drops below the floor."""
        return cls(
            failure_threshold=failure_threshold,
            success_threshold=success_threshold,
            timeout_seconds=max(float(request_timeout_seconds), min_timeout_seconds),
            reset_timeout_seconds=reset_timeout_seconds,
        )


class CircuitBreaker:
    """
    Circuit breaker guarding calls to one provider.

    Closed -> Open after ``failure_threshold`` consecutive failures.
    Open -> HalfOpen once ``reset_timeout_seconds`` have elapsed since the last failure.
    HalfOpen -> Closed after ``success_threshold`` successes; any failure reopens it.

    State reads and transitions serialize through a per-breaker lock. The lock
    is not held while the guarded operation runs.
    """

    def __init__(self, name: str, config: Optional[CircuitBreakerConfig] = None):
        """
        Initialize circuit breaker.

        Args:
            name: Registry key, conventionally ``ai_provider_<name>``
            config: Thresholds and timers
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()

        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.success_count = 0
        self.trip_count = 0
        self.last_failure_time: Optional[float] = None
        self.last_state_change: datetime = datetime.utcnow()
        self._lock = asyncio.Lock()

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute function with circuit breaker protection.

        Args:
            func: Async function to execute
            *args: Function arguments
            **kwargs: Function keyword arguments

        Returns:
            Function result

        Raises:
            CircuitOpenError: If the circuit is open; ``func`` is not invoked
            AnalysisTimeoutError: If ``func`` exceeds the breaker timeout
        """
        async with self._lock:
            if self.state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._transition(CircuitState.HALF_OPEN)
                    self.success_count = 0
                    logger.info(
                        "circuit_breaker_half_open",
                        name=self.name,
                        message="Attempting to recover",
                    )
                else:
                    raise CircuitOpenError(self.name)

        try:
            result = await asyncio.wait_for(
                func(*args, **kwargs), timeout=self.config.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            await self._on_failure()
            raise AnalysisTimeoutError(
                f"Provider call timed out after {self.config.timeout_seconds:g} seconds"
            ) from e
        except Exception:
            await self._on_failure()
            raise

        await self._on_success()
        return result

    async def _on_success(self) -> None:
        """Handle successful call."""
        async with self._lock:
            if self.state == CircuitState.HALF_OPEN:
                self.success_count += 1
                if self.success_count >= self.config.success_threshold:
                    self._close_circuit()
            else:
                self.failure_count = 0

    async def _on_failure(self) -> None:
        """Handle failed call."""
        async with self._lock:
            self.last_failure_time = time.monotonic()

            if self.state == CircuitState.HALF_OPEN:
                self.failure_count = 1
                self.success_count = 0
                self._open_circuit()
                return

            self.failure_count += 1
            if (
                self.state == CircuitState.CLOSED
                and self.failure_count >= self.config.failure_threshold
            ):
                self._open_circuit()

    def _open_circuit(self) -> None:
        """Open the circuit."""
        self._transition(CircuitState.OPEN)
        self.trip_count += 1
        logger.warning(
            "circuit_breaker_opened",
            name=self.name,
            failure_count=self.failure_count,
            threshold=self.config.failure_threshold,
        )

    def _close_circuit(self) -> None:
        """Close the circuit."""
        self._transition(CircuitState.CLOSED)
        self.failure_count = 0
        self.success_count = 0
        logger.info(
            "circuit_breaker_closed",
            name=self.name,
            message="Circuit recovered",
        )

    def _transition(self, state: CircuitState) -> None:
        self.state = state
        self.last_state_change = datetime.utcnow()
        get_metrics_collector().record_breaker_transition(self.name, state.value)

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt reset."""
        if self.last_failure_time is None:
            return True

        elapsed = time.monotonic() - self.last_failure_time
        return elapsed >= self.config.reset_timeout_seconds

    async def reset(self) -> None:
        """Force the breaker back to a fresh Closed state."""
        async with self._lock:
            self._transition(CircuitState.CLOSED)
            self.failure_count = 0
            self.success_count = 0
            self.last_failure_time = None
        logger.info("circuit_breaker_reset", name=self.name)

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "success_count": self.success_count,
            "trip_count": self.trip_count,
            "last_state_change": self.last_state_change.isoformat(),
        }


class CircuitBreakerRegistry:
    """
    Process-lifetime map of breaker name to breaker.

    Breakers are created lazily with the config supplied on first access;
    later callers get the existing breaker regardless of the config they pass.
    """

    def __init__(self) -> None:
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = asyncio.Lock()

    async def get_or_create(
        self, name: str, config: Optional[CircuitBreakerConfig] = None
    ) -> CircuitBreaker:
        """Get or create a circuit breaker."""
        async with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                breaker = CircuitBreaker(name=name, config=config)
                self._breakers[name] = breaker
                logger.info(
                    "circuit_breaker_created",
                    name=name,
                    failure_threshold=breaker.config.failure_threshold,
                    timeout_seconds=breaker.config.timeout_seconds,
                )
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Look up a breaker without creating it."""
        return self._breakers.get(name)

    def get_states(self) -> List[Dict[str, Any]]:
        """Snapshot every breaker's state."""
        return [breaker.get_state() for breaker in self._breakers.values()]

    async def reset_all(self) -> None:
        """Reset every registered breaker to Closed."""
        for breaker in list(self._breakers.values()):
            await breaker.reset()


def breaker_name_for(provider_name: str) -> str:
    """Registry key for a provider's breaker."""
    return f"{BREAKER_PREFIX}{provider_name}"


# Global breaker registry for the HTTP surface
_breaker_registry = CircuitBreakerRegistry()


def get_breaker_registry() -> CircuitBreakerRegistry:
    """Get the process-global circuit breaker registry."""
    return _breaker_registry


def build_retrying(
    max_attempts: int = 4,
    multiplier: float = 1.0,
    max_wait: float = 30.0,
    exceptions: tuple = RECOVERABLE_ERRORS,
) -> AsyncRetrying:
    """
    Build an async retry controller with exponential backoff.

    The last exception is re-raised unchanged once attempts run out.

    Usage:
        async for attempt in build_retrying(max_attempts=4):
            with attempt:
                result = await call_provider()
    """
    return AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=0, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )


def with_retry(
    max_attempts: int = 3,
    min_wait: int = 1,
    max_wait: int = 10,
    exceptions: tuple = RECOVERABLE_ERRORS,
):
    """
    Decorator for retry logic with exponential backoff.

    Usage:
        @with_retry(max_attempts=3, exceptions=(NetworkError,))
        async def fetch_models():
            ...
    """
    def decorator(func: Callable):
        @wraps(func)
        @retry(
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            retry=retry_if_exception_type(exceptions),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        async def wrapper(*args, **kwargs):
            return await func(*args, **kwargs)

        return wrapper
    return decorator


class ErrorHandler:
    """Single conversion point from typed errors to caller-visible output."""

    @staticmethod
    def is_retryable(error: Exception) -> bool:
        """Determine if error is retryable."""
        return isinstance(error, AnalysisError) and error.retryable

    @staticmethod
    def to_response(error: Exception) -> Dict[str, Any]:
        """
        Describe an error for API responses and stored results.

        Args:
            error: Exception raised by the pipeline

        Returns:
            Dict with code, truncated message and retryable flag
        """
        if isinstance(error, AnalysisError):
            code = error.code
            message = error.user_message
        else:
            code = InternalError.code
            message = truncate_error_message(f"Internal error: {error}")

        response: Dict[str, Any] = {
            "code": code,
            "message": message,
            "retryable": ErrorHandler.is_retryable(error),
            "timestamp": datetime.utcnow().isoformat(),
        }
        if isinstance(error, CircuitOpenError):
            response["provider"] = error.provider
        return response
