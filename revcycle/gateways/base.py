"""
Base Gateway Types for External Transports.

Implements the shared plumbing of outbound integrations:
- Transport error hierarchy
- Health monitoring with a simple circuit breaker
- Retry with exponential backoff
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
import asyncio
import logging
from functools import wraps

from revcycle.core.enums import ProviderStatus

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """Base exception for gateway transport errors."""

    retryable: bool = True

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.original_error = original_error


class ProviderUnavailableError(GatewayError):
    """Raised when the remote endpoint cannot be reached or answers 5xx."""

    pass


class ProviderTimeoutError(GatewayError):
    """Raised when a remote request times out."""

    pass


class ProviderRateLimitError(GatewayError):
    """Raised when the remote rate limit is exceeded."""

    pass


class ProviderAuthenticationError(GatewayError):
    """Raised when the remote endpoint rejects our credentials."""

    retryable = False


class MalformedResponseError(GatewayError):
    """Raised when the remote answer cannot be parsed."""

    pass


@dataclass
class GatewayConfig:
    """Configuration for a gateway instance."""

    base_url: str
    api_key: Optional[str] = None
    timeout_seconds: float = 30.0
    retry_attempts: int = 3
    retry_delay_seconds: float = 1.0
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout_seconds: float = 60.0


@dataclass
class ProviderHealth:
    """Health status for a remote provider."""

    status: ProviderStatus = ProviderStatus.UNKNOWN
    last_check: Optional[datetime] = None
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    avg_latency_ms: float = 0.0
    request_count: int = 0
    error_count: int = 0
    circuit_open_until: Optional[datetime] = None

    @property
    def is_circuit_open(self) -> bool:
        """Check if circuit breaker is open."""
        if self.circuit_open_until is None:
            return False
        return datetime.now(timezone.utc) < self.circuit_open_until

    def record_success(self, latency_ms: float) -> None:
        """Record a successful request."""
        self.consecutive_failures = 0
        self.request_count += 1
        self.last_check = datetime.now(timezone.utc)
        self.circuit_open_until = None
        # Rolling average latency
        if self.request_count == 1:
            self.avg_latency_ms = latency_ms
        else:
            self.avg_latency_ms = self.avg_latency_ms * 0.9 + latency_ms * 0.1
        self.status = ProviderStatus.HEALTHY

    def record_failure(
        self, error: str, circuit_breaker_threshold: int, timeout_seconds: float
    ) -> None:
        """Record a failed request."""
        self.consecutive_failures += 1
        self.error_count += 1
        self.request_count += 1
        self.last_error = error
        self.last_check = datetime.now(timezone.utc)

        if self.consecutive_failures >= circuit_breaker_threshold:
            self.circuit_open_until = datetime.now(timezone.utc) + timedelta(
                seconds=timeout_seconds
            )
            self.status = ProviderStatus.UNHEALTHY
        elif self.consecutive_failures >= max(1, circuit_breaker_threshold // 2):
            self.status = ProviderStatus.DEGRADED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat() if self.last_check else None,
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
            "avg_latency_ms": round(self.avg_latency_ms, 1),
            "request_count": self.request_count,
            "error_count": self.error_count,
            "circuit_open": self.is_circuit_open,
        }


def with_retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (ProviderRateLimitError,),
):
    """Decorator for retry logic with exponential backoff."""

    def decorator(func: Callable):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            last_exception = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return await func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    if attempt < max_attempts - 1:
                        logger.warning(
                            f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                            f"Retrying in {current_delay:.1f}s..."
                        )
                        await asyncio.sleep(current_delay)
                        current_delay *= backoff_factor
                    else:
                        logger.error(
                            f"All {max_attempts} attempts failed. Last error: {e}"
                        )

            raise last_exception

        return wrapper

    return decorator
