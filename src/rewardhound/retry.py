"""
rewardhound/retry.py

Timeout and retry policy for calls that depend on external network
availability (claim file downloads, historical event queries).
"""

import asyncio
import logging
import random
from dataclasses import dataclass, asdict, fields
from typing import Any, Awaitable, Callable, Dict, Tuple, Type, TypeVar

from .errors import FetchError

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0
    jitter: bool = True

    def get_delay(self, attempt: int) -> float:
        """Calculate delay for retry attempt."""
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )
        if self.jitter:
            delay *= (0.5 + random.random())
        return delay

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown retry settings: {sorted(unknown)}")
        return cls(**data)

    @classmethod
    def no_retry(cls) -> "RetryConfig":
        return cls(max_retries=0)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    timeout: float,
    retry: RetryConfig,
    description: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (FetchError, ConnectionError),
) -> T:
    """
    Run an async operation with a per-attempt timeout and retries.

    Timeouts and errors listed in retry_on are retried up to
    retry.max_retries times. Anything else propagates immediately.

    Raises:
        FetchError: When every attempt failed
    """
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(operation(), timeout=timeout)
        except asyncio.TimeoutError:
            last_error: BaseException = FetchError(
                f"{description} timed out after {timeout}s"
            )
        except retry_on as e:
            last_error = e

        if attempt >= retry.max_retries:
            logger.warning(
                f"{description} failed after {attempt + 1} attempt(s): {last_error}"
            )
            if isinstance(last_error, FetchError):
                raise last_error
            raise FetchError(f"{description} failed: {last_error}") from last_error

        delay = retry.get_delay(attempt)
        logger.debug(
            f"{description} attempt {attempt + 1} failed ({last_error}), "
            f"retrying in {delay:.2f}s"
        )
        await asyncio.sleep(delay)
        attempt += 1
