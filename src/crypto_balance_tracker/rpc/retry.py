"""Retry with exponential backoff and timeouts for upstream calls."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, TypeVar

from crypto_balance_tracker.core.exceptions import UpstreamFetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryConfig:
    """
    Configuration for retry behavior.

    Parameters
    ----------
    max_retries : int
        Maximum number of retry attempts
    base_delay : float
        Initial delay in seconds before first retry
    max_delay : float
        Maximum delay between retries
    exponential_base : float
        Base for exponential backoff calculation

    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base

    def get_delay(self, attempt: int) -> float:
        """
        Calculate delay for a given retry attempt using exponential backoff.

        Parameters
        ----------
        attempt : int
            Current attempt number (0-indexed)

        Returns
        -------
        float
            Delay in seconds

        """
        delay = self.base_delay * (self.exponential_base**attempt)
        return min(delay, self.max_delay)


def async_retry(
    config: RetryConfig | None = None,
    retry_on: tuple[type[Exception], ...] = (UpstreamFetchError,),
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """
    Decorator adding retry with exponential backoff to a coroutine function.

    Parameters
    ----------
    config : RetryConfig | None
        Retry configuration. Uses default config if None.
    retry_on : tuple[type[Exception], ...]
        Exception types that trigger a retry; anything else propagates at once

    Returns
    -------
    Callable
        Decorated coroutine function with retry logic

    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(config.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt == config.max_retries:
                        raise

                    delay = config.get_delay(attempt)
                    logger.debug(
                        "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                        func.__name__,
                        attempt + 1,
                        config.max_retries + 1,
                        delay,
                        e,
                    )
                    await asyncio.sleep(delay)

            msg = f"{func.__name__} exhausted retries"
            raise UpstreamFetchError(msg)

        return wrapper

    return decorator


async def call_upstream(awaitable: Awaitable[T], timeout: float | None, description: str) -> T:
    """
    Await an upstream call, normalizing every failure to UpstreamFetchError.

    Parameters
    ----------
    awaitable : Awaitable[T]
        The upstream call
    timeout : float | None
        Seconds before the call is abandoned. None disables the timeout.
    description : str
        What is being fetched, for error messages

    Returns
    -------
    T
        The call's result

    Raises
    ------
    UpstreamFetchError
        On timeout or any exception raised by the collaborator

    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except UpstreamFetchError:
        raise
    except TimeoutError as e:
        msg = f"{description} timed out after {timeout}s"
        raise UpstreamFetchError(msg) from e
    except Exception as e:
        msg = f"{description} failed: {e}"
        raise UpstreamFetchError(msg) from e
