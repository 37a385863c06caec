"""Bounded exponential-backoff retry for network operations.

Wraps any coroutine-returning callable. Only NetworkError is retried; the
delay after failed attempt ``i`` is ``2**i * base_delay``. When the budget is
spent the last error propagates unchanged and the caller decides whether
it is fatal.
"""

from __future__ import annotations

import asyncio
import functools
from typing import Any, Awaitable, Callable, TypeVar

import bittensor as bt

from .errors import NetworkError

T = TypeVar("T")

RetryHook = Callable[[int, float, BaseException], None]


def _log_retry(attempt: int, delay: float, error: BaseException) -> None:
    bt.logging.warning({"retry": {"attempt": attempt + 1, "wait": delay, "error": str(error)}})


class RetryExecutor:
    """Runs an operation with bounded retry on NetworkError."""

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        on_retry: RetryHook | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.on_retry = on_retry or _log_retry
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        max_retries: int | None = None,
    ) -> T:
        """Await ``operation()`` up to ``max_retries`` times."""
        attempts = max_retries if max_retries is not None else self.max_retries
        for attempt in range(attempts):
            try:
                return await operation()
            except NetworkError as e:
                if attempt == attempts - 1:
                    raise
                delay = (2 ** attempt) * self.base_delay
                self.on_retry(attempt, delay, e)
                await self._sleep(delay)
        raise NetworkError("no attempts made")


def retrying(max_retries: int = 3, base_delay: float = 1.0):
    """Decorator form of RetryExecutor for coroutine functions."""

    executor = RetryExecutor(max_retries=max_retries, base_delay=base_delay)

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await executor.execute(lambda: fn(*args, **kwargs))

        return wrapper

    return decorator


__all__ = ["RetryExecutor", "retrying"]
