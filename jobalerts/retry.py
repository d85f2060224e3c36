"""Retry helpers with exponential backoff — stdlib only."""
from __future__ import annotations

import asyncio
import functools
import logging
import random
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int,
    *,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    delay = min(base_delay * (backoff_factor ** (attempt - 1)), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True
    retryable: Tuple[Type[BaseException], ...] = (Exception,)

    def after_failure(self, label: str, attempt: int, exc: BaseException) -> float | None:
        """Log a failed attempt; return the wait before the next one, or None when out of attempts."""
        if attempt >= self.max_attempts:
            logger.error("%s failed after %d attempts: %s", label, self.max_attempts, exc)
            return None
        delay = backoff_delay(
            attempt,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_factor=self.backoff_factor,
            jitter=self.jitter,
        )
        logger.warning(
            "%s attempt %d/%d failed (%s), retrying in %.1fs",
            label, attempt, self.max_attempts, exc, delay,
        )
        return delay


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable:
    """Decorator: retries the wrapped function with exponential backoff."""
    policy = RetryPolicy(max_attempts, base_delay, max_delay, backoff_factor, jitter, retryable)

    def decorator(fn: Callable) -> Callable:
        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except policy.retryable as exc:
                    delay = policy.after_failure(fn.__qualname__, attempt, exc)
                    if delay is None:
                        raise
                time.sleep(delay)
                attempt += 1

        return wrapper

    return decorator


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    *,
    label: str,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
) -> Any:
    """Await ``fn()`` until it succeeds, sleeping with backoff between attempts."""
    policy = RetryPolicy(max_attempts, base_delay, max_delay, backoff_factor, jitter, retryable)
    attempt = 1
    while True:
        try:
            return await fn()
        except policy.retryable as exc:
            delay = policy.after_failure(label, attempt, exc)
            if delay is None:
                raise
        await asyncio.sleep(delay)
        attempt += 1
