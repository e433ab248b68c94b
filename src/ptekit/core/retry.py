"""Retry with exponential backoff for upstream HTTP calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger("ptekit.retry")

__all__ = ["RetryPolicy", "retry_with_backoff"]

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Backoff schedule for requests that are safe to repeat.

    The delay before retry *n* (0-based) is
    ``base_delay_seconds * exponential_base ** n`` capped at
    ``max_delay_seconds``.
    """

    max_retries: int = Field(default=2, ge=0)
    base_delay_seconds: float = Field(default=0.5, gt=0.0)
    max_delay_seconds: float = Field(default=10.0, gt=0.0)
    exponential_base: float = Field(default=2.0, gt=0.0)


async def retry_with_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    policy: RetryPolicy,
    *args: Any,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    **kwargs: Any,
) -> T:
    """Await *fn* up to ``1 + policy.max_retries`` times.

    Exceptions outside *retry_on* are not retried.  When every attempt
    fails the final exception is re-raised.
    """
    last_exc: BaseException | None = None
    for attempt in range(1 + policy.max_retries):
        try:
            return await fn(*args, **kwargs)
        except retry_on as exc:
            last_exc = exc
            if attempt >= policy.max_retries:
                break
            delay = min(
                policy.base_delay_seconds * (policy.exponential_base**attempt),
                policy.max_delay_seconds,
            )
            logger.warning(
                "Upstream attempt %d of %d failed: %s (next try in %.1fs)",
                attempt + 1,
                policy.max_retries + 1,
                exc,
                delay,
                extra={"attempt": attempt + 1, "delay": delay},
            )
            await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc
