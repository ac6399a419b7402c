"""Fixed-interval polling with a hard attempt ceiling."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import GenerationTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


async def poll_until(
    check: Callable[[], Awaitable[T]],
    resolve: Callable[[T], Optional[R]],
    *,
    interval: float = 2.0,
    max_attempts: int = 60,
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> R:
    """Call ``check`` until ``resolve`` returns a value, sleeping ``interval`` between calls.

    ``resolve`` returns ``None`` to keep polling and may raise to abort. After
    ``max_attempts`` unresolved checks a :class:`GenerationTimeoutError` is raised
    without issuing another check.
    """

    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        logger.info("Checking %s status... (attempt %d/%d)", label, attempt, max_attempts)
        result = resolve(await check())
        if result is not None:
            return result
        if attempt < max_attempts:
            await sleep(interval)

    raise GenerationTimeoutError(
        f"Generation timed out after {max_attempts} attempts ({max_attempts * interval:g} seconds)"
    )


__all__ = ["Sleep", "poll_until"]
