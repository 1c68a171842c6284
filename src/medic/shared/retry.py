"""Bounded retry combinator."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def retry_bounded(
    action: Callable[[int], Awaitable[T | None]],
    *,
    attempts: int,
    between: Callable[[], Awaitable[None]] | None = None,
    label: str = "operation",
) -> T | None:
    """Run ``action(attempt)`` up to ``attempts`` times until it returns non-None.

    ``between`` runs after every unsuccessful attempt except the last one.
    Returns None when all attempts came back empty.
    """
    for attempt in range(1, attempts + 1):
        logger.info("%s: attempt %d/%d", label, attempt, attempts)
        result = await action(attempt)
        if result is not None:
            return result
        if attempt < attempts and between is not None:
            await between()

    logger.error("%s: gave up after %d attempt(s)", label, attempts)
    return None
