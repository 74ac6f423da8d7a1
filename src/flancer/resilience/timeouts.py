"""Bounded waits for collaborator calls.

Every Persistent Store and Directory Service call made by the engine goes
through :func:`bounded`; a timeout surfaces as a retriable ``TransientError``
and never as a silent success.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

import structlog

from flancer.domain.errors import TransientError

logger = structlog.get_logger()

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], *, operation: str, timeout: float) -> T:
    """Await *awaitable*, raising ``TransientError`` if it exceeds *timeout* seconds.

    Args:
        awaitable: The collaborator call to wait on.
        operation: Human-readable name used in logs and the error message.
        timeout: Maximum seconds to wait.

    Returns:
        The awaitable's result.

    Raises:
        TransientError: If the call timed out.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except TimeoutError as exc:
        logger.warning("collaborator_timeout", operation=operation, timeout=timeout)
        raise TransientError(f"{operation} timed out after {timeout}s") from exc
