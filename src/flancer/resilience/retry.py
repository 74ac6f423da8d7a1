"""Retry decorator for best-effort collaborator calls.

Retries with exponential backoff and jitter, logging a warning before each
retry.  The final exception is re-raised so the caller decides whether it
is fatal; errors listed in ``give_up_on`` are never retried.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def _before_sleep_log(retry_state: RetryCallState) -> None:
    """Log a warning before each retry attempt.

    Args:
        retry_state: Tenacity retry state with attempt info.
    """
    operation = getattr(retry_state.fn, "_operation", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "Retrying collaborator call",
        operation=operation,
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(exception),
    )


def resilient_call(
    operation: str,
    *,
    attempts: int = 3,
    initial_wait: float = 1.0,
    max_wait: float = 30.0,
    jitter: float = 1.0,
    give_up_on: tuple[type[BaseException], ...] = (),
) -> Callable[[F], F]:
    """Create a retry decorator for a sync or async collaborator call.

    Args:
        operation: Human-readable name for the call (used in logs).
        attempts: Maximum number of attempts, including the first.
        initial_wait: First backoff in seconds.
        max_wait: Upper bound on any single backoff.
        jitter: Maximum random jitter added to each backoff.
        give_up_on: Exception types that are re-raised immediately.

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        func._operation = operation  # type: ignore[attr-defined]

        options: dict[str, Any] = {}
        if give_up_on:
            options["retry"] = retry_if_not_exception_type(give_up_on)

        return retry(  # type: ignore[no-any-return]
            stop=stop_after_attempt(attempts),
            wait=wait_exponential_jitter(initial=initial_wait, max=max_wait, jitter=jitter),
            before_sleep=_before_sleep_log,
            reraise=True,
            **options,
        )(func)

    return decorator
