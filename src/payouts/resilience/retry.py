"""Resilient API call decorator with tenacity retry.

Retries transport-level failures 3 times with exponential backoff and
jitter, logs each retry, and re-raises the last error once attempts are
exhausted.  HTTP status errors and malformed responses are not retried.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import httpx
import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (httpx.TransportError,)


def _final_failure_logger(api_name: str) -> Callable[[RetryCallState], Any]:
    def log_final_failure(retry_state: RetryCallState) -> Any:
        """Log failure on final retry exhaustion and re-raise the last error."""
        outcome = retry_state.outcome
        if outcome is None:
            raise RuntimeError(f"{api_name}: retries exhausted without an outcome")
        exception = outcome.exception()
        logger.error(
            "API call failed after all retries",
            api_name=api_name,
            attempts=retry_state.attempt_number,
            exception=str(exception),
        )
        return outcome.result()

    return log_final_failure


def _before_sleep_logger(api_name: str) -> Callable[[RetryCallState], None]:
    def before_sleep_log(retry_state: RetryCallState) -> None:
        """Log a warning before each retry attempt."""
        logger.warning(
            "Retrying API call",
            api_name=api_name,
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    return before_sleep_log


def resilient_api_call(
    api_name: str,
    *,
    attempts: int = 3,
    wait: wait_base | None = None,
) -> Callable[[F], F]:
    """Create a retry decorator for an API call.

    Returns a tenacity retry decorator configured with:
    - 3 attempts maximum
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Retry only on ``httpx.TransportError`` (timeouts, connection resets)
    - Warning log before each retry
    - Original exception re-raised after exhaustion

    Works for plain functions, bound methods and ``async def`` callables.

    Args:
        api_name: Human-readable name for the API (used in logs).
        attempts: Maximum number of attempts.
        wait: Override the wait strategy (tests pass ``wait_none()``).

    Returns:
        A decorator that wraps the function with retry logic.
    """

    def decorator(func: F) -> F:
        wrapped = retry(
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            stop=stop_after_attempt(attempts),
            wait=wait or wait_exponential_jitter(initial=1, max=30, jitter=5),
            before_sleep=_before_sleep_logger(api_name),
            retry_error_callback=_final_failure_logger(api_name),
            reraise=True,
        )(func)

        return wrapped  # type: ignore[return-value]

    return decorator
