from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..logging_config import log_structured_error
from .internal import (
    CommandUsageError,
    ConfigError,
    IRCoreError,
    NetworkError,
    ParsingError,
    TransferError,
)


T = TypeVar("T")


class RetryableOperationError(Exception):
    """Exception raised to indicate an operation should be retried."""


def categorize_error(error: BaseException) -> str:
    """Map an exception onto the category used by the error aggregator."""
    if isinstance(error, NetworkError | OSError | TimeoutError):
        return "network"
    if isinstance(error, TransferError):
        return "transfer"
    if isinstance(error, CommandUsageError):
        return "command"
    if isinstance(error, ParsingError):
        return "parsing"
    if isinstance(error, ConfigError):
        return "config"
    if isinstance(error, IRCoreError):
        return "internal"
    return "unknown"


def log_error(
    message: str,
    error: BaseException,
    context: dict | None = None,
    level: int = logging.ERROR,
) -> None:
    """Logs an error message with the associated exception details.

    Args:
        message: A descriptive message about the error context.
        error: The exception instance to be logged.
        context: Optional additional context data for debugging.
        level: Logging level for the record.
    """
    log_structured_error(
        error_type=categorize_error(error),
        message=f"{message}: {error}",
        exception=error,
        context=context,
        level=level,
    )


async def retry_async(
    operation: Callable[[int], Awaitable[tuple[T, bool]]],
    context: str,
    max_attempts: int = 3,
    max_wait: float = 60.0,
    wait_multiplier: float = 1.0,
) -> T:
    """Run ``operation`` with tenacity-driven retries.

    The core never retries on its own; this helper is for callers that own a
    retry policy (the console front-end uses it for the initial connect).

    Args:
        operation: Async callable taking the attempt number and returning
            ``(result, should_retry)``.
        context: Descriptive context for log lines.
        max_attempts: Maximum number of attempts.
        max_wait: Upper bound for the exponential wait between attempts.
        wait_multiplier: Exponential backoff multiplier (0 disables waiting).

    Returns:
        The result of the first attempt that did not ask for a retry.

    Raises:
        NetworkError: If every attempt failed.
    """
    attempt_count = 0

    def before_sleep(retry_state: RetryCallState) -> None:
        logging.getLogger("ircore").info(
            f"Retrying {context} (attempt {retry_state.attempt_number + 1}/{max_attempts})"
        )

    async def wrapped_operation() -> T:
        nonlocal attempt_count
        attempt_count += 1
        result, should_retry = await operation(attempt_count)
        if should_retry:
            raise RetryableOperationError(f"Operation indicated retry needed for {context}")
        return result

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=wait_multiplier, max=max_wait),
        retry=retry_if_exception_type(
            (RetryableOperationError, NetworkError, OSError, TimeoutError)
        ),
        before_sleep=before_sleep,
        reraise=True,
    )

    try:
        return await retrying(wrapped_operation)
    except (RetryableOperationError, NetworkError, OSError, TimeoutError) as e:
        log_error(
            f"All retry attempts exhausted for {context}",
            e,
            context={"max_attempts": max_attempts, "operation": context},
        )
        raise NetworkError(
            f"{context} failed after {attempt_count} attempt(s): {e}",
            data={"attempts": attempt_count},
        ) from e
