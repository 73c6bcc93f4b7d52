"""Retry utilities for remote platform calls."""

import time
from typing import Callable, Optional, TypeVar
from erdeploy.config.logging import get_logger
from erdeploy.errors import RemoteOperationError

logger = get_logger(__name__)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = (408, 429, 502, 503, 504)


def is_transient_error(error: Exception) -> bool:
    """
    Check if an error is transient and should be retried.

    Args:
        error: Exception to check

    Returns:
        True if error is transient
    """
    if isinstance(error, RemoteOperationError) and error.transient:
        return True
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    status_code: Optional[int] = getattr(error, "status_code", None)
    return status_code in TRANSIENT_STATUS_CODES


def retry_with_backoff(
    func: Callable[[], T],
    max_retries: int,
    base_delay: float,
    operation_name: str = "operation",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Retry a function with exponential backoff.

    Only transient errors are retried; anything else is raised immediately.

    Args:
        func: Function to retry (no arguments)
        max_retries: Maximum number of attempts (at least one is always made)
        base_delay: Base delay in seconds for exponential backoff
        operation_name: Name of operation for logging
        sleep: Sleep function, replaceable in tests

    Returns:
        Result of function call

    Raises:
        Last exception if all retries fail
    """
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            return func()
        except Exception as e:
            if is_transient_error(e) and attempt < attempts - 1:
                retry_delay = base_delay * (2 ** attempt)
                logger.warning(
                    f"Transient error in {operation_name} on attempt {attempt + 1}/{attempts}: "
                    f"{e}. Retrying in {retry_delay:.1f} seconds..."
                )
                sleep(retry_delay)
                continue
            logger.error(f"{operation_name} failed: {e}")
            raise

    raise RuntimeError(f"{operation_name} failed after {attempts} attempts")
