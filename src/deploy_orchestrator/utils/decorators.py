"""Decorator utilities for cross-cutting concerns."""
import time
import logging
import functools
from typing import Any, Callable, Optional, TypeVar, cast

# Setup logging
logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])

def log_execution_time(description: str) -> Callable[[F], F]:
    """Decorator for timing and logging a deployment step.

    Args:
        description: Human readable name of the step

    Returns:
        Decorator that logs start, completion and duration of the call
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            start_time = time.monotonic()
            try:
                result = func(*args, **kwargs)
                duration = time.monotonic() - start_time
                logger.info(f"Completed: {description} in {duration:.2f}s")
                return result
            except Exception as e:
                duration = time.monotonic() - start_time
                logger.error(f"Failed: {description} after {duration:.2f}s - {str(e)}")
                raise
        return cast(F, wrapper)
    return decorator

def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: tuple = (Exception,), logger_name: Optional[str] = None,
          sleep: Callable[[float], None] = time.sleep):
    """Decorator for retrying functions with exponential backoff.

    Args:
        max_attempts: Maximum number of retry attempts
        delay: Initial delay between retries in seconds
        backoff: Backoff multiplier (e.g., 2.0 means delay doubles each retry)
        exceptions: Tuple of exceptions to catch for retry
        logger_name: Optional logger name (defaults to module logger)
        sleep: Function used to wait between attempts

    Returns:
        Decorator function
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempt = 1
            current_delay = delay

            while attempt <= max_attempts:
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        retry_logger.error(f"All {max_attempts} attempts failed for {func.__name__}: {str(e)}")
                        raise

                    retry_logger.warning(
                        f"Attempt {attempt}/{max_attempts} for {func.__name__} failed: {str(e)}. "
                        f"Retrying in {current_delay:.2f}s"
                    )

                    sleep(current_delay)
                    attempt += 1
                    current_delay *= backoff

        return cast(F, wrapper)

    return decorator
