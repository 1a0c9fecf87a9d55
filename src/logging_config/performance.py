"""Performance Logging.

Timing decorator for the engine's long-running coroutines (rollouts,
rollbacks, monitoring ticks).
"""

import functools
import logging
import time
from typing import Any, Callable, Optional

from src.logging_config.config import DEFAULT_LOGGING_CONFIG


def log_duration(
    operation: Optional[str] = None,
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
) -> Callable:
    """Decorator that logs how long a coroutine took.

    Completed calls are logged at DEBUG, calls above the threshold at
    WARNING and failures at ERROR. Cancellation is not logged as a failure.

    Example:
        @log_duration("rollback")
        async def execute_rollback(self, ...):
            ...
    """
    if threshold_ms is None:
        threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms

    def decorator(func: Callable) -> Callable:
        _logger = logging.getLogger(logger_name or func.__module__)
        name = operation or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                duration_ms = (time.perf_counter() - start) * 1000
                _logger.error(
                    "%s failed after %.1fms: %s",
                    name,
                    duration_ms,
                    type(exc).__name__,
                    extra={"duration_ms": round(duration_ms, 2)},
                )
                raise
            duration_ms = (time.perf_counter() - start) * 1000
            extra = {"duration_ms": round(duration_ms, 2)}
            if duration_ms >= threshold_ms:
                _logger.warning("Slow operation: %s took %.1fms", name, duration_ms, extra=extra)
            else:
                _logger.debug("%s completed in %.1fms", name, duration_ms, extra=extra)
            return result

        return wrapper

    return decorator
