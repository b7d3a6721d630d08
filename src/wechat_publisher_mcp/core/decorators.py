"""Decorators for the WeChat Publisher MCP server."""

import functools
import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from .logging import logger, request_id_ctx

P = ParamSpec("P")
R = TypeVar("R")


def track_request(
    endpoint_name: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Decorator to track OAuth endpoint requests with timing and error logging.

    Args:
        endpoint_name: Name of the endpoint being tracked

    Returns:
        Decorated function with request tracking
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            request_id = str(uuid.uuid4())[:8]
            start_time = time.perf_counter()

            # Store request_id in ContextVar for automatic logging
            token = request_id_ctx.set(request_id)

            logger.debug("Starting %s request", endpoint_name)

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                duration = time.perf_counter() - start_time
                logger.error("Failed %s after %.3fs: %s", endpoint_name, duration, e)
                raise
            else:
                duration = time.perf_counter() - start_time
                if logger.isEnabledFor(logging.DEBUG):
                    logger.debug("Completed %s in %.3fs", endpoint_name, duration)
            finally:
                request_id_ctx.reset(token)

            return result

        return wrapper

    return decorator
