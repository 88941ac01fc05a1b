# lterbrowser: redact, assemble and export LTER station time series
# Copyright (C) 2025 Ruaraidh Dobson, South London Scientific

# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.

# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Decorators for the cross-cutting concerns of lterbrowser.

with_retry() and retry_on_network_error wrap calls to the time-series backend
with exponential backoff. with_logging() records entry, exit and failure of
the public export operations.
"""

import logging
from functools import wraps
from typing import Callable, TypeVar

import requests
from tenacity import (
    after_log,
    before_sleep_log,
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

F = TypeVar("F", bound=Callable)

logger = logging.getLogger(__name__)


def is_server_error(exception: BaseException) -> bool:
    """True for an HTTPError carrying a 5xx response."""
    if isinstance(exception, requests.exceptions.HTTPError):
        if exception.response is not None:
            return 500 <= exception.response.status_code < 600
    return False


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1.0,
    max_wait: float = 10.0,
    multiplier: float = 2.0,
) -> Callable[[F], F]:
    """
    Retry a backend call with exponential backoff.

    Only transient failures are retried: connection errors, timeouts and
    HTTP 5xx responses. A 4xx response means the query itself is wrong and
    is raised at once. After the last attempt the original exception is
    re-raised.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        min_wait: Minimum wait between attempts in seconds (default: 1.0)
        max_wait: Maximum wait between attempts in seconds (default: 10.0)
        multiplier: Multiplier for exponential backoff (default: 2.0)

    Returns:
        Callable: Decorated function with retry logic

    Example:
        >>> @with_retry(max_attempts=5)
        ... def ping(session, url):
        ...     response = session.get(url)
        ...     response.raise_for_status()
        ...     return response
    """

    def decorator(func: F) -> F:
        @retry(
            retry=(
                retry_if_exception_type(
                    (requests.exceptions.ConnectionError, requests.exceptions.Timeout)
                )
                | retry_if_exception(is_server_error)
            ),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            after=after_log(logger, logging.DEBUG),
            reraise=True,
        )
        @wraps(func)
        def wrapper(*args, **kwargs):
            return func(*args, **kwargs)

        return wrapper

    return decorator


def with_logging(logger_name: str | None = None) -> Callable[[F], F]:
    """
    Log entry and exit of a function at INFO level.

    Failures are logged at ERROR level with the traceback and re-raised.
    Argument values are not logged, since filters may name restricted data.

    Args:
        logger_name: Name of logger to use. If None, uses the module name.

    Example:
        >>> @with_logging("lterbrowser.export")
        ... def export(db, role, filter):
        ...     return write(db.series(role, filter))
    """

    def decorator(func: F) -> F:
        func_logger = logging.getLogger(logger_name or func.__module__)

        @wraps(func)
        def wrapper(*args, **kwargs):
            func_logger.info(
                f"Calling {func.__name__}",
                extra={
                    "function": func.__name__,
                    "args_count": len(args),
                    "kwargs_keys": list(kwargs.keys()),
                },
            )

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                func_logger.error(
                    f"Error in {func.__name__}: {e}",
                    extra={
                        "function": func.__name__,
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )
                raise

            func_logger.info(
                f"Completed {func.__name__}", extra={"function": func.__name__}
            )
            return result

        return wrapper

    return decorator


# Standard retry for queries against the time-series backend
retry_on_network_error = with_retry(
    max_attempts=3, min_wait=1.0, max_wait=10.0, multiplier=2.0
)
