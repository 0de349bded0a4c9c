"""Logging and invocation helpers shared across the package."""

import inspect
import logging
import sys
from typing import Any, Callable, Optional, Union

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_PACKAGE_LOGGER = "asyncstate"

# Library code stays silent unless the application configures logging.
logging.getLogger(_PACKAGE_LOGGER).addHandler(logging.NullHandler())


async def call_maybe_async(callback: Callable[..., Any], *args: Any) -> Any:
    """Call ``callback`` and await the result if it is awaitable."""
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def get_logger(name: str) -> logging.Logger:
    """Return a module logger."""
    return logging.getLogger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    fmt: Optional[str] = None,
) -> logging.Logger:
    """Attach a stream handler to the package logger.

    Intended for applications and examples; the library itself never calls it.
    Calling it again only adjusts the level of the handler it installed.
    """
    if isinstance(level, str):
        level = level.upper()

    package_logger = logging.getLogger(_PACKAGE_LOGGER)
    package_logger.setLevel(level)

    for handler in package_logger.handlers:
        if getattr(handler, "_asyncstate_handler", False):
            handler.setLevel(level)
            return package_logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or _LOG_FORMAT))
    handler.setLevel(level)
    handler._asyncstate_handler = True  # type: ignore[attr-defined]
    package_logger.addHandler(handler)
    return package_logger
