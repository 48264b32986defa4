"""Loguru is the only logging backend.

``setup_logging()`` is called by the app lifespan and by the index CLI.
Records from stdlib loggers (uvicorn, openai, httpx, pydantic_ai) are
forwarded into loguru so every line shares one sink and one format.
"""

from __future__ import annotations

import inspect
import logging
import sys

from loguru import logger

# Forwarded stdlib loggers, with the minimum level kept for each when not
# running at DEBUG.  httpx logs every request line at INFO.
_FORWARDED: dict[str, int] = {
    "uvicorn": logging.INFO,
    "uvicorn.error": logging.INFO,
    "uvicorn.access": logging.INFO,
    "fastapi": logging.INFO,
    "openai": logging.WARNING,
    "httpx": logging.WARNING,
    "pydantic_ai": logging.INFO,
}

_TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Re-emit a stdlib ``LogRecord`` through loguru, keeping the caller's frame."""

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real call site.
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(*, level: str = "INFO", json: bool = False) -> None:
    """Replace loguru's default sink and forward stdlib logging into it.

    Args:
        level: Minimum level for our own records.
        json: Emit one serialized JSON object per line instead of coloured text.
    """
    logger.remove()
    if json:
        logger.add(sys.stderr, level=level, serialize=True, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=level, format=_TEXT_FORMAT, colorize=True)

    verbose = level.upper() == "DEBUG"
    intercept = InterceptHandler()
    for name, floor in _FORWARDED.items():
        stdlib_logger = logging.getLogger(name)
        stdlib_logger.handlers = [intercept]
        stdlib_logger.propagate = False
        stdlib_logger.setLevel(logging.DEBUG if verbose else floor)

    logging.basicConfig(handlers=[intercept], level=logging.DEBUG if verbose else logging.INFO, force=True)
