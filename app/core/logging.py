"""Logging setup built on loguru.

Console output for developers plus rotating files under ``logs/``. Request
handling is wrapped by ``LoggingMiddleware`` which binds a trace id to every
line logged while serving the request.
"""
import os
import sys
import time
from collections.abc import Callable

from fastapi import Request, Response
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.config import settings
from app.core.security import generate_trace_token

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "trace_id={extra[trace_id]} | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

_FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | trace_id={extra[trace_id]} | "
    "{name}:{function}:{line} | {message}"
)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every HTTP request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        start_time = time.time()
        trace_id = request.headers.get("X-Request-ID") or generate_trace_token()
        request.state.trace_id = trace_id
        log = logger.bind(trace_id=trace_id)

        log.info(f"request.start {request.method} {request.url.path}")
        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.time() - start_time
            log.opt(exception=True).error(f"request.failed duration={duration:.3f}s error={type(e).__name__}")
            raise

        duration = time.time() - start_time
        message = f"request.completed status={response.status_code} duration={duration:.3f}s"
        if response.status_code >= 500:
            log.error(message)
        elif response.status_code >= 400:
            log.warning(message)
        else:
            log.info(message)

        response.headers["X-Trace-Id"] = trace_id
        return response


def setup_logging(level: str | None = None) -> None:
    """Configure loguru sinks. Safe to call more than once."""
    level = level or settings.LOG_LEVEL
    logger.remove()
    logger.configure(extra={"trace_id": "-"})

    logger.add(sys.stderr, format=_CONSOLE_FORMAT, level=level, colorize=True)

    try:
        os.makedirs("logs", exist_ok=True)
        logger.add(
            "logs/app.log",
            rotation="100 MB",
            retention="30 days",
            compression="zip",
            format=_FILE_FORMAT,
            level=level,
        )
        logger.add(
            "logs/error.log",
            rotation="50 MB",
            retention="30 days",
            compression="zip",
            format=_FILE_FORMAT,
            level="ERROR",
        )
    except (PermissionError, OSError):
        # read-only filesystem: console only
        pass

    logger.info("Logging initialised")
