"""
Centralised logging configuration - powered by **loguru**.

Usage (any module)::

    from loguru import logger
    logger.info("Hello")

Usage (entry-points - API app, scripts)::

    from infrastructure.log import setup_logging
    setup_logging()              # level/file from config/param.yaml
    setup_logging("DEBUG")       # more verbose

Per-exchange context is attached with ``logger.bind(...)``; the
``{extra}`` fields (conversation_id, specialist, job) are rendered
when present.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

from loguru import logger


_FMT_FULL = (
    "<green>{time:HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
    "{extra[ctx]}"
)


def _render_extra(record) -> bool:
    """Flatten bound context into a short ``key=value`` suffix."""
    extra = {k: v for k, v in record["extra"].items() if k != "ctx"}
    record["extra"]["ctx"] = (
        " | " + " ".join(f"{k}={v}" for k, v in extra.items()) if extra else ""
    )
    return True


class _InterceptHandler(logging.Handler):
    """Route stdlib ``logging`` records into **loguru**.

    Uvicorn, httpx and SQLAlchemy log through the stdlib; this keeps
    their records on the same sinks as ours.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging(
    level: Optional[str] = None,
    *,
    intercept_stdlib: bool = True,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure loguru for the current process.

    Call this **once** at your entry-point (API lifespan or script ``main()``).

    Args:
        level: Minimum log level. Defaults to ``logging.level`` in param.yaml.
        intercept_stdlib: Route stdlib ``logging`` through loguru.
        log_file: Optional path to a rotating log file. Defaults to
                  ``logging.file`` in param.yaml.
    """
    from infrastructure.config import LOG_FILE, LOG_LEVEL

    level = (level or LOG_LEVEL).upper()
    log_file = log_file or LOG_FILE

    logger.remove()

    logger.add(
        sys.stderr,
        format=_FMT_FULL,
        filter=_render_extra,
        level=level,
        colorize=True,
        backtrace=True,
        diagnose=False,
    )

    if log_file:
        logger.add(
            log_file,
            format=_FMT_FULL,
            filter=_render_extra,
            level=level,
            rotation="10 MB",
            retention="7 days",
            compression="gz",
        )

    if intercept_stdlib:
        logging.basicConfig(
            handlers=[_InterceptHandler()], level=0, force=True)

    logger.debug("Loguru configured - level={}, file={}", level, log_file)
