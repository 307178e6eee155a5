from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Route stdlib logging records (uvicorn, fastapi) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - thin wrapper
        try:
            level_name = logger.level(record.levelname).name
        except ValueError:
            level_name = record.levelno
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1
        logger.opt(depth=depth, exception=record.exc_info).log(level_name, record.getMessage())


def configure_logging(level: str = "INFO", log_file: Optional[Path | str] = None) -> None:
    """Configure loguru as the single sink for formcoach and third-party loggers."""
    logger.remove()
    logger.add(sys.stderr, format=_LOG_FORMAT, level=level.upper(), backtrace=True, diagnose=False)
    if log_file is not None:
        logger.add(str(log_file), level=level.upper(), rotation="10 MB", retention=5, enqueue=True)
    logging.basicConfig(handlers=[InterceptHandler()], level=level.upper(), force=True)
