"""Logging configuration for console and rotating file logs."""

from __future__ import annotations

from pathlib import Path
import sys

from loguru import logger


def setup_logger(
    log_dir: str | Path = "logs",
    level: str = "INFO",
    console: bool = True,
    file: bool = False,
):
    logger.remove()
    if console:
        logger.add(sys.stdout, level=level.upper(), enqueue=True)
    if file:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        logger.add(
            path / "trading.log",
            level=level.upper(),
            rotation="5 MB",
            retention=5,
            enqueue=True,
            encoding="utf-8",
        )
    return logger
