"""
peerping/logger.py
Shared loguru logger and sink setup.
"""
from __future__ import annotations
import sys
from typing import Optional

from loguru import logger

LOG_FORMAT = (
    "<green>{time:DD/MM/YYYY HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def configure_logging(level: str = "INFO", logfile: Optional[str] = None) -> None:
    """Replace loguru's default sink with a formatted stderr sink (and optional file)."""
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level.upper())
    if logfile:
        logger.add(logfile, format=LOG_FORMAT, level=level.upper())


__all__ = ["logger", "configure_logging", "LOG_FORMAT"]
