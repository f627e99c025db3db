"""Logging setup for perfmon."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from perfmon.config import Settings

LOGGER_NAME = "perfmon"


def setup_logging(settings: Settings, stream: bool = False) -> logging.Logger:
    """
    Configure the ``perfmon`` logger.

    Writes INFO+ to a rotating file when ``settings.enable_logging`` is set.
    A stderr handler (WARNING+) is only attached when ``stream`` is true,
    since the Textual UI owns the terminal while it runs.
    Calling this again once handlers are installed is a no-op.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO if settings.enable_logging else logging.WARNING)

    if stream:
        sh = logging.StreamHandler(sys.stderr)
        sh.setLevel(logging.WARNING)
        sh.setFormatter(
            logging.Formatter(
                "[%(asctime)s] %(levelname)s %(name)s: %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        logger.addHandler(sh)

    if settings.enable_logging:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            log_path,
            maxBytes=5_000_000,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setLevel(logging.INFO)
        fh.setFormatter(
            logging.Formatter(
                "%(asctime)s\t%(levelname)s\t%(name)s\t%(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(fh)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
