"""
Logging configuration.

Usage:
    from config.logging_config import get_logger
    logger = get_logger(__name__)
"""

import logging
import sys
from typing import Optional

_configured = False


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure the root logger once (console + optional file handler)."""
    global _configured
    if _configured:
        return

    from config.settings import settings

    level_name = (level or settings.log_level).upper()
    formatter = logging.Formatter(settings.log_format)

    root = logging.getLogger()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_file is None and settings.logs_dir is not None:
        log_file = str(settings.logs_dir / "bestpub.log")
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    # Quiet noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger, configuring logging on first use."""
    setup_logging()
    return logging.getLogger(name)
