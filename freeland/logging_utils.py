"""Logging helpers for Freeland."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

ROOT_LOGGER_NAME = "freeland"


def _build_formatter() -> logging.Formatter:
    return logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")


def setup_logging(
    log_dir: str | Path | None = None,
    log_name: str = "freeland",
    level: int = logging.INFO,
) -> logging.Logger:
    """Initialize console and (optionally) file logging.

    Parameters
    ----------
    log_dir:
        Directory where log files will be stored. ``None`` keeps logging on
        the console only.
    log_name:
        Base name of the log file without extension.
    level:
        Threshold applied to the ``freeland`` logger.

    Returns
    -------
    logging.Logger
        Configured root logger instance.
    """

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Avoid attaching duplicate handlers in case of repeated initialization.
    existing_handlers = {type(handler) for handler in logger.handlers}

    formatter = _build_formatter()

    if logging.StreamHandler not in existing_handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    log_file: Optional[Path] = None
    if log_dir is not None and logging.FileHandler not in existing_handlers:
        log_directory = Path(log_dir)
        log_directory.mkdir(parents=True, exist_ok=True)
        log_file = log_directory / f"{log_name}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.debug("Logging initialized", extra={"log_file": str(log_file) if log_file else None})
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a namespaced logger under the ``freeland`` hierarchy."""

    base = logging.getLogger(ROOT_LOGGER_NAME)
    if not name:
        return base
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return base.getChild(name)
