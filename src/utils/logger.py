# src/utils/logger.py
import logging
import sys
from typing import Dict, Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s]: %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Loggers created here do not propagate, so the file handler is attached to each
_named_loggers: Dict[str, logging.Logger] = {}
_file_handler: Optional[logging.FileHandler] = None


def setup_logger(
    name: str,
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
    datefmt: Optional[str] = None,
) -> logging.Logger:
    """
    Set up a named stdout logger with consistent configuration.

    Args:
        name: Logger name, upper-case component tag such as "CONSENT_SERVICE"
        level: Logging level as int or level name (default: INFO)
        format_string: Custom format string for log messages
        datefmt: Custom date format string

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logger.setLevel(level)

    formatter = logging.Formatter(
        format_string or DEFAULT_FORMAT, datefmt=datefmt or DEFAULT_DATEFMT
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if _file_handler is not None:
        logger.addHandler(_file_handler)

    # Prevent propagation to root logger to avoid duplicate messages
    logger.propagate = False

    _named_loggers[name] = logger
    return logger


def configure_file_logging(path: str = "app.log", level: int = logging.INFO) -> None:
    """Write every named logger to a shared log file and quiet server noise"""
    global _file_handler

    for noisy in ["watchfiles", "uvicorn.error", "uvicorn.access", "uvicorn.asgi"]:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    if _file_handler is not None:
        return

    _file_handler = logging.FileHandler(path)
    _file_handler.setLevel(level)
    _file_handler.setFormatter(
        logging.Formatter("%(asctime)s [%(levelname)s] [%(name)s] %(message)s")
    )

    logging.getLogger().addHandler(_file_handler)
    for logger in _named_loggers.values():
        logger.addHandler(_file_handler)
