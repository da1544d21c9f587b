"""
File logging for stackforge.

Console output is printed directly; this module records warnings and failures
with their context to a log file.
"""

import json
import logging
from typing import Any, Optional

from .config import STACKFORGE_CONFIG

logger = logging.getLogger('stackforge')


def configure(log_file: Optional[str] = None, level: int = logging.DEBUG) -> logging.Logger:
    """
    Attach a file handler to the stackforge logger (once).

    Args:
        log_file: Path of the log file (default: STACKFORGE_LOG_FILE)
        level: Minimum level written to the file

    Returns:
        The configured logger
    """
    path = log_file or STACKFORGE_CONFIG['log_file']
    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        handler = logging.FileHandler(path, encoding='utf-8')
        handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s %(message)s'))
        logger.addHandler(handler)
    logger.setLevel(level)
    return logger


def _log(level: int, message: str, data: Any = None):
    if data is None:
        logger.log(level, message)
    elif isinstance(data, BaseException):
        logger.log(level, message, exc_info=(type(data), data, data.__traceback__))
    else:
        logger.log(level, '%s %s', message, json.dumps(data, default=str))


def debug(message: str, data: Any = None):
    _log(logging.DEBUG, message, data)


def info(message: str, data: Any = None):
    _log(logging.INFO, message, data)


def warning(message: str, data: Any = None):
    _log(logging.WARNING, message, data)


def error(message: str, data: Any = None):
    _log(logging.ERROR, message, data)


def fatal(message: str, data: Any = None):
    _log(logging.CRITICAL, message, data)
