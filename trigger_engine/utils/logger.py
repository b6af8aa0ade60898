import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List

from trigger_engine.config.settings import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(taskName)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_handlers: List[logging.Handler] = []


def _engine_handlers() -> List[logging.Handler]:
    if _handlers:
        return _handlers

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    log_file = Path(settings.LOG_FILE)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(log_file, maxBytes=settings.LOG_MAX_BYTES,
                                       backupCount=settings.LOG_BACKUP_COUNT)
    file_handler.setFormatter(formatter)

    _handlers.extend([console_handler, file_handler])
    return _handlers


def setup_logger(name: str) -> logging.Logger:
    """Module logger on the engine's shared stdout and rotating file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper()))
    logger.handlers = list(_engine_handlers())
    return logger
