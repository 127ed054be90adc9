import logging
import os
import sys
from datetime import datetime
from typing import Optional

FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logger(name: str) -> logging.Logger:
    """
    Configure a logger with a console handler.

    Args:
        name (str): Logger name, typically package prefix (e.g., 'tcptest').

    Returns:
        logging.Logger: Configured logger instance.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter(FORMAT))
        logger.addHandler(console_handler)
    return logger


def log_file_name(role: str, started: Optional[datetime] = None) -> str:
    started = started or datetime.now()
    return f"tcptest-{role}-{started.strftime('%Y%m%d-%H%M%S')}.log"


def attach_log_file(logger: logging.Logger, role: str,
                    directory: str = '.') -> Optional[logging.Handler]:
    """
    Duplicate the logger's output into a per-run append-only file.

    Returns the handler, or None when the file cannot be created; the run
    then continues with console output only.
    """
    path = os.path.join(directory, log_file_name(role))
    try:
        file_handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    except OSError as e:
        logger.warning(f"Cannot open log file {path}: {e}. Logging to console only.")
        return None
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FORMAT))
    logger.addHandler(file_handler)
    logger.info(f"Logging to {path}")
    return file_handler


def detach_log_file(logger: logging.Logger, handler: Optional[logging.Handler]) -> None:
    if handler is None:
        return
    logger.removeHandler(handler)
    handler.close()
