"""Logger utility for structured logging."""

import logging
import sys
from pathlib import Path


DEFAULT_LOGGER_NAME = "tunetransfer"
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'


def setup_logger(name: str = DEFAULT_LOGGER_NAME, log_file: str = None) -> logging.Logger:
    """
    Attach a console handler and, when asked, a DEBUG-level file handler.

    Calling it again with the same arguments adds nothing.

    Args:
        name: Logger name
        log_file: Where to write the detailed log. Console only when None.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if log_file else logging.INFO)

    console_formatter = logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT)
    file_formatter = logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if not has_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(console_formatter)
        logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        already_attached = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == log_path.resolve()
            for h in logger.handlers
        )
        if not already_attached:
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(file_formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Get or create a logger instance with console output.

    Module loggers are children of the package logger (``tunetransfer.matcher``
    and so on) and propagate to it, so only the package logger gets a handler.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)
    root_name = name.split('.')[0]
    root = logging.getLogger(root_name)

    if not root.handlers:
        root.setLevel(logging.INFO)
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter('%(message)s'))
        root.addHandler(console_handler)

    return logger
