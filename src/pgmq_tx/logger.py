"""Logger setup for the client.

Mirrors the ``verbose`` / ``log_filename`` switches of the pgmq queue object:
when verbose, the package logger emits DEBUG records to stderr and, optionally,
to a file. Otherwise handlers are left to the application.
"""

import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def create_logger(name: str, verbose: bool = False, log_filename: str | None = None) -> logging.Logger:
    """Return the named logger, attaching handlers only when verbose."""
    logger = logging.getLogger(name)
    if not verbose:
        return logger

    logger.setLevel(logging.DEBUG)
    formatter = logging.Formatter(LOG_FORMAT)
    if not any(type(h) is logging.StreamHandler for h in logger.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)
    if log_filename and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(log_filename)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    return logger
