"""Logging configuration for the mdsite package"""

import logging
import sys


def setup_logging(level: int = logging.WARNING, name: str = "mdsite") -> logging.Logger:
    """Configure and return the package logger with a single stderr handler.

    Module loggers created with logging.getLogger(__name__) propagate to it.
    Calling again adjusts the level and rebinds the handler to the current sys.stderr.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
            if isinstance(handler, logging.StreamHandler):
                handler.stream = sys.stderr
        return logger

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
    return logger
