"""Logging setup shared by the extraction pipeline, CLI and API.

Every module logs through a named logger; the root handler is installed
once so that batch runs and the API server share one format.
"""

import logging
import sys

# pypdf reports every recoverable xref quirk at WARNING level
_NOISY_LOGGERS = ("pypdf", "PIL")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with the pipeline's standard format.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.ERROR))


def get_logger(name: str) -> logging.Logger:
    """Get a named logger instance.

    Args:
        name: Logger name, usually the calling module's ``__name__``.

    Returns:
        Logger instance.
    """
    return logging.getLogger(name)
