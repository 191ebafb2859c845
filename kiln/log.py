# kiln/log.py
import logging

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", name: str = "kiln") -> logging.Logger:
    """
    Attach a console handler to the package logger.

    Calling it again only updates the level; handlers are never duplicated.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


__all__ = ["setup_logging", "LOG_FORMAT"]
