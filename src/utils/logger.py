import logging
import os

from rich.logging import RichHandler

from utils.config import get_settings


class PaddedNameFormatter(logging.Formatter):
    """Pads logger names to the widest name seen so far so messages line up."""

    width = 12

    def format(self, record):
        PaddedNameFormatter.width = max(PaddedNameFormatter.width, len(record.name))
        record.padded_name = record.name.ljust(PaddedNameFormatter.width)
        return super().format(record)


def _log_level() -> int:
    if get_settings().debug or os.getenv("DEBUG"):
        return logging.DEBUG
    return logging.INFO


def get_logger(name=None) -> logging.Logger:
    """
    Return a logger for ``name`` that writes through a RichHandler.

    Handlers are attached once per logger name; later calls return the
    already configured logger.
    """
    logger = logging.getLogger(name or "shop")
    level = _log_level()
    logger.setLevel(level)

    if not logger.handlers:
        handler = RichHandler(
            show_time=True,
            show_level=True,
            show_path=False,
            rich_tracebacks=True,
            log_time_format="[%X]",
        )
        handler.setFormatter(PaddedNameFormatter("[%(padded_name)s]  %(message)s"))
        handler.setLevel(level)
        logger.addHandler(handler)
        logger.propagate = False

    return logger
