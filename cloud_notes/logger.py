import logging
import os
import sys

PROJECT_LOGGER = "cloud_notes"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
_DATEFMT = "%H:%M:%S"


class CategoryFilter(logging.Filter):
    """Pass only records whose last logger name segment is an allowed category."""

    def __init__(self, categories: set[str]) -> None:
        super().__init__()
        self.categories = frozenset(categories)

    def filter(self, record: logging.LogRecord) -> bool:
        return (record.name or "").rsplit(".", 1)[-1] in self.categories


def _env_level(default: int) -> int:
    name = (os.getenv("CLOUD_NOTES_LOG_LEVEL") or "").strip().lower()
    return _LEVELS.get(name, default)


def _env_categories() -> set[str]:
    raw = os.getenv("CLOUD_NOTES_LOG_CATS") or ""
    return {c.strip() for c in raw.split(",") if c.strip()}


def _stderr_handler(logger: logging.Logger) -> logging.StreamHandler:
    for h in logger.handlers:
        if isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr:
            return h
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT))
    logger.addHandler(handler)
    return handler


def setup_logger(level: int = logging.INFO, name: str = PROJECT_LOGGER) -> logging.Logger:
    """Create or update the project logger.

    CLOUD_NOTES_LOG_LEVEL and CLOUD_NOTES_LOG_CATS are re-read on every call, so
    options parsed from argv after import still apply. The logger keeps exactly
    one stderr handler and does not propagate to the root logger.
    """
    logger = logging.getLogger(name)
    logger.setLevel(_env_level(level))

    handler = _stderr_handler(logger)
    for f in [f for f in handler.filters if isinstance(f, CategoryFilter)]:
        handler.removeFilter(f)
    categories = _env_categories()
    if categories:
        handler.addFilter(CategoryFilter(categories))

    logger.propagate = False
    return logger


def get_logger(name: str | None = None) -> logging.Logger:
    """Project logger, or its `name` category child (cloud_notes.<name>)."""
    base = setup_logger()
    return base if not name else base.getChild(name)
