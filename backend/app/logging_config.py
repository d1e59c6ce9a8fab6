"""Logging setup for the Nimmit backend.

All loggers live under the ``nimmit`` namespace so the core package
(``nimmit.jobs.service`` and friends) and the API routes
(``nimmit.api.jobs``) share one set of handlers.
"""

import logging
from pathlib import Path

ROOT_LOGGER = "nimmit"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | int = "INFO", log_file: str | Path | None = None) -> logging.Logger:
    """Configure the ``nimmit`` logger once.

    A console handler is always attached; ``log_file`` adds a file handler.
    Calling this again only updates the level.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(_parse_level(level))

    formatter = logging.Formatter(LOG_FORMAT)
    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    if log_file is not None:
        path = Path(log_file)
        has_file = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path.resolve()
            for h in logger.handlers
        )
        if not has_file:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``nimmit`` namespace."""
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + "."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)
