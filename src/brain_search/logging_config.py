"""File-based logging for brain-search.

Stdout belongs to the tool protocol and to CLI output, so diagnostics only
ever go to a rotating log file.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Config names -> logging levels
_LEVELS = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_handler: RotatingFileHandler | None = None


def configure_logging(log_file: Path | str, level: str = "info") -> RotatingFileHandler:
    """Send the ``brain_search`` logger to a rotating file.

    1MB per file, 3 backups. Calling again replaces the previous handler.
    """
    global _handler

    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger("brain_search")
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler.close()

    handler = RotatingFileHandler(str(log_path), maxBytes=1_000_000, backupCount=3)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    logger.addHandler(handler)
    logger.setLevel(_LEVELS.get(level, logging.INFO))
    # Keep records away from root handlers that may write to stdout
    logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    _handler = handler
    return handler
