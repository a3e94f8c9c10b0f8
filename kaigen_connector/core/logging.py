"""Logging for the Kaigen connector.

Modules log through children of the ``kaigen_connector`` logger. The server
takes its level from ``KAIGEN_LOG_LEVEL`` (via ``AppConfig.log_level``) and
also writes to ``data/kaigen-connector.log``; CLI commands log warnings only.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_LEVEL_ENV = "KAIGEN_LOG_LEVEL"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

logger = logging.getLogger("kaigen_connector")


def parse_log_level(value: str) -> str:
    """Normalize a level name such as ``debug`` to ``DEBUG``.

    Raises:
        ValueError: If the name is not a standard level.
    """
    level = str(value).strip().upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"{LOG_LEVEL_ENV} must be one of {', '.join(LOG_LEVELS)}, got: {value}")
    return level


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Attach console (and optionally file) handlers to the connector logger.

    Calling it again replaces the previous handlers. httpx request lines are
    only shown at DEBUG since every Kaigen call would otherwise log one.

    Args:
        log_level: Level name, case-insensitive.
        log_file: Optional file that receives the same records.

    Returns:
        The connector logger.
    """
    level = getattr(logging, parse_log_level(log_level))
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    logger.propagate = False
    logging.getLogger("httpx").setLevel(level if level == logging.DEBUG else logging.WARNING)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Child logger, e.g. ``get_logger("update")`` -> ``kaigen_connector.update``."""
    return logging.getLogger(f"{logger.name}.{name}")


hooks_logger = get_logger("hooks")
auth_logger = get_logger("auth")
storage_logger = get_logger("storage")
update_logger = get_logger("update")
api_logger = get_logger("api")
