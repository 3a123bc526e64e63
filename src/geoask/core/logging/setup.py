from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .json_formatter import JSONFormatter

_LOGGER_NAME = "geoask"
_CONFIGURED_ATTR = "_geoask_json_logging"


def _parse_level(raw: str) -> int:
    level = logging.getLevelName(raw.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _is_on(name: str, default: str = "on") -> bool:
    return os.getenv(name, default).strip().casefold() == "on"


def _parse_logger_levels(raw: str) -> dict[str, int]:
    """``"geoask.capabilities=DEBUG,geoask.llm=WARNING"`` -> per-logger levels."""
    levels: dict[str, int] = {}
    for entry in raw.split(","):
        name, _, level = entry.partition("=")
        if name.strip() and level.strip():
            levels[name.strip()] = _parse_level(level)
    return levels


def _has_handler(logger: logging.Logger, log_path: Path | None = None) -> bool:
    for handler in logger.handlers:
        if not getattr(handler, _CONFIGURED_ATTR, False):
            continue
        if log_path is None and not isinstance(handler, RotatingFileHandler):
            return True
        if log_path is not None and isinstance(handler, RotatingFileHandler) and Path(handler.baseFilename) == log_path:
            return True
    return False


def _mark(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    setattr(handler, _CONFIGURED_ATTR, True)
    return handler


def configure_logging(state_dir: Path) -> logging.Logger:
    """Attach JSON handlers to the ``geoask`` logger tree; safe to call repeatedly."""
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(_parse_level(os.getenv("GEOASK_LOG_LEVEL", "INFO")))
    logger.propagate = False
    for name, level in _parse_logger_levels(os.getenv("GEOASK_LOG_LEVELS", "")).items():
        logging.getLogger(name).setLevel(level)

    formatter = JSONFormatter()
    if not _has_handler(logger):
        logger.addHandler(_mark(logging.StreamHandler(stream=sys.stdout), formatter))

    if _is_on("GEOASK_LOG_TO_FILE", "on"):
        log_dir = Path(os.getenv("GEOASK_LOG_DIR") or (state_dir / "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / "geoask.log"
        if not _has_handler(logger, log_path):
            file_handler = RotatingFileHandler(
                filename=log_path,
                maxBytes=int(os.getenv("GEOASK_LOG_MAX_BYTES", "5000000")),
                backupCount=int(os.getenv("GEOASK_LOG_BACKUP_COUNT", "5")),
                encoding="utf-8",
            )
            logger.addHandler(_mark(file_handler, formatter))

    return logger
