"""Central logging configuration for the IONM assignment board."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from .config import CONFIG

_LOGGERS: dict[str, logging.Logger] = {}
_CONFIGURED = False


def configure_logging(force: bool = False, log_dir: Optional[Path] = None) -> None:
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    log_dir = log_dir or CONFIG.log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "ionmboard.log"

    fmt = "%(asctime)s %(levelname)s %(name)s %(message)s"
    formatter = logging.Formatter(fmt)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, CONFIG.log_level, logging.INFO))

    rotating = RotatingFileHandler(log_path, maxBytes=2_000_000, backupCount=5, encoding="utf-8")
    rotating.setFormatter(formatter)

    console = logging.StreamHandler()
    console.setFormatter(formatter)

    for handler in list(root_logger.handlers):
        if getattr(handler, "_ionmboard", False):
            root_logger.removeHandler(handler)
            handler.close()
    for handler in (rotating, console):
        handler._ionmboard = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)
    _CONFIGURED = True


def get_logger(name: Optional[str] = None) -> logging.Logger:
    configure_logging()
    logger_name = name or "ionmboard"
    if logger_name not in _LOGGERS:
        _LOGGERS[logger_name] = logging.getLogger(logger_name)
    return _LOGGERS[logger_name]


__all__ = ["get_logger", "configure_logging"]
