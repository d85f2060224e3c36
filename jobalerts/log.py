"""Logging setup shared by every module: console output plus a daily pipeline log file."""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

_DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
# chatty libraries stay at WARNING unless the pipeline itself is quieter
_NOISY_LOGGERS = ("urllib3", "asyncio")
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


def set_level(level: str | int) -> None:
    """Change the console level after startup (the CLI's ``--verbose``)."""
    value = _parse_level(level)
    root = logging.getLogger()
    root.setLevel(min(value, root.level))
    for handler in root.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(value)


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level).strip().upper(), logging.INFO)


def _log_dir() -> Path:
    override = os.environ.get("JOBALERTS_LOG_DIR", "").strip()
    return Path(override) if override else _DEFAULT_LOG_DIR


def _file_logging_enabled() -> bool:
    return os.environ.get("LOG_TO_FILE", "true").strip().lower() in ("1", "true", "yes")


def _configure() -> None:
    level = _parse_level(os.environ.get("LOG_LEVEL", "INFO"))
    root = logging.getLogger()
    root.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if root.handlers:
        return

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FMT)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if not _file_logging_enabled():
        return
    try:
        log_dir = _log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / f"pipeline_{datetime.now():%Y-%m-%d}.log", encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        root.addHandler(fh)
    except OSError:
        # console logging still works without a writable log dir
        pass
