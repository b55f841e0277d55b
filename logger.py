import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

_FORMAT = logging.Formatter('[%(asctime)s] %(levelname)s %(name)s - %(message)s')
_configured = False


def _log_path() -> Optional[Path]:
    """Return the rotating log file path, or None to log to stderr only."""
    log_dir = os.environ.get("NUT_INFLUX_LOG_DIR")
    if not log_dir:
        return None
    return Path(log_dir) / "nut_influx_connector.log"


def _configure() -> None:
    global _configured
    if _configured:
        return
    root = logging.getLogger()
    level = os.environ.get("NUT_INFLUX_LOG_LEVEL", "INFO").upper()
    # unknown names fall back to INFO
    root.setLevel(level if isinstance(logging.getLevelName(level), int) else logging.INFO)

    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(_FORMAT)
    root.addHandler(stream)

    log_path = _log_path()
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler = TimedRotatingFileHandler(str(log_path), when='midnight', backupCount=7)
        handler.setFormatter(_FORMAT)
        root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger with the given name after configuring logging."""
    _configure()
    return logging.getLogger(name)
