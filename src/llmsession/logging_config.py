# src/llmsession/logging_config.py
"""
Logging setup for applications embedding llmsession.

The library itself only creates module loggers (``logging.getLogger(__name__)``)
and never touches handlers. Applications that want llmsession's defaults call
`configure_logging` once at startup, usually with the ``logging`` section of
their `ResponderSettings`:

    settings = load_settings()
    configure_logging(app_name="support-bot", config=settings.logging)

What gets installed:

    **Console handler** on stderr. With ``console_enabled = false`` (the
    default) it only passes records logged through `log_display`, so the
    library stays quiet unless something is meant for the operator.

    **File handler**, when ``file_enabled`` is set. ``file_mode = "per_run"``
    writes a new timestamped file per process; ``"single"`` appends to one
    file rotated by size.

    **Component levels** for llmsession and the chatty libraries under it
    (redis, openai, httpx, httpcore, asyncio).
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from pydantic import BaseModel

DEFAULT_LOGGING_CONFIG: Dict[str, Any] = {
    "console_enabled": False,
    "console_level": "WARNING",
    "console_format": "%(levelname)s - %(message)s",
    "display_min_level": "INFO",
    "file_enabled": False,
    "file_level": "DEBUG",
    "file_directory": "~/.local/share/llmsession/logs",
    "file_mode": "per_run",
    "file_name_pattern": "{app}_{timestamp:%Y%m%d_%H%M%S}.log",
    "file_single_name": "{app}.log",
    "file_format": "%(asctime)s [%(levelname)-8s] %(name)-30s - %(message)s (%(filename)s:%(lineno)d)",
    "rotation_max_bytes": 10 * 1024 * 1024,
    "rotation_backup_count": 5,
    "components": {
        "llmsession": "INFO",
        "redis": "WARNING",
        "openai": "WARNING",
        "httpx": "WARNING",
        "httpcore": "WARNING",
        "asyncio": "WARNING",
    },
}

# Handlers installed by the last configure_logging call.
_installed: Dict[str, Any] = {"console": None, "file": None, "file_path": None}


def _level(value: Union[str, int, None], default: int) -> int:
    if isinstance(value, int):
        return value
    if value:
        resolved = logging.getLevelName(str(value).upper())
        if isinstance(resolved, int):
            return resolved
    return default


class DisplayFilter(logging.Filter):
    """
    Gate for the console handler.

    With the console enabled every record passes and the handler level
    decides. With it disabled only records carrying ``display=True`` pass,
    and only at or above `display_min_level`.
    """

    def __init__(self, console_enabled: bool = False, display_min_level: int = logging.INFO) -> None:
        super().__init__()
        self.console_enabled = console_enabled
        self.display_min_level = display_min_level

    def filter(self, record: logging.LogRecord) -> bool:
        if self.console_enabled:
            return True
        if getattr(record, "display", False):
            return record.levelno >= self.display_min_level
        return False


def _build_console_handler(config: Dict[str, Any]) -> logging.Handler:
    enabled = bool(config.get("console_enabled", False))
    handler = logging.StreamHandler(sys.stderr)
    # When disabled, the filter alone decides what reaches the console.
    handler.setLevel(_level(config.get("console_level"), logging.WARNING) if enabled else logging.DEBUG)
    handler.setFormatter(logging.Formatter(config.get("console_format", DEFAULT_LOGGING_CONFIG["console_format"])))
    handler.addFilter(DisplayFilter(enabled, _level(config.get("display_min_level"), logging.INFO)))
    return handler


def _build_file_handler(config: Dict[str, Any], app_name: str) -> Tuple[Optional[logging.Handler], Optional[Path]]:
    log_dir = Path(os.path.expanduser(config.get("file_directory", DEFAULT_LOGGING_CONFIG["file_directory"])))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        sys.stderr.write(f"Warning: Cannot create log directory {log_dir}: {e}\n")
        return None, None

    if config.get("file_mode", "per_run") == "single":
        try:
            filename = config.get("file_single_name", "{app}.log").format(app=app_name)
        except (KeyError, ValueError):
            filename = f"{app_name}.log"
        path = log_dir / filename
        try:
            handler: logging.Handler = RotatingFileHandler(
                path,
                maxBytes=config.get("rotation_max_bytes", DEFAULT_LOGGING_CONFIG["rotation_max_bytes"]),
                backupCount=config.get("rotation_backup_count", DEFAULT_LOGGING_CONFIG["rotation_backup_count"]),
                encoding="utf-8",
            )
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {path}: {e}\n")
            return None, None
    else:
        now = datetime.now()
        try:
            filename = config.get("file_name_pattern", DEFAULT_LOGGING_CONFIG["file_name_pattern"]).format(
                app=app_name, timestamp=now
            )
        except (KeyError, ValueError):
            filename = f"{app_name}_{now.strftime('%Y%m%d_%H%M%S')}.log"
        path = log_dir / filename
        try:
            handler = logging.FileHandler(path, encoding="utf-8")
        except OSError as e:
            sys.stderr.write(f"Warning: Cannot create log file {path}: {e}\n")
            return None, None

    handler.setLevel(_level(config.get("file_level"), logging.DEBUG))
    handler.setFormatter(logging.Formatter(config.get("file_format", DEFAULT_LOGGING_CONFIG["file_format"])))
    return handler, path


def configure_logging(
    app_name: str = "llmsession", config: Union[BaseModel, Dict[str, Any], None] = None
) -> Optional[Path]:
    """
    Install console and file handlers on the root logger.

    Handlers from a previous call are replaced; handlers installed by other
    code are left alone.

    Args:
        app_name: Used in log file names.
        config: Logging options (a dict or `LoggingSettings`), merged over
                DEFAULT_LOGGING_CONFIG. The ``components`` mapping is merged
                key by key.

    Returns:
        Path of the log file, or None when file logging is off.
    """
    if isinstance(config, BaseModel):
        config = config.model_dump()
    config = config or {}
    merged = {**DEFAULT_LOGGING_CONFIG, **config}
    merged["components"] = {**DEFAULT_LOGGING_CONFIG["components"], **config.get("components", {})}

    root = logging.getLogger()
    for key in ("console", "file"):
        previous = _installed[key]
        if previous is not None:
            root.removeHandler(previous)
            previous.close()
            _installed[key] = None
    _installed["file_path"] = None
    root.setLevel(logging.DEBUG)

    console = _build_console_handler(merged)
    root.addHandler(console)
    _installed["console"] = console

    if merged.get("file_enabled"):
        handler, path = _build_file_handler(merged, app_name)
        if handler is not None:
            root.addHandler(handler)
            _installed["file"] = handler
            _installed["file_path"] = path

    for component, level in merged["components"].items():
        set_component_level(component, level)

    if _installed["file_path"]:
        logging.getLogger(__name__).debug(f"Logging configured. Log file: {_installed['file_path']}")
    return _installed["file_path"]


def set_component_level(component: str, level: Union[str, int]) -> None:
    """Change a component logger's level; unknown level names are ignored."""
    resolved = _level(level, -1)
    if resolved >= 0:
        logging.getLogger(component).setLevel(resolved)


def get_log_file_path() -> Optional[Path]:
    """Path of the file written by the current configuration, if any."""
    return _installed["file_path"]


def log_display(logger: logging.Logger, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
    """
    Log a record that reaches the console even when it is disabled.

    ``display_min_level`` still applies. Any ``extra`` passed is kept.
    """
    extra = dict(kwargs.pop("extra", None) or {})
    extra["display"] = True
    logger.log(level, msg, *args, extra=extra, **kwargs)
