"""Logging setup — readable console lines plus a size-rotated JSON file carrying run and job context."""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

LOGGING_DEFAULTS = {
    "dir": "logs",
    "level": "INFO",
    "filename": "autoblog.log",
    "max_bytes": 10 * 1024 * 1024,
    "backup_count": 5,
}

CONSOLE_HANDLER = "autoblog-console"
FILE_HANDLER = "autoblog-file"

# Anything on a record beyond these came in through ``extra=``
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {
    "message",
    "asctime",
}


def context_fields(record: logging.LogRecord) -> dict:
    """The ``extra=`` fields of a record, e.g. run_id, trigger, job_id, slug, duration."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line, stamped with the record's own creation time in UTC."""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **context_fields(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _level(name) -> int:
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(settings: dict | None = None) -> logging.Logger:
    """Install the autoblog console and file handlers on the root logger.

    ``settings`` is the ``logging`` section of the config; missing keys come
    from LOGGING_DEFAULTS. Handlers are looked up by name, so calling this
    again (or alongside another library's handlers) never duplicates output.
    """
    settings = {**LOGGING_DEFAULTS, **(settings or {})}
    root = logging.getLogger()
    root.setLevel(_level(settings["level"]))
    installed = {handler.get_name() for handler in root.handlers}

    if CONSOLE_HANDLER not in installed:
        console = logging.StreamHandler(sys.stdout)
        console.set_name(CONSOLE_HANDLER)
        console.setLevel(logging.INFO)
        console.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
        root.addHandler(console)

    if FILE_HANDLER not in installed:
        os.makedirs(settings["dir"], exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(settings["dir"], settings["filename"]),
            maxBytes=int(settings["max_bytes"]),
            backupCount=int(settings["backup_count"]),
            encoding="utf-8",
        )
        file_handler.set_name(FILE_HANDLER)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root.addHandler(file_handler)

    return root
