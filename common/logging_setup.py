from __future__ import annotations

import json
import logging
import os
import sys
from typing import Any, Optional, TextIO


# Marks the handler this module installs, so reconfiguring never touches
# handlers that the host application (or pytest) attached to the root logger.
_HANDLER_NAME = "symbol_detect"

FORMATS = ("json", "text")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line on stderr:
      { "t": 1700000000000, "lvl": "INFO", "name": "symbol_detect", "msg": "Symbols detected", "extra": {"count": 2} }
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(record.created * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict) and fields:
            payload["extra"] = fields
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class TextFormatter(logging.Formatter):
    """`LEVEL name: msg key=value ...` for reading runs in a terminal."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = f"{record.levelname:<7} {record.name}: {record.getMessage()}"
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict) and fields:
            line += " " + " ".join(f"{k}={_compact(v)}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _compact(value: Any) -> str:
    if isinstance(value, float):
        return f"{value:.3f}"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str, separators=(",", ":"))
    return str(value)


def _resolve_level(level: Optional[str]) -> int:
    name = (level or os.environ.get("LOG_LEVEL") or "INFO").upper()
    lvl = getattr(logging, name, None)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(
    level: Optional[str] = None,
    stream: Optional[TextIO] = None,
    force: bool = False,
    fmt: Optional[str] = None,
) -> None:
    """
    Install the symbol_detect handler on the root logger.

    Level precedence: explicit `level`, env LOG_LEVEL, INFO.
    Format precedence: explicit `fmt`, env LOG_FORMAT, "json".

    Logs go to stderr by default; stdout carries CLI results. Later calls are
    no-ops unless `force` is set (the CLI forces once it has read its config).
    """
    root = logging.getLogger()
    ours = [h for h in root.handlers if h.get_name() == _HANDLER_NAME]
    if ours and not force:
        return

    fmt_name = (fmt or os.environ.get("LOG_FORMAT") or "json").lower()
    if fmt_name not in FORMATS:
        raise ValueError(f"log format must be one of {FORMATS}, got {fmt_name!r}")

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(TextFormatter() if fmt_name == "text" else JsonFormatter())

    for h in ours:
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(_resolve_level(level))


def get_logger(name: str) -> logging.Logger:
    """Module logger; installs the handler on first use."""
    setup_logging()
    return logging.getLogger(name)


def log_event(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """Log `msg` with `fields` as its structured payload, skipping the work when disabled."""
    if logger.isEnabledFor(level):
        logger.log(level, msg, extra={"extra": fields})
