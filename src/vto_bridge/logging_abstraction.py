"""Logging layer for the VTO bridge.

Wraps stdlib ``logging`` with a JSON formatter for machine consumption, a
human-readable formatter for the console, and a per-connection-attempt
session tag carried in a contextvar so every line logged while one device
session is alive can be grouped together.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import sys
import uuid
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from typing_extensions import override

from vto_bridge.const import VTO_DEBUG, VTO_LOG_FORMAT, VTO_LOG_HUMAN_OUTPUT, VTO_LOG_JSON_FILE

__all__ = [
    "BridgeLogger",
    "HumanReadableFormatter",
    "JSONFormatter",
    "get_logger",
    "get_session_tag",
    "reconfigure_logging",
    "session_tag_context",
]

_session_tag: contextvars.ContextVar[str | None] = contextvars.ContextVar("vto_session_tag", default=None)


def get_session_tag() -> str | None:
    return _session_tag.get()


@contextmanager
def session_tag_context(tag: str | None = None) -> Generator[str]:
    """Scope a session tag to the enclosed block.

    A fresh 8-character tag is generated when none is given. The previous
    tag is restored on exit, so nested attempts do not leak into each other.
    """
    token = _session_tag.set(tag or uuid.uuid4().hex[:8])
    try:
        yield cast("str", _session_tag.get())
    finally:
        _session_tag.reset(token)


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    @override
    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, object] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "line": record.lineno,
            "message": record.getMessage(),
            "session_tag": get_session_tag(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            log_data["context"] = dict(cast("Mapping[str, object]", extra_data))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Console formatter: ``timestamp level [module:line] [tag] > message | k=v``."""

    def __init__(self) -> None:
        super().__init__(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s [%(module)s:%(lineno)d] %(session_tag)s > %(message)s",
            datefmt="%m/%d/%y %H:%M:%S",
        )

    @override
    def format(self, record: logging.LogRecord) -> str:
        tag = get_session_tag()
        record.session_tag = f"[{tag}]" if tag else "[--------]"
        formatted = super().format(record)

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, Mapping) and extra_data:
            context_map = cast("Mapping[str, object]", extra_data)
            formatted = f"{formatted} | " + " | ".join(f"{k}={v}" for k, v in context_map.items())
        return formatted


def _open_handler(target: str | Path) -> logging.Handler:
    """Stream handler for ``stdout``/``stderr``, append-mode file handler otherwise."""
    match str(target):
        case "stdout":
            return logging.StreamHandler(sys.stdout)
        case "stderr":
            return logging.StreamHandler(sys.stderr)
        case path:
            log_path = Path(path)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            return logging.FileHandler(log_path, mode="a")


def _build_handlers(
    log_format: str,
    json_file: str | Path | None,
    human_output: str | None,
    level: int,
) -> list[logging.Handler]:
    """Handlers for ``log_format``: ``human`` (console or file), ``json`` (file only) or ``both``."""
    sinks: list[tuple[str | Path, logging.Formatter]] = []
    if log_format in ("json", "both") and json_file:
        sinks.append((json_file, JSONFormatter()))
    if log_format in ("human", "both"):
        sinks.append((human_output or "stdout", HumanReadableFormatter()))

    handlers: list[logging.Handler] = []
    for target, formatter in sinks:
        try:
            handler = _open_handler(target)
        except OSError as e:
            print(f"Warning: cannot open log sink {target}: {e}", file=sys.stderr)
            if isinstance(formatter, JSONFormatter):
                continue
            handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        handler.setLevel(level)
        handlers.append(handler)
    return handlers


class BridgeLogger:
    """Thin logger wrapper taking structured context through ``extra=``.

    ``log_format`` picks the sinks: ``human`` (console or file), ``json``
    (file only) or ``both``.
    """

    def __init__(
        self,
        name: str,
        log_format: str = "human",
        json_file: str | Path | None = None,
        human_output: str | None = "stdout",
    ) -> None:
        self.name: str = name
        self.log_format: str = log_format
        self.logger: logging.Logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if VTO_DEBUG else logging.INFO)
        # loggers are process-wide; only the first wrapper attaches sinks
        if not self.logger.handlers:
            for handler in _build_handlers(log_format, json_file, human_output, self.logger.level):
                self.logger.addHandler(handler)

    def _log(self, level: int, msg: str, *args: object, extra: Mapping[str, object] | None = None, **kwargs: Any) -> None:
        context = {"extra_data": dict(extra)} if extra else None
        self.logger.log(level, msg, *args, extra=context, **kwargs)

    def debug(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.DEBUG, msg, *args, extra=extra)

    def info(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.INFO, msg, *args, extra=extra)

    def warning(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.WARNING, msg, *args, extra=extra)

    def error(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra)

    def exception(self, msg: str, *args: object, extra: Mapping[str, object] | None = None) -> None:
        self._log(logging.ERROR, msg, *args, extra=extra, exc_info=True)

    def set_level(self, level: int) -> None:
        """Set the level on the logger and all of its handlers."""
        self.logger.setLevel(level)
        for handler in self.logger.handlers:
            handler.setLevel(level)

    @property
    def handlers(self) -> list[logging.Handler]:
        return self.logger.handlers


def get_logger(name: str, log_format: str | None = None, json_file: str | Path | None = None) -> BridgeLogger:
    """BridgeLogger with sinks taken from the ``VTO_LOG_*`` environment defaults."""
    return BridgeLogger(
        name,
        log_format=log_format or VTO_LOG_FORMAT,
        json_file=json_file or VTO_LOG_JSON_FILE,
        human_output=VTO_LOG_HUMAN_OUTPUT,
    )


def reconfigure_logging(environ: Mapping[str, str] | None = None, prefix: str = "vto_bridge") -> None:
    """Rebuild the sinks of every ``prefix`` logger from ``VTO_LOG_*`` in ``environ``.

    Loggers attach their sinks at import time, before a ``--env`` file is
    read; call this after loading one.
    """
    env = os.environ if environ is None else environ
    log_format = env.get("VTO_LOG_FORMAT") or VTO_LOG_FORMAT
    json_file = env.get("VTO_LOG_JSON_FILE") or VTO_LOG_JSON_FILE
    human_output = env.get("VTO_LOG_HUMAN_OUTPUT") or VTO_LOG_HUMAN_OUTPUT
    for name, obj in list(logging.root.manager.loggerDict.items()):
        if not name.startswith(prefix) or not isinstance(obj, logging.Logger) or not obj.handlers:
            continue
        for handler in list(obj.handlers):
            obj.removeHandler(handler)
            handler.close()
        for handler in _build_handlers(log_format, json_file, human_output, obj.level):
            obj.addHandler(handler)
