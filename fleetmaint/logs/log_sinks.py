"""
Structured logging for every pipeline component.

Components keep logging the usual way (``logging.getLogger(self.__class__.__name__)``) and
attach a structured payload with ``extra={"payload": {...}}``. The sinks decide how a
record is written:

    console  -> rich.logging.RichHandler
    file     -> PipeFormatter, one line per record:
                ``timestamp | level | component | message [| json-payload]``
    json     -> JsonLinesFormatter, one JSON object per line

The pipe format is the grammar the LogProcessor parses back.
"""
import json
import logging
import logging.handlers
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from rich.console import Console
from rich.logging import RichHandler


FIELD_SEPARATOR = " | "
SESSION_BUFFER_CAPACITY = 100_000


def payload_of(record: logging.LogRecord) -> Dict[str, Any]:
    payload = getattr(record, "payload", None)
    return dict(payload) if isinstance(payload, dict) else {}


def _timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()


def _single_line(text: str) -> str:
    # One record per line, and the separator stays unambiguous
    return text.replace("\r", " ").replace("\n", " ").replace(FIELD_SEPARATOR, " / ")


class PipeFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        if record.exc_info:
            message = f"{message} ({self.formatException(record.exc_info)})"
        fields = [
            _timestamp(record),
            record.levelname,
            _single_line(record.name),
            _single_line(message),
        ]
        payload = payload_of(record)
        if payload:
            fields.append(json.dumps(payload, sort_keys=True, default=str))
        return FIELD_SEPARATOR.join(fields)


class JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _timestamp(record),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
            "payload": payload_of(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, sort_keys=True, default=str)


def console_sink(level: str = "INFO", console: Optional[Console] = None) -> logging.Handler:
    handler = RichHandler(console=console or Console(stderr=True), show_path=False, rich_tracebacks=True)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
    return handler


def file_sink(path: str, level: str = "INFO") -> logging.Handler:
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(PipeFormatter())
    return handler


def json_sink(path: str, level: str = "INFO") -> logging.Handler:
    handler = logging.FileHandler(path, mode='a', encoding='utf-8')
    handler.setLevel(level)
    handler.setFormatter(JsonLinesFormatter())
    return handler


class SessionSink(logging.Handler):
    """
    Session-wide file/JSON sink that buffers in memory until the session is confirmed.

    Nothing reaches the session directory before ``attach`` is called, so a session
    aborted at the confirmation gate leaves no log files behind.
    """

    def __init__(self, level: str = "INFO"):
        super().__init__(level=level)
        self.sink_level = level
        self.pending = logging.handlers.MemoryHandler(
            capacity=SESSION_BUFFER_CAPACITY, flushLevel=logging.CRITICAL + 1, target=None, flushOnClose=False
        )
        self.targets: List[logging.Handler] = []

    def emit(self, record: logging.LogRecord):
        if self.targets:
            for target in self.targets:
                target.handle(record)
        else:
            self.pending.buffer.append(record)

    def attach(self, session_log_path: str, json_log_path: Optional[str] = None):
        """Opens the session sinks and replays everything buffered so far."""
        self.targets.append(file_sink(session_log_path, self.sink_level))
        if json_log_path:
            self.targets.append(json_sink(json_log_path, self.sink_level))
        for record in self.pending.buffer:
            for target in self.targets:
                target.handle(record)
        self.pending.buffer.clear()

    def discard(self):
        self.pending.buffer.clear()

    def close(self):
        for target in self.targets:
            target.close()
        self.targets = []
        self.discard()
        self.pending.close()
        super().close()


def configure_logging(level: str = "INFO", console: bool = True, console_obj: Optional[Console] = None) -> logging.Logger:
    """Installs the console sink on the root logger, replacing any previous one."""
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        if isinstance(handler, RichHandler):
            root.removeHandler(handler)
            handler.close()
    if console:
        root.addHandler(console_sink(level, console_obj))
    return root


def log_event(logger: logging.Logger, level: int, message: str, **payload):
    """Single entry point for structured records: level, component (logger name), message, payload."""
    logger.log(level, message, extra={"payload": payload})
