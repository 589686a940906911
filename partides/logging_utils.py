import json
import logging
import sys
import typing as _t
from contextvars import ContextVar
from typing import Any, Dict, Optional, Union

# Context var to carry a request id through the request lifecycle
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# structured fields picked up from `extra=` when present on a record
EXTRA_FIELDS = (
    "path",
    "method",
    "status",
    "duration_ms",
    "client",
    "user_agent",
    "url",
    "error",
    "errors",
    "kind",
    "codi",
    "id_grup",
    "data_limit",
    "eliminats",
    "migration",
    "applied",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        rid = request_id_ctx.get()
        if rid:
            payload["request_id"] = rid
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                payload[key] = val
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ColorFormatter(logging.Formatter):
    """Human-friendly formatter for terminals."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    GREY = "\033[90m"
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def _color(self, text: str, color: str) -> str:
        if not self.use_color:
            return text
        return f"{color}{text}{self.RESET}"

    def _status_color(self, status: int) -> str:
        if status < 400:
            return self.COLORS["INFO"]
        if status < 500:
            return self.COLORS["WARNING"]
        return self.COLORS["ERROR"]

    def _request_line(self, record: logging.LogRecord) -> Optional[str]:
        method = getattr(record, "method", None)
        path = getattr(record, "path", None)
        status = getattr(record, "status", None)
        duration_ms = getattr(record, "duration_ms", None)
        parts: _t.List[str] = []
        if method:
            parts.append(self._color(method, self.BOLD))
        if path:
            parts.append(self._color(path, "\033[36m"))
        if isinstance(status, int):
            parts.append(self._color(str(status), self._status_color(status)))
        if duration_ms is not None:
            parts.append(self._color(f"{duration_ms}ms", self.GREY))
        return " ".join(parts) if parts else None

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        parts: _t.List[str] = [
            self._color(level, self.COLORS.get(level, "")),
            self.formatTime(record, datefmt="%H:%M:%S"),
        ]
        rid = request_id_ctx.get()
        if rid:
            parts.append(self._color(f"rid={rid}", "\033[35m"))
        parts.append(self._color(record.name, "\033[34m"))

        req_line = self._request_line(record)
        if req_line:
            parts.append(req_line)

        msg = record.getMessage()
        if msg:
            parts.extend(["-", msg])

        ctx = [
            f"{key}={getattr(record, key)}"
            for key in EXTRA_FIELDS
            if key not in ("method", "path", "status", "duration_ms") and getattr(record, key, None) is not None
        ]
        if ctx:
            parts.append(self._color("[" + " ".join(ctx) + "]", self.GREY))

        if record.exc_info:
            parts.append("\n" + self.formatException(record.exc_info))
        return " ".join(parts)


def _wants_pretty(log_format: str, stream) -> bool:
    if log_format in ("pretty", "json"):
        return log_format == "pretty"
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except (OSError, ValueError):
        return False


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_format: str = "",
    use_color: bool = True,
) -> logging.Logger:
    """Install one stdout handler on the root logger and share it with uvicorn.

    ``log_format`` is "pretty" or "json"; empty picks pretty on a terminal.
    ``use_color`` only matters for the pretty formatter.
    """
    stream = sys.stdout
    handler = logging.StreamHandler(stream)
    if _wants_pretty(log_format, stream):
        handler.setFormatter(ColorFormatter(use_color=use_color))
    else:
        handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = [handler]
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.setLevel(level)
        lg.propagate = False
    return root


def get_logger(name: str = "partides") -> logging.Logger:
    return logging.getLogger(name)
