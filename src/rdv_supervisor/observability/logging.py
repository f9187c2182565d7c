"""Structured logging with one JSON line per event on the diagnostic stream."""

from __future__ import annotations

import json
import logging
import math
import sys
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Final, TextIO

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

_DEFAULT_LOGGER_NAME: Final[str] = "rdv_supervisor"
_FIELDS_ATTRIBUTE: Final[str] = "rdv_fields"
_NON_FINITE_VALUE: Final[str] = "non-finite"


class Severity(str, Enum):
    """Severities accepted by :meth:`StructuredLogger.log`."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def levelno(self) -> int:
        return _LEVEL_BY_SEVERITY[self]


_LEVEL_BY_SEVERITY: Final[dict[Severity, int]] = {
    Severity.DEBUG: logging.DEBUG,
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
}
_SEVERITY_ALIASES: Final[dict[str, Severity]] = {
    "debug": Severity.DEBUG,
    "info": Severity.INFO,
    "warn": Severity.WARN,
    "warning": Severity.WARN,
    "error": Severity.ERROR,
}


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Configuration for one invocation's structured logger."""

    tool_name: str
    invocation_id: str
    logger_name: str = _DEFAULT_LOGGER_NAME
    level: Severity | str = Severity.INFO
    stream: TextIO | None = None


class _DropCounter:
    """Thread-safe counter for records that could not be emitted."""

    __slots__ = ("_lock", "_value")

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> None:
        with self._lock:
            self._value += 1

    def value(self) -> int:
        with self._lock:
            return self._value


class _NonFailingStreamHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """Stream handler that counts emit failures instead of reporting them."""

    def __init__(self, stream: TextIO, drop_counter: _DropCounter) -> None:
        super().__init__(stream)
        self._drop_counter = drop_counter

    def handleError(self, record: logging.LogRecord) -> None:  # noqa: N802 - logging API.
        self._drop_counter.increment()


class _JsonLineFormatter(logging.Formatter):
    """Formatter that emits canonical JSON objects per log line."""

    def __init__(self, *, base_context: Mapping[str, str]) -> None:
        super().__init__()
        self._base_context = dict(base_context)

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, JSONValue] = {
            "timestamp": _iso8601z_from_epoch(record.created),
            "level": severity_for_levelno(record.levelno).value,
            "message": record.getMessage(),
        }
        for key, value in sorted(self._base_context.items()):
            event[key] = value

        fields = getattr(record, _FIELDS_ATTRIBUTE, None)
        if isinstance(fields, Mapping) and fields:
            event["fields"] = _normalize_json_value(fields)

        if record.exc_info is not None:
            event["exception"] = self.formatException(record.exc_info)

        return json.dumps(event, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class StructuredLogger:
    """Invocation-bound logger; every call emits exactly one JSON line."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        tool_name: str,
        invocation_id: str,
        handler: logging.Handler,
        drop_counter: _DropCounter,
    ) -> None:
        self._logger = logger
        self._tool_name = tool_name
        self._invocation_id = invocation_id
        self._handler = handler
        self._drop_counter = drop_counter

    @property
    def tool_name(self) -> str:
        return self._tool_name

    @property
    def invocation_id(self) -> str:
        return self._invocation_id

    @property
    def dropped_records(self) -> int:
        return self._drop_counter.value()

    def log(self, severity: Severity | str, message: str, **fields: object) -> None:
        resolved = parse_severity(severity)
        self._logger.log(resolved.levelno, message, extra={_FIELDS_ATTRIBUTE: fields})

    def debug(self, message: str, **fields: object) -> None:
        self.log(Severity.DEBUG, message, **fields)

    def info(self, message: str, **fields: object) -> None:
        self.log(Severity.INFO, message, **fields)

    def warn(self, message: str, **fields: object) -> None:
        self.log(Severity.WARN, message, **fields)

    def error(self, message: str, **fields: object) -> None:
        self.log(Severity.ERROR, message, **fields)

    def close(self) -> None:
        self._handler.flush()
        self._logger.removeHandler(self._handler)


def setup_structured_logging(config: LoggingConfig) -> StructuredLogger:
    """Configure a synchronous JSON-lines logger bound to one tool invocation."""

    tool_name = _validate_identity_value("tool_name", config.tool_name)
    invocation_id = _validate_identity_value("invocation_id", config.invocation_id)
    level = parse_severity(config.level).levelno

    drop_counter = _DropCounter()
    handler = _NonFailingStreamHandler(
        config.stream if config.stream is not None else sys.stderr, drop_counter
    )
    handler.setLevel(level)
    handler.setFormatter(
        _JsonLineFormatter(base_context={"tool": tool_name, "invocation_id": invocation_id})
    )

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False

    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    logger.addHandler(handler)

    return StructuredLogger(
        logger=logger,
        tool_name=tool_name,
        invocation_id=invocation_id,
        handler=handler,
        drop_counter=drop_counter,
    )


def parse_severity(value: Severity | str | int) -> Severity:
    """Resolve a severity name (``warn`` or ``warning``) or ``logging`` level number."""

    if isinstance(value, Severity):
        return value
    if isinstance(value, int):
        return severity_for_levelno(value)
    if not isinstance(value, str):
        raise ValueError(f"severity must be str or int, got {type(value).__name__}")
    try:
        return _SEVERITY_ALIASES[value.strip().lower()]
    except KeyError as exc:
        allowed = ", ".join(item.value for item in Severity)
        raise ValueError(f"unsupported severity {value!r}; expected one of: {allowed}") from exc


def severity_for_levelno(levelno: int) -> Severity:
    if levelno >= logging.ERROR:
        return Severity.ERROR
    if levelno >= logging.WARNING:
        return Severity.WARN
    if levelno >= logging.INFO:
        return Severity.INFO
    return Severity.DEBUG


def _validate_identity_value(name: str, value: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {type(value).__name__}")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{name} must not be empty")
    return normalized


def _iso8601z_from_epoch(epoch_seconds: float) -> str:
    timestamp = datetime.fromtimestamp(epoch_seconds, tz=UTC)
    return timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _normalize_json_value(value: object) -> JSONValue:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isfinite(value):
            return value
        return _NON_FINITE_VALUE
    if isinstance(value, str):
        return value
    if isinstance(value, Enum):
        return _normalize_json_value(value.value)
    if isinstance(value, datetime):
        if value.tzinfo is None or value.utcoffset() is None:
            normalized = value.replace(tzinfo=UTC)
        else:
            normalized = value.astimezone(UTC)
        return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        output: dict[str, JSONValue] = {}
        for key, item in value.items():
            output[str(key)] = _normalize_json_value(item)
        return output
    if isinstance(value, (list, tuple)):
        return [_normalize_json_value(item) for item in value]
    if isinstance(value, (set, frozenset)):
        normalized_items = [_normalize_json_value(item) for item in value]
        return sorted(
            normalized_items,
            key=lambda item: json.dumps(
                item, sort_keys=True, separators=(",", ":"), ensure_ascii=False
            ),
        )
    return repr(value)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LoggingConfig",
    "Severity",
    "StructuredLogger",
    "parse_severity",
    "setup_structured_logging",
    "severity_for_levelno",
]
