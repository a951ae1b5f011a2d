from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Pattern, Tuple, Union

from .errors import DecodeError, FilterCompileError
from .log_record import LogLevel, LogRecord, NetworkLogRecord

# One datagram carries one record; 65535 covers the largest UDP payload.
MAX_DATAGRAM_SIZE = 65535

PatternOrStr = Union[Pattern[str], str]
Source = Tuple[str, int]

_LEVEL_ALIASES = {
    "warning": LogLevel.WARN,
}

# datetime.fromisoformat() before 3.11 takes exactly 3 or 6 fractional digits;
# .NET senders emit 1 to 7 with trailing zeros trimmed.
_FRACTION_RE = re.compile(r"\.(\d+)")


# ---------- Wire decoding ----------

def parse_level(value: Any, source: Optional[Source] = None) -> LogLevel:
    # bool is an int subclass; true/false is never a level
    if isinstance(value, bool):
        raise DecodeError(f"invalid level {value!r}", source)

    if isinstance(value, int):
        try:
            return LogLevel(value)
        except ValueError:
            raise DecodeError(f"unknown level {value!r}", source) from None

    if isinstance(value, str):
        key = value.strip().lower()
        if key.isdecimal():
            return parse_level(int(key), source)
        if key in _LEVEL_ALIASES:
            return _LEVEL_ALIASES[key]
        try:
            return LogLevel[key.upper()]
        except KeyError:
            raise DecodeError(f"unknown level {value!r}", source) from None

    raise DecodeError(f"invalid level {value!r}", source)


def parse_time(value: Any, source: Optional[Source] = None) -> datetime:
    if isinstance(value, bool):
        raise DecodeError(f"invalid time {value!r}", source)

    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise DecodeError(f"time out of range {value!r}", source) from None

    if isinstance(value, str):
        text = value.strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            raise DecodeError(f"invalid time {value!r}", source) from None

    raise DecodeError(f"invalid time {value!r}", source)


def _load_document(data: bytes, source: Optional[Source]) -> Dict[str, Any]:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise DecodeError(f"payload is not valid UTF-8: {e.reason}", source) from None

    try:
        doc = json.loads(text)
    except (ValueError, RecursionError) as e:
        raise DecodeError(f"payload is not valid JSON: {e}", source) from None

    if not isinstance(doc, dict):
        raise DecodeError("payload is not a JSON object", source)

    # Field names are case-insensitive: "Level" and "level" are the same field.
    return {str(k).lower(): v for k, v in doc.items()}


def _required(doc: Dict[str, Any], name: str, source: Optional[Source]) -> Any:
    value = doc.get(name)
    if value is None:
        raise DecodeError(f"missing field {name!r}", source)
    return value


def decode_record(data: bytes, source: Optional[Source] = None) -> LogRecord:
    """
    Decode one datagram payload into a LogRecord.

    Payload: UTF-8 JSON object with Level, Time and Message.
    Raises DecodeError for anything else.
    """
    doc = _load_document(data, source)

    level = parse_level(_required(doc, "level", source), source)
    timestamp = parse_time(_required(doc, "time", source), source)
    message = _required(doc, "message", source)
    if not isinstance(message, str):
        raise DecodeError(f"message is not a string: {type(message).__name__}", source)

    return LogRecord(level=level, timestamp=timestamp, message=message)


def decode_datagram(data: bytes, addr: Source) -> NetworkLogRecord:
    """Decode a datagram and stamp it with the address it came from."""
    host, port = addr[0], int(addr[1])
    rec = decode_record(data, (host, port))
    return NetworkLogRecord(
        level=rec.level,
        timestamp=rec.timestamp,
        message=rec.message,
        remote_address=host,
        remote_port=port,
    )


def encode_record(record: LogRecord) -> bytes:
    payload = {
        "Level": record.level.label,
        "Time": record.timestamp.isoformat(),
        "Message": record.message,
    }
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


# ---------- Filter helpers ----------

def compile_pattern(text: str, use_regex: bool) -> Optional[PatternOrStr]:
    """
    Turn filter text into a matcher.

    None means "match everything" (empty text). Regex mode raises
    FilterCompileError for an invalid expression.
    """
    if not text:
        return None

    if use_regex:
        try:
            return re.compile(text)
        except re.error as e:
            raise FilterCompileError(text, e) from None

    return text


def match_message(message: str, pattern: Optional[PatternOrStr]) -> bool:
    if pattern is None:
        return True
    if isinstance(pattern, str):
        # case-sensitive containment
        return pattern in message
    return pattern.search(message) is not None


# ---------- Display ----------

def format_timestamp(dt: datetime) -> str:
    # Format: yyyymmdd-hh:mm:ss.mmm
    return dt.strftime("%Y%m%d-%H:%M:%S.") + f"{dt.microsecond // 1000:03d}"


def format_record(record: LogRecord) -> str:
    line = f"{format_timestamp(record.timestamp)} [{record.level.name}]"
    if isinstance(record, NetworkLogRecord):
        line += f" {record.source}"
    return f"{line} {record.message}"
