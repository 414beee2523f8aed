# katelyatv/codec.py
import json
from datetime import datetime, timezone
from typing import Any, Optional, Union

# datetime's supported range, years 1 to 9999
_MIN_MS = -62135596800000
_MAX_MS = 253402300799999


def dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def loads(raw: Optional[str]) -> Any:
    """Decode a stored value; empty values read as absent, non-JSON strings come back as-is."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        return raw
    return None if value is None or value == "" else value


def timestamp_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


def _iso_utc(dt: datetime) -> str:
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def iso_timestamp(value: Union[int, float, str]) -> str:
    """
    Stored creation time to ISO-8601 UTC, e.g. 2024-05-01T08:00:00.000Z.

    Accepts a millisecond epoch (number or numeric string) or an ISO-8601
    string; a string without an offset is taken as UTC.
    Raises ValueError / TypeError for unusable input.
    """
    if isinstance(value, bool):
        raise TypeError("timestamp must be a number or an ISO-8601 string")
    if isinstance(value, str):
        text = value.strip()
        try:
            ms = float(text)
        except ValueError:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return _iso_utc(dt.astimezone(timezone.utc))
    else:
        ms = float(value)
    if not _MIN_MS <= ms <= _MAX_MS:
        raise ValueError(f"timestamp out of range: {value!r}")
    return _iso_utc(datetime.fromtimestamp(ms / 1000, tz=timezone.utc))
