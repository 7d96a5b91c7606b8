import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.eventlog.domain.candidate_event import CandidateEvent
from src.eventlog.domain.event import Event, in_slot_range

# RFC 3339 allows any fraction length; datetime keeps exactly microseconds.
_FRACTION = re.compile(r"\.(\d+)")


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[:-6] + "Z"
    return text


def parse_timestamp(value: str) -> datetime:
    """
    Read an RFC 3339 timestamp. Fractions finer than a microsecond are
    truncated, so "...55.123456789Z" comes back as "...55.123456Z".
    Naive values are taken as UTC.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def serialize_event(event: Event) -> Dict[str, Any]:
    return {
        "id": event.id,
        "timestamp": format_timestamp(event.timestamp),
        "flags": list(event.flags),
        "data": event.data,
    }


def serialize_events(events: List[Event]) -> List[Dict[str, Any]]:
    return [serialize_event(event) for event in events]


def deserialize_event(data: Dict[str, Any]) -> Event:
    return Event(
        id=int(data["id"]),
        timestamp=parse_timestamp(data["timestamp"]),
        flags=tuple(int(flag) for flag in data.get("flags", [])),
        data=str(data.get("data", "")),
    )


def _strict_int(value: Any, name: str) -> int:
    # bool is an int subclass; JSON true/false is not a number here
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer")
    if not in_slot_range(value):
        raise ValueError(f"{name} is outside the signed 64-bit range")
    return value


def deserialize_candidate(item: Any) -> CandidateEvent:
    """
    Read one element of a submitted batch. Keys match case-insensitively;
    missing keys fall back to the unset value. Raises ValueError when a
    present field has the wrong type or an id or flag does not fit in a
    signed 64-bit slot.
    """
    if not isinstance(item, dict):
        raise ValueError("event must be a JSON object")
    fields = {str(key).lower(): value for key, value in item.items()}

    raw_id = fields.get("id")
    event_id = 0 if raw_id is None else _strict_int(raw_id, "id")

    timestamp: Optional[datetime] = None
    raw_timestamp = fields.get("timestamp")
    if raw_timestamp is not None:
        if not isinstance(raw_timestamp, str):
            raise ValueError("timestamp must be a string")
        timestamp = parse_timestamp(raw_timestamp)

    raw_flags = fields.get("flags")
    if raw_flags is None:
        raw_flags = []
    if not isinstance(raw_flags, list):
        raise ValueError("flags must be an array")
    flags = tuple(_strict_int(flag, "flag") for flag in raw_flags)

    raw_data = fields.get("data")
    if raw_data is None:
        raw_data = ""
    if not isinstance(raw_data, str):
        raise ValueError("data must be a string")

    return CandidateEvent(id=event_id, timestamp=timestamp, flags=flags, data=raw_data)
