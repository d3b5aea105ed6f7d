"""Coalesce heterogeneous upstream records into canonical Communications.

Upstream sources disagree on field names: Graph mail items carry
``receivedDateTime`` and ``from.emailAddress.address``, calendar events
carry ``start.dateTime`` and ``organizer``, chat messages carry
``createdDateTime``, and the advisor sample data uses flat ``startTime`` /
``meetingType`` / ``status`` keys. ``normalize`` accepts any mix of them and
never raises: unknown or junk records become defaulted Communications so
the output always has exactly one record per input, in input order.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone
from typing import Any

import structlog
from dateutil import parser as date_parser
from pydantic import BaseModel

from src.advisor_ai.insights.schemas import (
    Attendee,
    Communication,
    CommunicationKind,
    MeetingStatus,
    MeetingType,
)

logger = structlog.get_logger(__name__)

RawRecord = Mapping[str, Any]

# Checked in order; the first parseable one wins
TIMESTAMP_FIELDS: tuple[str, ...] = (
    "timestamp",
    "receivedDateTime",
    "createdDateTime",
    "startTime",
    "start",
)

_KIND_ALIASES: dict[str, CommunicationKind] = {
    "email": CommunicationKind.EMAIL,
    "mail": CommunicationKind.EMAIL,
    "message": CommunicationKind.CHAT,
    "chat": CommunicationKind.CHAT,
    "teams": CommunicationKind.CHAT,
    "event": CommunicationKind.EVENT,
    "calendar": CommunicationKind.EVENT,
    "meeting": CommunicationKind.MEETING,
}

_MEETING_TYPE_ALIASES: dict[str, MeetingType] = {
    "call": MeetingType.SCHEDULED_CALL,
    "review": MeetingType.PORTFOLIO_REVIEW,
    "planning": MeetingType.PLANNING_SESSION,
    "urgent": MeetingType.URGENT_CONSULTATION,
}

_STATUS_ALIASES: dict[str, MeetingStatus] = {
    "done": MeetingStatus.COMPLETED,
    "complete": MeetingStatus.COMPLETED,
    "canceled": MeetingStatus.CANCELLED,
    "upcoming": MeetingStatus.SCHEDULED,
    "tentative": MeetingStatus.SCHEDULED,
}


# ── Field Coalescing ─────────────────────────────────────────────────────────


def _as_record(raw: Any) -> dict[str, Any]:
    if isinstance(raw, BaseModel):
        return raw.model_dump(by_alias=True)
    if isinstance(raw, Mapping):
        return dict(raw)
    return {}


def _first(record: RawRecord, *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def _nested(value: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(value, Mapping):
            return None
        value = value.get(key)
    return value


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a datetime, ISO string, epoch milliseconds or {dateTime} dict.

    Naive values are taken as UTC. Returns None when nothing usable is found.
    """
    if isinstance(value, Mapping):
        value = value.get("dateTime")
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        try:
            parsed = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # Offsets that push the instant outside datetime's range
        return None


def _resolve_timestamp(record: RawRecord, now: datetime) -> datetime:
    for key in TIMESTAMP_FIELDS:
        parsed = parse_timestamp(record.get(key))
        if parsed is not None:
            return parsed
    return now


def _resolve_sender(record: RawRecord) -> str | None:
    for key in ("from", "sender", "organizer"):
        value = record.get(key)
        if isinstance(value, str) and value:
            return value
        address = _nested(value, "emailAddress", "address") or _nested(value, "email")
        if isinstance(address, str) and address:
            return address
    return None


def _resolve_body(record: RawRecord) -> str:
    body = record.get("body")
    content = _nested(body, "content")
    if isinstance(content, str) and content:
        return content
    preview = _first(record, "bodyPreview", "preview")
    if isinstance(preview, str):
        return preview
    if isinstance(body, str) and body:
        return body
    description = record.get("description")
    return description if isinstance(description, str) else ""


def _resolve_kind(record: RawRecord) -> CommunicationKind:
    value = _first(record, "kind", "type")
    if isinstance(value, str):
        kind = _KIND_ALIASES.get(value.strip().lower())
        if kind is not None:
            return kind
    elif value is None and _first(record, "meetingType", "meeting_type"):
        return CommunicationKind.MEETING
    return CommunicationKind.EMAIL


def _parse_meeting_type(value: Any) -> MeetingType | None:
    if not isinstance(value, str) or not value:
        return None
    key = value.strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return MeetingType(key)
    except ValueError:
        return _MEETING_TYPE_ALIASES.get(key.split("_")[-1])


def _parse_status(value: Any) -> MeetingStatus | None:
    if not isinstance(value, str) or not value:
        return None
    key = value.strip().lower()
    try:
        return MeetingStatus(key)
    except ValueError:
        return _STATUS_ALIASES.get(key)


def _parse_duration(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and value >= 0:
        return int(value)
    if isinstance(value, str):
        try:
            return max(0, int(float(value)))
        except ValueError:
            return None
    return None


def _parse_location(value: Any) -> str | None:
    if isinstance(value, str):
        return value or None
    name = _nested(value, "displayName")
    return name if isinstance(name, str) and name else None


def _parse_attendees(value: Any) -> list[Attendee]:
    if not isinstance(value, Sequence) or isinstance(value, str):
        return []
    attendees: list[Attendee] = []
    for item in value:
        if isinstance(item, str):
            attendees.append(Attendee(address=item))
            continue
        source = _nested(item, "emailAddress") or item
        if isinstance(source, Mapping):
            attendees.append(
                Attendee(
                    name=str(source.get("name") or ""),
                    address=str(source.get("address") or source.get("email") or ""),
                )
            )
    return attendees


def _optional_text(record: RawRecord, *keys: str) -> str | None:
    value = _first(record, *keys)
    return value if isinstance(value, str) else None


# ── Public API ───────────────────────────────────────────────────────────────


def normalize_one(raw: Any, index: int, now: datetime | None = None) -> Communication:
    """Normalize a single upstream record; ``index`` is the fallback id."""
    now = now or datetime.now(timezone.utc)
    record = _as_record(raw)

    raw_id = record.get("id")
    timestamp = _resolve_timestamp(record, now)
    subject = _first(record, "subject", "summary", "title")

    communication = Communication(
        id=str(raw_id) if raw_id not in (None, "") else str(index),
        kind=_resolve_kind(record),
        sender=_resolve_sender(record),
        subject=subject if isinstance(subject, str) else "",
        body=_resolve_body(record),
        timestamp=timestamp,
        meeting_type=_parse_meeting_type(_first(record, "meetingType", "meeting_type")),
        status=_parse_status(_first(record, "meetingStatus", "status")),
        location=_parse_location(_first(record, "meetingLocation", "location")),
        meeting_url=_optional_text(record, "meetingUrl", "onlineMeetingUrl", "meeting_url"),
        agenda=_optional_text(record, "meetingAgenda", "agenda"),
        notes=_optional_text(record, "meetingNotes", "notes"),
        attendees=_parse_attendees(_first(record, "meetingAttendees", "attendees")),
        end_time=parse_timestamp(_first(record, "endTime", "end")),
        duration_minutes=_parse_duration(
            _first(record, "meetingDuration", "durationMinutes", "duration_minutes", "duration")
        ),
    )

    if communication.duration_minutes is None and communication.end_time is not None:
        delta = communication.end_time - communication.timestamp
        if delta.total_seconds() >= 0:
            communication.duration_minutes = int(delta.total_seconds() // 60)

    return communication


def normalize(raw_communications: Sequence[Any] | None, now: datetime | None = None) -> list[Communication]:
    """Normalize a batch of upstream records.

    Args:
        raw_communications: Records in any supported upstream shape. None is
            treated as an empty batch.
        now: Timestamp used for records without any parseable time.

    Returns:
        One Communication per input record, in input order.
    """
    if not raw_communications:
        return []

    now = now or datetime.now(timezone.utc)
    normalized = [normalize_one(raw, index, now) for index, raw in enumerate(raw_communications)]

    defaulted = sum(1 for c in normalized if c.timestamp == now)
    if defaulted:
        logger.debug("normalizer.timestamp_defaulted", count=defaulted, total=len(normalized))
    return normalized
