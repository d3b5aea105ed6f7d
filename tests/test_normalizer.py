"""Unit tests for the communication normalizer.

Covers Graph mail, calendar events, chat messages and advisor meeting
records, timestamp coalescing, meeting field parsing and junk input.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.advisor_ai.insights.normalizer import normalize, normalize_one, parse_timestamp
from src.advisor_ai.insights.schemas import (
    CommunicationKind,
    MeetingStatus,
    MeetingType,
)


# ── Constants ────────────────────────────────────────────────────────────────

NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


# ── parse_timestamp ──────────────────────────────────────────────────────────


class TestParseTimestamp:
    """Timestamp parsing across supported shapes."""

    def test_iso_string_with_zone(self):
        parsed = parse_timestamp("2024-06-01T10:00:00Z")
        assert parsed == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_naive_string_is_utc(self):
        parsed = parse_timestamp("2024-06-01T10:00:00")
        assert parsed.tzinfo is not None
        assert parsed == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self):
        assert parse_timestamp(1717200000000) == datetime(2024, 6, 1, tzinfo=timezone.utc)

    def test_graph_datetime_dict(self):
        parsed = parse_timestamp({"dateTime": "2024-06-02T09:30:00", "timeZone": "UTC"})
        assert parsed == datetime(2024, 6, 2, 9, 30, tzinfo=timezone.utc)

    def test_unparseable_returns_none(self):
        assert parse_timestamp("not a date") is None
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None
        assert parse_timestamp(True) is None

    def test_out_of_range_offset_returns_none(self):
        assert parse_timestamp("0001-01-01T00:00:00+01:00") is None
        assert parse_timestamp(datetime(9999, 12, 31, 23, 0, tzinfo=timezone(-timedelta(hours=5)))) is None


# ── Upstream Shapes ──────────────────────────────────────────────────────────


class TestUpstreamShapes:
    """Each upstream record shape maps onto a Communication."""

    def test_graph_mail_item(self):
        comm = normalize_one(
            {
                "id": "mail-1",
                "subject": "Quarterly statement",
                "receivedDateTime": "2024-06-01T10:00:00Z",
                "from": {"emailAddress": {"address": "client@example.com"}},
                "body": {"content": "Thanks for the statement."},
                "bodyPreview": "Thanks...",
            },
            0,
            NOW,
        )
        assert comm.id == "mail-1"
        assert comm.kind == CommunicationKind.EMAIL
        assert comm.sender == "client@example.com"
        assert comm.body == "Thanks for the statement."
        assert comm.timestamp == datetime(2024, 6, 1, 10, 0, tzinfo=timezone.utc)

    def test_calendar_event(self):
        comm = normalize_one(
            {
                "type": "event",
                "summary": "Annual review",
                "start": {"dateTime": "2024-06-02T09:00:00"},
                "organizer": {"email": "advisor@example.com"},
                "description": "Go over the plan",
            },
            3,
            NOW,
        )
        assert comm.id == "3"
        assert comm.kind == CommunicationKind.EVENT
        assert comm.subject == "Annual review"
        assert comm.sender == "advisor@example.com"
        assert comm.body == "Go over the plan"
        assert comm.timestamp == datetime(2024, 6, 2, 9, 0, tzinfo=timezone.utc)

    def test_chat_message(self):
        comm = normalize_one(
            {
                "type": "message",
                "createdDateTime": "2024-06-03T08:15:00Z",
                "from": "client@example.com",
                "preview": "Quick question",
            },
            0,
            NOW,
        )
        assert comm.kind == CommunicationKind.CHAT
        assert comm.sender == "client@example.com"
        assert comm.body == "Quick question"

    def test_advisor_meeting_record(self):
        comm = normalize_one(
            {
                "id": "mtg-1",
                "subject": "Portfolio review",
                "meetingType": "portfolio_review",
                "meetingStatus": "completed",
                "startTime": "2024-05-01T15:00:00Z",
                "endTime": "2024-05-01T16:30:00Z",
                "meetingUrl": "https://zoom.example.com/j/1",
                "meetingAgenda": "Allocation",
                "meetingNotes": "Will rebalance.",
                "meetingAttendees": [
                    {"emailAddress": {"name": "Jane Doe", "address": "jane@example.com"}},
                    "advisor@example.com",
                ],
            },
            0,
            NOW,
        )
        assert comm.kind == CommunicationKind.MEETING
        assert comm.is_meeting
        assert comm.meeting_type == MeetingType.PORTFOLIO_REVIEW
        assert comm.status == MeetingStatus.COMPLETED
        assert comm.duration_minutes == 90
        assert comm.meeting_url == "https://zoom.example.com/j/1"
        assert comm.agenda == "Allocation"
        assert comm.notes == "Will rebalance."
        assert [a.address for a in comm.attendees] == ["jane@example.com", "advisor@example.com"]
        assert comm.attendees[0].name == "Jane Doe"

    def test_explicit_duration_wins_over_end_time(self):
        comm = normalize_one(
            {
                "kind": "meeting",
                "startTime": "2024-05-01T15:00:00Z",
                "endTime": "2024-05-01T16:30:00Z",
                "meetingDuration": 45,
            },
            0,
            NOW,
        )
        assert comm.duration_minutes == 45

    def test_location_display_name(self):
        comm = normalize_one(
            {"kind": "meeting", "location": {"displayName": "Main office"}},
            0,
            NOW,
        )
        assert comm.location == "Main office"


# ── Field Aliases ────────────────────────────────────────────────────────────


class TestAliases:
    """Loose spellings of kinds, meeting types and statuses."""

    def test_unknown_kind_defaults_to_email(self):
        assert normalize_one({"kind": "fax"}, 0, NOW).kind == CommunicationKind.EMAIL

    def test_meeting_type_without_kind_is_meeting(self):
        assert normalize_one({"meetingType": "scheduled_call"}, 0, NOW).kind == CommunicationKind.MEETING

    def test_meeting_type_spellings(self):
        assert normalize_one({"meetingType": "Portfolio Review"}, 0, NOW).meeting_type == MeetingType.PORTFOLIO_REVIEW
        assert normalize_one({"meetingType": "urgent"}, 0, NOW).meeting_type == MeetingType.URGENT_CONSULTATION
        assert normalize_one({"meetingType": "planning-session"}, 0, NOW).meeting_type == MeetingType.PLANNING_SESSION
        assert normalize_one({"meetingType": "coffee"}, 0, NOW).meeting_type is None

    def test_status_spellings(self):
        assert normalize_one({"status": "canceled"}, 0, NOW).status == MeetingStatus.CANCELLED
        assert normalize_one({"status": "Completed"}, 0, NOW).status == MeetingStatus.COMPLETED
        assert normalize_one({"status": "upcoming"}, 0, NOW).status == MeetingStatus.SCHEDULED


# ── Batch Behaviour ──────────────────────────────────────────────────────────


class TestNormalizeBatch:
    """normalize() never raises and preserves length and order."""

    def test_empty_and_none(self):
        assert normalize([], NOW) == []
        assert normalize(None, NOW) == []

    def test_junk_records_are_defaulted(self):
        result = normalize([None, "text", 42, {}], NOW)
        assert len(result) == 4
        assert [c.id for c in result] == ["0", "1", "2", "3"]
        assert all(c.kind == CommunicationKind.EMAIL for c in result)
        assert all(c.timestamp == NOW for c in result)
        assert all(c.subject == "" and c.body == "" for c in result)

    def test_order_is_preserved(self):
        raw = [
            {"id": "late", "timestamp": "2024-06-10T00:00:00Z"},
            {"id": "early", "timestamp": "2024-01-10T00:00:00Z"},
        ]
        assert [c.id for c in normalize(raw, NOW)] == ["late", "early"]

    def test_first_parseable_timestamp_field_wins(self):
        comm = normalize_one(
            {"timestamp": "garbage", "receivedDateTime": "2024-06-05T00:00:00Z"},
            0,
            NOW,
        )
        assert comm.timestamp == datetime(2024, 6, 5, tzinfo=timezone.utc)

    def test_out_of_range_timestamp_falls_back_to_now(self):
        result = normalize([{"id": "old", "timestamp": "0001-01-01T00:00:00+01:00"}], NOW)
        assert len(result) == 1
        assert result[0].timestamp == NOW
