"""Unit tests for meeting analytics attached to analysis results."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from src.advisor_ai.insights.meetings.analytics import meeting_insights
from src.advisor_ai.insights.schemas import (
    Communication,
    CommunicationKind,
    EngagementLevel,
    MeetingStatus,
    MeetingType,
)


# ── Constants ────────────────────────────────────────────────────────────────

NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


def _meeting(
    id: str,
    when: datetime,
    meeting_type: MeetingType,
    status: MeetingStatus,
    subject: str,
    duration: int | None = None,
    url: str | None = None,
    location: str | None = None,
) -> Communication:
    return Communication(
        id=id,
        kind=CommunicationKind.MEETING,
        subject=subject,
        timestamp=when,
        meeting_type=meeting_type,
        status=status,
        duration_minutes=duration,
        meeting_url=url,
        location=location,
    )


def _mixed_history() -> list[Communication]:
    return [
        _meeting(
            "m1", datetime(2024, 3, 14, 12, tzinfo=timezone.utc),
            MeetingType.PORTFOLIO_REVIEW, MeetingStatus.COMPLETED, "Portfolio review",
            duration=60, url="https://zoom.example.com/1",
        ),
        _meeting(
            "m2", datetime(2024, 4, 15, 12, tzinfo=timezone.utc),
            MeetingType.SCHEDULED_CALL, MeetingStatus.COMPLETED, "Check-in call",
            duration=30, location="Office",
        ),
        _meeting(
            "m3", datetime(2024, 5, 15, 12, tzinfo=timezone.utc),
            MeetingType.PORTFOLIO_REVIEW, MeetingStatus.CANCELLED, "Portfolio review",
            location="Office",
        ),
        _meeting(
            "m4", datetime(2024, 6, 20, 12, tzinfo=timezone.utc),
            MeetingType.PLANNING_SESSION, MeetingStatus.SCHEDULED, "Planning session",
            url="https://zoom.example.com/4",
        ),
        Communication(
            id="e1",
            subject="Question about fees",
            body="Can you explain the invoice?",
            timestamp=datetime(2024, 6, 1, tzinfo=timezone.utc),
        ),
    ]


class TestMeetingInsights:
    """Frequency, patterns, engagement and topics over a mixed history."""

    def test_no_meetings_returns_none(self):
        comms = [Communication(id="e1", body="Hello", timestamp=NOW)]
        assert meeting_insights(comms, NOW) is None

    def test_frequency(self):
        insights = meeting_insights(_mixed_history(), NOW)
        assert insights.frequency.total_meetings == 4
        # 92 days since the first meeting -> 3 months
        assert insights.frequency.average_per_month == 1.3
        assert insights.frequency.last_meeting_date == "2024-04-15T12:00:00+00:00"
        assert insights.frequency.next_scheduled_meeting == "2024-06-20T12:00:00+00:00"

    def test_patterns(self):
        patterns = meeting_insights(_mixed_history(), NOW).patterns
        assert patterns.preferred_meeting_types == [
            MeetingType.PORTFOLIO_REVIEW,
            MeetingType.SCHEDULED_CALL,
        ]
        assert patterns.average_duration == 45
        assert patterns.virtual_vs_in_person.virtual == 2
        assert patterns.virtual_vs_in_person.in_person == 2
        assert patterns.completion_rate == 50.0

    def test_engagement_flags_cancellations(self):
        engagement = meeting_insights(_mixed_history(), NOW).engagement
        assert engagement.level == EngagementLevel.MEDIUM
        assert engagement.indicators == ["Low meeting completion rate"]
        assert engagement.follow_up_actions == [
            "Address meeting cancellation patterns",
            "Follow up on cancelled meetings",
        ]

    def test_topics_split_by_channel(self):
        topics = meeting_insights(_mixed_history(), NOW).topics
        assert topics.meeting_topics == ["portfolio", "meeting"]
        assert topics.email_topics == ["fees"]
        assert topics.frequently_discussed == ["portfolio", "meeting", "fees"]
        assert topics.meeting_specific_topics == ["portfolio", "meeting"]

    def test_overdue_follow_up(self):
        comms = [
            _meeting(
                "m1", NOW - timedelta(days=45), MeetingType.SCHEDULED_CALL,
                MeetingStatus.COMPLETED, "Check-in", duration=30,
            )
        ]
        insights = meeting_insights(comms, NOW)
        assert insights.frequency.average_per_month == 1.0
        assert insights.frequency.next_scheduled_meeting is None
        assert "High meeting completion rate" in insights.engagement.indicators
        assert insights.engagement.follow_up_actions == ["Schedule next meeting - overdue"]

    def test_high_frequency_engagement(self):
        comms = [
            _meeting(
                f"m{i}", NOW - timedelta(days=days), MeetingType.SCHEDULED_CALL,
                MeetingStatus.COMPLETED, "Weekly sync",
            )
            for i, days in enumerate((20, 13, 6))
        ]
        engagement = meeting_insights(comms, NOW).engagement
        assert engagement.level == EngagementLevel.HIGH
        assert engagement.indicators == ["High meeting frequency", "High meeting completion rate"]
        assert engagement.follow_up_actions == []

    def test_low_frequency_engagement(self):
        comms = [
            _meeting(
                "m1", NOW - timedelta(days=150), MeetingType.PORTFOLIO_REVIEW,
                MeetingStatus.COMPLETED, "Annual review",
            ),
            _meeting(
                "m2", NOW + timedelta(days=10), MeetingType.PORTFOLIO_REVIEW,
                MeetingStatus.SCHEDULED, "Annual review",
            ),
        ]
        engagement = meeting_insights(comms, NOW).engagement
        # 2 meetings over 5 months
        assert engagement.level == EngagementLevel.LOW
        assert "Low meeting frequency" in engagement.indicators

    def test_completion_rate_with_one_cancellation(self):
        comms = [
            _meeting(
                "m1", NOW - timedelta(days=40), MeetingType.PORTFOLIO_REVIEW,
                MeetingStatus.COMPLETED, "Portfolio review",
            ),
            _meeting(
                "m2", NOW - timedelta(days=20), MeetingType.PORTFOLIO_REVIEW,
                MeetingStatus.COMPLETED, "Portfolio review",
            ),
            _meeting(
                "m3", NOW - timedelta(days=10), MeetingType.SCHEDULED_CALL,
                MeetingStatus.CANCELLED, "Check-in",
            ),
        ]
        insights = meeting_insights(comms, NOW)
        assert insights.patterns.completion_rate == 66.7
        assert "Follow up on cancelled meetings" in insights.engagement.follow_up_actions

    def test_engagement_level_uses_unrounded_rate(self):
        comms = [
            _meeting(
                f"m{i}", NOW - timedelta(days=570 - i * 60), MeetingType.SCHEDULED_CALL,
                MeetingStatus.COMPLETED, "Check-in",
            )
            for i in range(9)
        ]
        insights = meeting_insights(comms, NOW)
        # 9 meetings over 19 months is 0.47/month, reported as 0.5
        assert insights.frequency.average_per_month == 0.5
        assert insights.engagement.level == EngagementLevel.LOW
        assert "Low meeting frequency" in insights.engagement.indicators

    def test_past_dated_scheduled_meeting_suppresses_overdue(self):
        comms = [
            _meeting(
                "m1", NOW - timedelta(days=40), MeetingType.SCHEDULED_CALL,
                MeetingStatus.COMPLETED, "Check-in",
            ),
            _meeting(
                "m2", NOW - timedelta(days=35), MeetingType.SCHEDULED_CALL,
                MeetingStatus.SCHEDULED, "Check-in",
            ),
        ]
        insights = meeting_insights(comms, NOW)
        assert insights.frequency.next_scheduled_meeting is None
        assert "Schedule next meeting - overdue" not in insights.engagement.follow_up_actions

    def test_email_topics_ignore_chats_and_events(self):
        comms = [
            _meeting(
                "m1", NOW - timedelta(days=5), MeetingType.PORTFOLIO_REVIEW,
                MeetingStatus.COMPLETED, "Portfolio review",
            ),
            Communication(
                id="c1", kind=CommunicationKind.CHAT, body="What are the fees?",
                timestamp=NOW - timedelta(days=3),
            ),
            Communication(
                id="ev1", kind=CommunicationKind.EVENT, subject="Goals workshop",
                timestamp=NOW - timedelta(days=2),
            ),
            Communication(
                id="e1", subject="Risk question", body="How volatile is this?",
                timestamp=NOW - timedelta(days=1),
            ),
        ]
        topics = meeting_insights(comms, NOW).topics
        assert topics.email_topics == ["risk"]
