"""Meeting analytics attached to every analysis result.

Derives cadence, patterns, engagement and topic splits from the meeting-kind
communications of a batch. Returns None when the batch has no meetings.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timezone

from src.advisor_ai.insights.heuristics import extract_topics, round_half_up
from src.advisor_ai.insights.schemas import (
    Communication,
    CommunicationKind,
    EngagementLevel,
    MeetingEngagement,
    MeetingFrequency,
    MeetingInsights,
    MeetingPatterns,
    MeetingStatus,
    MeetingTopics,
    VirtualSplit,
)

DAYS_PER_MONTH = 30
HIGH_ENGAGEMENT_PER_MONTH = 2.0
LOW_ENGAGEMENT_PER_MONTH = 0.5
HIGH_COMPLETION_RATE = 80.0
LOW_COMPLETION_RATE = 60.0
OVERDUE_AFTER_DAYS = 30


def meeting_insights(
    communications: Sequence[Communication],
    now: datetime | None = None,
) -> MeetingInsights | None:
    """Build MeetingInsights for a batch, or None when it holds no meetings."""
    now = now or datetime.now(timezone.utc)
    meetings = sorted((c for c in communications if c.is_meeting), key=lambda c: c.timestamp)
    if not meetings:
        return None
    emails = [c for c in communications if c.kind == CommunicationKind.EMAIL]

    frequency = _frequency(meetings, now)
    patterns = _patterns(meetings)
    return MeetingInsights(
        frequency=frequency,
        patterns=patterns,
        engagement=_engagement(meetings, now),
        topics=_topics(meetings, emails),
    )


def _months_observed(meetings: Sequence[Communication], now: datetime) -> int:
    return max(1, (now - meetings[0].timestamp).days // DAYS_PER_MONTH)


def _frequency(meetings: Sequence[Communication], now: datetime) -> MeetingFrequency:
    completed = [m for m in meetings if m.status == MeetingStatus.COMPLETED]
    upcoming = [
        m for m in meetings if m.status == MeetingStatus.SCHEDULED and m.timestamp > now
    ]

    return MeetingFrequency(
        total_meetings=len(meetings),
        average_per_month=round_half_up(len(meetings) / _months_observed(meetings, now), 1),
        last_meeting_date=completed[-1].timestamp.isoformat() if completed else None,
        next_scheduled_meeting=upcoming[0].timestamp.isoformat() if upcoming else None,
    )


def _patterns(meetings: Sequence[Communication]) -> MeetingPatterns:
    type_counts = Counter(m.meeting_type for m in meetings if m.meeting_type is not None)
    preferred = [meeting_type for meeting_type, _ in type_counts.most_common(2)]

    completed = [m for m in meetings if m.status == MeetingStatus.COMPLETED]
    durations = [m.duration_minutes for m in completed if m.duration_minutes]
    average_duration = int(round_half_up(sum(durations) / len(durations))) if durations else 0

    virtual = sum(1 for m in meetings if m.meeting_url)
    in_person = sum(1 for m in meetings if m.location and not m.meeting_url)

    return MeetingPatterns(
        preferred_meeting_types=preferred,
        average_duration=average_duration,
        virtual_vs_in_person=VirtualSplit(virtual=virtual, in_person=in_person),
        completion_rate=round_half_up(len(completed) / len(meetings) * 100, 1),
    )


def _engagement(meetings: Sequence[Communication], now: datetime) -> MeetingEngagement:
    indicators: list[str] = []
    follow_ups: list[str] = []
    level = EngagementLevel.MEDIUM

    # Levels compare the unrounded rates; only the reported fields are rounded
    per_month = len(meetings) / _months_observed(meetings, now)
    completed = [m for m in meetings if m.status == MeetingStatus.COMPLETED]
    completion_rate = len(completed) / len(meetings) * 100

    if per_month >= HIGH_ENGAGEMENT_PER_MONTH:
        level = EngagementLevel.HIGH
        indicators.append("High meeting frequency")
    elif per_month < LOW_ENGAGEMENT_PER_MONTH:
        level = EngagementLevel.LOW
        indicators.append("Low meeting frequency")

    if completion_rate >= HIGH_COMPLETION_RATE:
        indicators.append("High meeting completion rate")
    elif completion_rate < LOW_COMPLETION_RATE:
        indicators.append("Low meeting completion rate")
        follow_ups.append("Address meeting cancellation patterns")

    if any(m.status == MeetingStatus.CANCELLED for m in meetings):
        follow_ups.append("Follow up on cancelled meetings")

    has_scheduled = any(m.status == MeetingStatus.SCHEDULED for m in meetings)
    if completed and not has_scheduled:
        if (now - completed[-1].timestamp).days > OVERDUE_AFTER_DAYS:
            follow_ups.append("Schedule next meeting - overdue")

    return MeetingEngagement(level=level, indicators=indicators, follow_up_actions=follow_ups)


def _topics(
    meetings: Sequence[Communication],
    emails: Sequence[Communication],
) -> MeetingTopics:
    meeting_topics = extract_topics(" \n".join(m.full_text for m in meetings))
    email_topics = extract_topics(" \n".join(e.text for e in emails))
    return MeetingTopics(
        frequently_discussed=list(dict.fromkeys([*meeting_topics, *email_topics])),
        meeting_specific_topics=[t for t in meeting_topics if t not in email_topics],
        email_topics=email_topics,
        meeting_topics=meeting_topics,
    )
