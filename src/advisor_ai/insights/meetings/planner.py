"""Meeting planning: cadence advice, series detection, templates and follow-ups.

MeetingPlanner consumes normalized meeting communications for one client and
produces the artefacts an advisor uses between meetings. Scores are heuristic
(type/status based effectiveness, lexicon sentiment for satisfaction) and are
meant for ranking, not for reporting.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime, timedelta, timezone

import structlog

from src.advisor_ai.insights.heuristics import (
    classify_sentiment,
    extract_topics,
    humanize,
    round_half_up,
    sentiment_score,
)
from src.advisor_ai.insights.meetings.schemas import (
    Cadence,
    FollowUpChannel,
    FollowUpSuggestion,
    FollowUpTiming,
    FrequencyRecommendation,
    MeetingActionItem,
    MeetingAnalysis,
    MeetingRecommendations,
    MeetingSeries,
    MeetingTemplate,
    MeetingTypeRecommendation,
    RelationshipImpact,
    RelationshipTrend,
    Satisfaction,
)
from src.advisor_ai.insights.schemas import (
    Communication,
    MeetingStatus,
    MeetingType,
    Priority,
    Sentiment,
)

logger = structlog.get_logger(__name__)

# ── Reference Tables ─────────────────────────────────────────────────────────

CADENCE_DAYS: dict[Cadence, int] = {
    Cadence.WEEKLY: 7,
    Cadence.BI_WEEKLY: 14,
    Cadence.MONTHLY: 30,
    Cadence.QUARTERLY: 90,
}

CADENCE_REASONING: dict[Cadence, str] = {
    Cadence.WEEKLY: "Client prefers frequent communication",
    Cadence.BI_WEEKLY: "Client prefers regular bi-weekly meetings",
    Cadence.MONTHLY: "Client prefers monthly check-ins",
    Cadence.QUARTERLY: "Client prefers quarterly reviews",
}

OPTIMAL_DURATION_MINUTES: dict[MeetingType, int] = {
    MeetingType.SCHEDULED_CALL: 30,
    MeetingType.PORTFOLIO_REVIEW: 60,
    MeetingType.PLANNING_SESSION: 90,
    MeetingType.URGENT_CONSULTATION: 30,
}

BASE_AGENDAS: dict[MeetingType, list[str]] = {
    MeetingType.SCHEDULED_CALL: [
        "Account performance review",
        "Market updates",
        "Client questions",
        "Next steps",
    ],
    MeetingType.PORTFOLIO_REVIEW: [
        "Performance analysis",
        "Asset allocation review",
        "Rebalancing discussion",
        "Strategy adjustments",
    ],
    MeetingType.PLANNING_SESSION: [
        "Goal review and updates",
        "Life event planning",
        "Risk assessment",
        "Long-term strategy",
    ],
    MeetingType.URGENT_CONSULTATION: [
        "Immediate concerns",
        "Risk mitigation",
        "Quick actions needed",
        "Follow-up planning",
    ],
}

# Agenda item added when the topic came up in past meetings of that type
_TOPIC_AGENDA_ITEMS: dict[str, str] = {
    "risk": "Revisit risk tolerance",
    "goals": "Progress toward goals",
    "fees": "Fee and billing questions",
    "performance": "Benchmark comparison",
}

TEMPLATE_MIN_SCORE = 6.0

_ACTION_ITEM = re.compile(
    r"\b(will|follow up|follow-up|send|prepare|review|schedule|update|rebalance)\b",
    re.IGNORECASE,
)
_SENTENCE_SPLIT = re.compile(r"(?:\n+|;\s*|(?<=[.!?])\s+)")
_BULLET = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


def cadence_for_gap(average_gap_days: float) -> Cadence:
    if average_gap_days <= 7:
        return Cadence.WEEKLY
    if average_gap_days <= 14:
        return Cadence.BI_WEEKLY
    if average_gap_days <= 30:
        return Cadence.MONTHLY
    return Cadence.QUARTERLY


def effectiveness_score(meeting: Communication) -> float:
    """Heuristic 0-10 score from meeting type and outcome."""
    if meeting.status != MeetingStatus.COMPLETED:
        return 3.0
    if meeting.meeting_type == MeetingType.URGENT_CONSULTATION:
        return 8.0
    if meeting.meeting_type == MeetingType.PORTFOLIO_REVIEW:
        return 7.0
    return 6.0


def _average_gap_days(meetings: Sequence[Communication]) -> float:
    gaps = [
        (later.timestamp - earlier.timestamp).days
        for earlier, later in zip(meetings, meetings[1:])
    ]
    return sum(gaps) / len(gaps) if gaps else 0.0


def _meetings_only(communications: Sequence[Communication]) -> list[Communication]:
    return sorted((c for c in communications if c.is_meeting), key=lambda c: c.timestamp)


class MeetingPlanner:
    """Meeting cadence, series, template and follow-up generator.

    Args:
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    # ── Recommendations ──────────────────────────────────────────────────

    def recommend(self, communications: Sequence[Communication]) -> MeetingRecommendations:
        """Optimal cadence and best meeting types from completed meetings."""
        completed = [
            m for m in _meetings_only(communications) if m.status == MeetingStatus.COMPLETED
        ]
        if not completed:
            return MeetingRecommendations(
                optimal_frequency=FrequencyRecommendation(
                    reasoning="No meeting history available",
                ),
                best_meeting_types=MeetingTypeRecommendation(
                    reasoning="Default recommendation without meeting history",
                ),
            )

        if len(completed) < 2:
            frequency = FrequencyRecommendation(
                reasoning="Insufficient data for frequency analysis",
                current_gap_days=(self._clock() - completed[-1].timestamp).days,
            )
        else:
            cadence = cadence_for_gap(_average_gap_days(completed))
            frequency = FrequencyRecommendation(
                suggested=cadence,
                reasoning=CADENCE_REASONING[cadence],
                current_gap_days=(self._clock() - completed[-1].timestamp).days,
            )

        counts = Counter(m.meeting_type for m in completed if m.meeting_type is not None)
        ranked = [meeting_type for meeting_type, _ in counts.most_common()]
        primary = ranked[0] if ranked else MeetingType.SCHEDULED_CALL
        secondary = ranked[1] if len(ranked) > 1 else (
            MeetingType.PORTFOLIO_REVIEW
            if primary != MeetingType.PORTFOLIO_REVIEW
            else MeetingType.SCHEDULED_CALL
        )

        return MeetingRecommendations(
            optimal_frequency=frequency,
            best_meeting_types=MeetingTypeRecommendation(
                primary=primary,
                secondary=secondary,
                reasoning=f"Based on {len(completed)} completed meetings",
            ),
        )

    # ── Series ───────────────────────────────────────────────────────────

    def series(self, client_id: str, communications: Sequence[Communication]) -> list[MeetingSeries]:
        """One MeetingSeries per meeting type with at least two completed meetings."""
        meetings = _meetings_only(communications)
        by_type: dict[MeetingType, list[Communication]] = {}
        for meeting in meetings:
            if meeting.meeting_type is not None:
                by_type.setdefault(meeting.meeting_type, []).append(meeting)

        result: list[MeetingSeries] = []
        for meeting_type, typed in by_type.items():
            completed = [m for m in typed if m.status == MeetingStatus.COMPLETED]
            if len(completed) < 2:
                continue

            cadence = cadence_for_gap(_average_gap_days(completed))
            next_date = completed[-1].timestamp + timedelta(days=CADENCE_DAYS[cadence])
            scores = [effectiveness_score(m) for m in completed]

            result.append(
                MeetingSeries(
                    series_id=f"series-{client_id}-{meeting_type.value}",
                    client_id=client_id,
                    meeting_type=meeting_type,
                    cadence=cadence,
                    total_meetings=len(completed),
                    average_effectiveness=round_half_up(sum(scores) / len(scores), 1),
                    completion_rate=round_half_up(len(completed) / len(typed) * 100, 1),
                    next_suggested_date=next_date.date().isoformat(),
                    topics_evolution=self._topics_evolution(completed),
                    relationship_trend=self._relationship_trend(completed),
                )
            )

        logger.debug("meeting_planner.series_detected", client_id=client_id, count=len(result))
        return result

    @staticmethod
    def _topics_evolution(meetings: Sequence[Communication]) -> list[str]:
        seen: dict[str, None] = {}
        for meeting in meetings:
            for topic in extract_topics(meeting.full_text):
                seen.setdefault(topic, None)
        return list(seen)

    @staticmethod
    def _relationship_trend(meetings: Sequence[Communication]) -> RelationshipTrend:
        half = len(meetings) // 2
        earlier = sum(sentiment_score(m.full_text) for m in meetings[:half]) / max(1, half)
        later = sum(sentiment_score(m.full_text) for m in meetings[half:]) / max(
            1, len(meetings) - half
        )
        if later - earlier >= 1:
            return RelationshipTrend.IMPROVING
        if earlier - later >= 1:
            return RelationshipTrend.DECLINING
        return RelationshipTrend.STABLE

    # ── Templates ────────────────────────────────────────────────────────

    def templates(self, communications: Sequence[Communication]) -> list[MeetingTemplate]:
        """Templates for meeting types whose average effectiveness is at least 6."""
        meetings = _meetings_only(communications)
        scores: dict[MeetingType, list[float]] = {}
        for meeting in meetings:
            if meeting.meeting_type is not None:
                scores.setdefault(meeting.meeting_type, []).append(effectiveness_score(meeting))

        templates: list[MeetingTemplate] = []
        for meeting_type, type_scores in scores.items():
            average = sum(type_scores) / len(type_scores)
            if average < TEMPLATE_MIN_SCORE:
                continue
            typed = [m for m in meetings if m.meeting_type == meeting_type]
            templates.append(
                MeetingTemplate(
                    id=f"template-{meeting_type.value}",
                    name=humanize(meeting_type.value),
                    type=meeting_type,
                    duration_minutes=OPTIMAL_DURATION_MINUTES[meeting_type],
                    suggested_agenda=self._agenda(meeting_type, typed),
                    description=f"Based on {len(type_scores)} successful meetings",
                    confidence=round_half_up(average / 10, 2),
                )
            )

        return sorted(templates, key=lambda t: t.confidence, reverse=True)

    @staticmethod
    def _agenda(meeting_type: MeetingType, meetings: Sequence[Communication]) -> list[str]:
        agenda = list(BASE_AGENDAS[meeting_type])
        discussed = extract_topics(" ".join(m.full_text for m in meetings))
        for topic in discussed:
            item = _TOPIC_AGENDA_ITEMS.get(topic)
            if item and item not in agenda:
                agenda.append(item)
        return agenda

    # ── Single Meeting ───────────────────────────────────────────────────

    def analyze_meeting(self, meeting: Communication) -> MeetingAnalysis:
        """Heuristic analysis of one meeting's notes and outcome."""
        completed = meeting.status == MeetingStatus.COMPLETED
        sentiment = classify_sentiment(meeting.full_text)
        satisfaction = {
            Sentiment.POSITIVE: Satisfaction.HIGH,
            Sentiment.NEGATIVE: Satisfaction.LOW,
        }.get(sentiment, Satisfaction.MEDIUM)

        action_items = self._action_items(meeting)
        insights: list[str] = []
        if meeting.status == MeetingStatus.CANCELLED:
            insights.append("Meeting was cancelled; reschedule promptly")
        if satisfaction == Satisfaction.LOW:
            insights.append("Client raised concerns during the meeting")
        if action_items:
            insights.append(f"{len(action_items)} action item(s) captured from notes")

        return MeetingAnalysis(
            meeting_id=meeting.id,
            effectiveness_score=effectiveness_score(meeting),
            client_satisfaction=satisfaction,
            key_topics=extract_topics(meeting.full_text),
            action_items=action_items,
            follow_up_needed=completed,
            next_meeting_suggested=completed or meeting.status == MeetingStatus.CANCELLED,
            relationship_impact=sentiment.value,
            insights=insights,
        )

    @staticmethod
    def _action_items(meeting: Communication) -> list[MeetingActionItem]:
        if not meeting.notes:
            return []
        priority = (
            Priority.HIGH
            if meeting.meeting_type == MeetingType.URGENT_CONSULTATION
            else Priority.MEDIUM
        )
        due = (meeting.timestamp + timedelta(days=7)).date().isoformat()
        items: list[MeetingActionItem] = []
        for fragment in _SENTENCE_SPLIT.split(meeting.notes):
            sentence = _BULLET.sub("", fragment).strip()
            if sentence and _ACTION_ITEM.search(sentence):
                items.append(
                    MeetingActionItem(
                        id=f"{meeting.id}-action-{len(items) + 1}",
                        description=sentence,
                        priority=priority,
                        due_date=due,
                    )
                )
        return items

    def follow_up_suggestions(
        self,
        meeting: Communication,
        analysis: MeetingAnalysis | None = None,
        client_name: str = "Client",
    ) -> list[FollowUpSuggestion]:
        """Draft follow-up communications for a meeting."""
        analysis = analysis or self.analyze_meeting(meeting)
        meeting_name = humanize(meeting.meeting_type.value).lower() if meeting.meeting_type else "meeting"
        suggestions: list[FollowUpSuggestion] = []

        if analysis.follow_up_needed:
            pleased = (
                "I'm pleased to hear that you found our meeting productive.\n\n"
                if analysis.client_satisfaction == Satisfaction.HIGH
                else ""
            )
            items_note = (
                "As discussed, I will follow up on the action items we identified.\n\n"
                if analysis.action_items
                else ""
            )
            suggestions.append(
                FollowUpSuggestion(
                    channel=FollowUpChannel.EMAIL,
                    subject=f"Thank you for our {meeting_name} meeting",
                    content=(
                        f"Dear {client_name},\n\n"
                        f"Thank you for taking the time to meet with me for our {meeting_name}.\n\n"
                        f"{pleased}{items_note}"
                        "Please don't hesitate to reach out if you have any questions."
                    ),
                    timing=FollowUpTiming.IMMEDIATE,
                    priority=Priority.HIGH,
                )
            )

        if analysis.action_items:
            lines = "\n".join(
                f"{index}. {item.description} (Due: {item.due_date or 'TBD'})"
                for index, item in enumerate(analysis.action_items, start=1)
            )
            suggestions.append(
                FollowUpSuggestion(
                    channel=FollowUpChannel.EMAIL,
                    subject="Action items from our meeting",
                    content=(
                        f"Dear {client_name},\n\n"
                        "Following up on our recent meeting, here are the action items we discussed:\n\n"
                        f"{lines}\n\nI will keep you updated on the progress of these items."
                    ),
                    timing=FollowUpTiming.SHORT_TERM,
                    priority=Priority.MEDIUM,
                )
            )

        if analysis.next_meeting_suggested:
            suggestions.append(
                FollowUpSuggestion(
                    channel=FollowUpChannel.EMAIL,
                    subject="Scheduling our next meeting",
                    content=(
                        f"Dear {client_name},\n\n"
                        f"Following our recent {meeting_name}, I'd like to schedule our next check-in. "
                        "Please let me know your availability for the coming weeks."
                    ),
                    timing=FollowUpTiming.LONG_TERM,
                    priority=Priority.MEDIUM,
                )
            )

        if analysis.client_satisfaction == Satisfaction.LOW:
            suggestions.append(
                FollowUpSuggestion(
                    channel=FollowUpChannel.CALL,
                    subject="Follow-up call to address concerns",
                    content="Schedule a call to address any concerns from the meeting",
                    timing=FollowUpTiming.IMMEDIATE,
                    priority=Priority.HIGH,
                )
            )

        return suggestions

    @staticmethod
    def relationship_impact(analysis: MeetingAnalysis) -> RelationshipImpact:
        """Score how one meeting moved the relationship, clamped to -10..10."""
        impact = 0
        factors: list[str] = []
        recommendations: list[str] = []

        if analysis.effectiveness_score >= 8:
            impact += 2
            factors.append("High meeting effectiveness")
        elif analysis.effectiveness_score <= 4:
            impact -= 2
            factors.append("Low meeting effectiveness")
            recommendations.append("Review meeting preparation and agenda")

        if analysis.client_satisfaction == Satisfaction.HIGH:
            impact += 3
            factors.append("High client satisfaction")
        elif analysis.client_satisfaction == Satisfaction.LOW:
            impact -= 3
            factors.append("Low client satisfaction")
            recommendations.append("Address client concerns immediately")

        if analysis.relationship_impact == Sentiment.POSITIVE.value:
            impact += 2
            factors.append("Positive relationship impact")
        elif analysis.relationship_impact == Sentiment.NEGATIVE.value:
            impact -= 2
            factors.append("Negative relationship impact")
            recommendations.append("Schedule follow-up to repair relationship")

        if analysis.action_items:
            impact += 1
            factors.append("Clear action items identified")
            recommendations.append("Ensure timely completion of action items")

        return RelationshipImpact(
            impact=max(-10, min(10, impact)),
            factors=factors,
            recommendations=recommendations,
        )
