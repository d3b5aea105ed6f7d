"""Keyword heuristics shared by every analysis backend.

Topic extraction, lexicon sentiment, weekly frequency, next-best actions,
highlights and last-interaction selection. All functions are pure; the
time-relative ones take ``now`` so callers (and tests) control the clock.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone

from src.advisor_ai.insights.schemas import (
    ClientSummary,
    Communication,
    Highlight,
    LastInteraction,
    MeetingStatus,
    NextBestAction,
    Priority,
    Sentiment,
)

# ── Lexicons ─────────────────────────────────────────────────────────────────

# Dictionary order is the order topics are reported in
TOPIC_KEYWORDS: dict[str, re.Pattern] = {
    "portfolio": re.compile(r"\b(portfolio|allocation|rebalanc|holdings)", re.IGNORECASE),
    "meeting": re.compile(r"\b(meet|call|schedul|zoom|teams)", re.IGNORECASE),
    "performance": re.compile(r"\b(performance|returns?\b|benchmark|alpha\b|beta\b)", re.IGNORECASE),
    "risk": re.compile(
        r"\b(risk|volatil|drawdown|hedg|market drop|crash|panic|anxi|worried|concern)",
        re.IGNORECASE,
    ),
    "fees": re.compile(r"\b(fee|billing|invoice|cost)", re.IGNORECASE),
    "goals": re.compile(r"\b(goal|retire|college|house|wedding|vacation)", re.IGNORECASE),
}

POSITIVE_WORDS = re.compile(
    r"\b(thank|great|appreciat|good\b|pleased|glad|happy|excellent|outstanding|"
    r"fantastic|wonderful|amazing)",
    re.IGNORECASE,
)
NEGATIVE_WORDS = re.compile(
    r"\b(concern|issue|problem|delay|bad\b|unhappy|angry|frustrat|worr|anxious|"
    r"nervous|scared|afraid|panic|crash|drop|loss|lose|can'?t afford|cannot afford|"
    r"volatil|uncertain|stress|pressure)",
    re.IGNORECASE,
)

MARKET_ANXIETY = re.compile(
    r"\b(market crash|market drop|worried|anxious|nervous|panic|can'?t afford|"
    r"cannot afford|move to cash)",
    re.IGNORECASE,
)
LIFE_EVENT = re.compile(
    r"\b(wedding|anniversary|baby|graduation|moving|relocat)",
    re.IGNORECASE,
)
PREFERENCE = re.compile(r"\b(etf|index fund|dividend|esg|sustainab)", re.IGNORECASE)

# Net lexicon score must exceed this (in either direction) to leave neutral
SENTIMENT_THRESHOLD = 1

SNIPPET_LENGTH = 140
OVERDUE_MEETING_DAYS = 30
DEFAULT_MEETING_MINUTES = 60


# ── Small Helpers ────────────────────────────────────────────────────────────


def round_half_up(value: float, digits: int = 0) -> float:
    """Round half away from zero like a spreadsheet would, not banker's rounding."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def combined_text(communications: Sequence[Communication]) -> str:
    return " \n".join(c.text for c in communications)


def format_due_date(now: datetime, days: int) -> str:
    return (now + timedelta(days=days)).date().isoformat()


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


def humanize(value: str) -> str:
    """``portfolio_review`` -> ``Portfolio Review``."""
    return " ".join(part.capitalize() for part in value.split("_"))


# ── Topics, Sentiment, Frequency ─────────────────────────────────────────────


def extract_topics(text: str) -> list[str]:
    """Topic keys whose keyword pattern occurs in ``text``, in dictionary order."""
    return [topic for topic, pattern in TOPIC_KEYWORDS.items() if pattern.search(text)]


def sentiment_score(text: str) -> int:
    """Positive-lexicon occurrences minus negative-lexicon occurrences."""
    return len(POSITIVE_WORDS.findall(text)) - len(NEGATIVE_WORDS.findall(text))


def classify_sentiment(text: str) -> Sentiment:
    score = sentiment_score(text)
    if score > SENTIMENT_THRESHOLD:
        return Sentiment.POSITIVE
    if score < -SENTIMENT_THRESHOLD:
        return Sentiment.NEGATIVE
    return Sentiment.NEUTRAL


def _week_start(moment: datetime) -> datetime:
    # Calendar weeks start on Sunday
    day = moment.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    return day - timedelta(days=(day.weekday() + 1) % 7)


def calendar_weeks_between(earliest: datetime, latest: datetime) -> int:
    """Number of week boundaries crossed between two instants."""
    return round((_week_start(latest) - _week_start(earliest)).days / 7)


def frequency_per_week(communications: Sequence[Communication]) -> float:
    """Communications per calendar week across the batch, one decimal.

    Fewer than two communications report the raw count. Otherwise the span
    is at least one week.
    """
    count = len(communications)
    if count < 2:
        return float(count)
    timestamps = [c.timestamp for c in communications]
    weeks = max(1, calendar_weeks_between(min(timestamps), max(timestamps)))
    return round_half_up(count / weeks, 1)


def last_interaction(communications: Sequence[Communication]) -> LastInteraction | None:
    if not communications:
        return None
    latest = max(communications, key=lambda c: c.timestamp)
    return LastInteraction(
        when=latest.timestamp.isoformat(),
        kind=latest.kind,
        subject=latest.subject,
        snippet=latest.body[:SNIPPET_LENGTH],
    )


def summary_text(topics: Sequence[str], sentiment: Sentiment, frequency: float) -> str:
    topic_text = ", ".join(topics) if topics else "general topics"
    return (
        f"Client communications discuss {topic_text}. "
        f"Overall sentiment appears {sentiment.value}. "
        f"Estimated frequency ~{frequency}/week."
    )


def build_summary(communications: Sequence[Communication], prefix: str = "") -> ClientSummary:
    text = combined_text(communications)
    topics = extract_topics(text)
    sentiment = classify_sentiment(text)
    frequency = frequency_per_week(communications)
    body = summary_text(topics, sentiment, frequency)
    return ClientSummary(
        text=f"{prefix} {body}" if prefix else body,
        topics=topics,
        sentiment=sentiment,
        frequency_per_week=frequency,
    )


# ── Next-Best Actions ────────────────────────────────────────────────────────


def next_best_actions(
    communications: Sequence[Communication],
    now: datetime | None = None,
) -> list[NextBestAction]:
    """Every applicable action, in rule order.

    The market-insights action is only suggested when no other rule fires.
    """
    now = _now(now)
    text = combined_text(communications)
    meetings = [c for c in communications if c.is_meeting]
    actions: list[NextBestAction] = []

    if MARKET_ANXIETY.search(text):
        actions.append(
            NextBestAction(
                id="nba-anxiety",
                title="Schedule urgent risk tolerance review",
                rationale=(
                    "Client expressed market anxiety and safety concerns; "
                    "review risk tolerance and reassure on the long-term plan."
                ),
                priority=Priority.HIGH,
                due_date=format_due_date(now, 1),
            )
        )

    cancelled = [m for m in meetings if m.status == MeetingStatus.CANCELLED]
    if cancelled:
        actions.append(
            NextBestAction(
                id="nba-meeting-cancelled",
                title="Follow up on cancelled meeting",
                rationale=(
                    f"{len(cancelled)} meeting(s) were cancelled; "
                    "reach out to reschedule and check in."
                ),
                priority=Priority.HIGH,
                due_date=format_due_date(now, 1),
            )
        )

    completed = [m for m in meetings if m.status == MeetingStatus.COMPLETED]
    scheduled = [m for m in meetings if m.status == MeetingStatus.SCHEDULED]
    if completed and not scheduled:
        last_completed = max(m.timestamp for m in completed)
        days_since = (now - last_completed).days
        if days_since > OVERDUE_MEETING_DAYS:
            actions.append(
                NextBestAction(
                    id="nba-meeting-overdue",
                    title="Schedule next client meeting",
                    rationale=(
                        f"Last meeting was {days_since} days ago and nothing is scheduled."
                    ),
                    priority=Priority.MEDIUM,
                    due_date=format_due_date(now, 3),
                )
            )

    if not meetings:
        actions.append(
            NextBestAction(
                id="nba-propose-meeting",
                title="Propose next meeting times",
                rationale="No meetings on record; offer a few slots to keep the relationship warm.",
                priority=Priority.MEDIUM,
                due_date=format_due_date(now, 2),
            )
        )

    if TOPIC_KEYWORDS["portfolio"].search(text):
        actions.append(
            NextBestAction(
                id="nba-portfolio-summary",
                title="Send portfolio change summary",
                rationale="Portfolio changes were discussed; summarize them in writing.",
                priority=Priority.HIGH,
                due_date=format_due_date(now, 1),
            )
        )

    if not actions:
        actions.append(
            NextBestAction(
                id="nba-market-insights",
                title="Share market insights",
                rationale="No urgent signals; share a relevant market update to stay in touch.",
                priority=Priority.LOW,
            )
        )

    return actions


# ── Highlights ───────────────────────────────────────────────────────────────


def preferred_meeting_type(meetings: Sequence[Communication]) -> str | None:
    """Most frequent meeting type; ties go to the type seen first."""
    counts = Counter(m.meeting_type for m in meetings if m.meeting_type is not None)
    if not counts:
        return None
    # Counter preserves insertion order and most_common is stable
    return counts.most_common(1)[0][0].value


def highlights(communications: Sequence[Communication], now: datetime | None = None) -> list[Highlight]:
    now = _now(now)
    text = combined_text(communications)
    result: list[Highlight] = []

    if MARKET_ANXIETY.search(text):
        result.append(Highlight(label="Risk Profile", value="Expressed market anxiety and safety concerns"))
    if TOPIC_KEYWORDS["goals"].search(text):
        result.append(Highlight(label="Investment Goal", value="Long-term retirement planning"))
    if LIFE_EVENT.search(text):
        result.append(Highlight(label="Life Event", value="Upcoming personal milestone"))
    if PREFERENCE.search(text):
        result.append(Highlight(label="Preference", value="Prefers diversified/ESG strategies"))

    meetings = sorted((c for c in communications if c.is_meeting), key=lambda c: c.timestamp)
    completed = [m for m in meetings if m.status == MeetingStatus.COMPLETED]
    if completed:
        durations = [m.duration_minutes or DEFAULT_MEETING_MINUTES for m in completed]
        average = int(round_half_up(sum(durations) / len(durations)))
        result.append(
            Highlight(
                label="Meeting Engagement",
                value=f"{len(completed)} completed meetings (avg {average} min)",
            )
        )

    scheduled = [m for m in meetings if m.status == MeetingStatus.SCHEDULED]
    if scheduled:
        value = f"{len(scheduled)} scheduled"
        upcoming = [m for m in scheduled if m.timestamp >= now]
        if upcoming:
            value += f", next on {upcoming[0].timestamp.date().isoformat()}"
        result.append(Highlight(label="Upcoming Meetings", value=value))

    preferred = preferred_meeting_type(meetings)
    if preferred is not None:
        result.append(Highlight(label="Preferred Meeting Type", value=humanize(preferred)))

    if not result:
        result.append(Highlight(label="Preference", value="No explicit preferences detected"))
    return result
