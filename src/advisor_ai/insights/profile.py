"""Client investment profile, concerns and relationship health heuristics.

Used by the local NLP backend directly and by the remote LLM backend to map
its frequency bucket back onto a weekly rate.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from enum import Enum

from pydantic import BaseModel, Field

from src.advisor_ai.insights.schemas import Communication


class FrequencyBucket(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    IRREGULAR = "irregular"
    INSUFFICIENT_DATA = "insufficient_data"


class RiskTolerance(str, Enum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"
    UNKNOWN = "unknown"


class TimeHorizon(str, Enum):
    SHORT = "short"
    MEDIUM = "medium"
    LONG = "long"
    UNKNOWN = "unknown"


# Weekly rate reported for a frequency bucket
FREQUENCY_PER_WEEK: dict[FrequencyBucket, float] = {
    FrequencyBucket.WEEKLY: 1.0,
    FrequencyBucket.MONTHLY: 0.25,
    FrequencyBucket.QUARTERLY: 0.08,
    FrequencyBucket.IRREGULAR: 0.1,
    FrequencyBucket.INSUFFICIENT_DATA: 0.0,
}

GOAL_TERMS = (
    "retirement", "college", "house", "vacation", "wedding",
    "emergency fund", "education", "travel",
)
LIFE_EVENT_TERMS = (
    "marriage", "divorce", "birth", "death", "job change",
    "promotion", "retirement", "graduation",
)
CONCERN_TERMS = (
    "worried", "concerned", "anxious", "uncertain", "confused",
    "disappointed", "frustrated",
)
_CONSERVATIVE = re.compile(r"\b(conservative|safe|stable)\b", re.IGNORECASE)
_AGGRESSIVE = re.compile(r"\b(aggressive|risky|volatile)\b", re.IGNORECASE)
_MODERATE = re.compile(r"\bmoderate\b", re.IGNORECASE)


class InvestmentProfile(BaseModel):
    goals: list[str] = Field(default_factory=list)
    risk_tolerance: RiskTolerance = RiskTolerance.UNKNOWN
    time_horizon: TimeHorizon = TimeHorizon.UNKNOWN


class RelationshipHealth(BaseModel):
    score: int = Field(5, ge=1, le=10)
    indicators: list[str] = Field(default_factory=list)


def _contains(text: str, term: str) -> bool:
    return re.search(rf"\b{re.escape(term)}", text, re.IGNORECASE) is not None


def investment_profile(text: str) -> InvestmentProfile:
    """Goals, risk tolerance and time horizon inferred from keyword mentions."""
    if _CONSERVATIVE.search(text):
        risk = RiskTolerance.CONSERVATIVE
    elif _AGGRESSIVE.search(text):
        risk = RiskTolerance.AGGRESSIVE
    elif _MODERATE.search(text):
        risk = RiskTolerance.MODERATE
    else:
        risk = RiskTolerance.UNKNOWN

    return InvestmentProfile(
        goals=[goal for goal in GOAL_TERMS if _contains(text, goal)],
        risk_tolerance=risk,
        time_horizon=time_horizon(text),
    )


def time_horizon(text: str) -> TimeHorizon:
    lowered = text.lower()
    if "retirement" in lowered or "long term" in lowered or "long-term" in lowered:
        return TimeHorizon.LONG
    if "house" in lowered or "college" in lowered:
        return TimeHorizon.MEDIUM
    if "emergency" in lowered or "short term" in lowered or "short-term" in lowered:
        return TimeHorizon.SHORT
    return TimeHorizon.UNKNOWN


def life_events(text: str) -> list[str]:
    return [event for event in LIFE_EVENT_TERMS if _contains(text, event)]


def concerns(communications: Sequence[Communication]) -> list[str]:
    """Per-communication concern statements, deduplicated in order."""
    found: dict[str, None] = {}
    for communication in communications:
        subject = communication.subject or "communication"
        for term in CONCERN_TERMS:
            if _contains(communication.text, term):
                found.setdefault(f"Client expressed {term} about {subject}", None)
        if communication.text.count("?") > 2:
            found.setdefault(f"Client has multiple questions about: {subject}", None)
    return list(found)


def frequency_bucket(communications: Sequence[Communication]) -> FrequencyBucket:
    """Bucket by average days between consecutive communications."""
    if len(communications) < 2:
        return FrequencyBucket.INSUFFICIENT_DATA
    timestamps = sorted(c.timestamp for c in communications)
    intervals = [
        (later - earlier).total_seconds() / 86400
        for earlier, later in zip(timestamps, timestamps[1:])
    ]
    average = sum(intervals) / len(intervals)
    if average <= 10:
        return FrequencyBucket.WEEKLY
    if average <= 35:
        return FrequencyBucket.MONTHLY
    if average <= 100:
        return FrequencyBucket.QUARTERLY
    return FrequencyBucket.IRREGULAR


def relationship_health(
    bucket: FrequencyBucket,
    polarity: float,
    concern_count: int,
    communication_count: int,
) -> RelationshipHealth:
    """Score 1-10 from cadence, tone (polarity in -1..1) and open concerns."""
    score = 5.0
    if bucket == FrequencyBucket.WEEKLY:
        score += 2
    elif bucket == FrequencyBucket.MONTHLY:
        score += 1
    elif bucket == FrequencyBucket.IRREGULAR:
        score -= 1
    score += polarity * 2
    score -= min(concern_count * 0.5, 2)

    indicators: list[str] = []
    if bucket == FrequencyBucket.WEEKLY:
        indicators.append("High engagement frequency")
    if polarity > 0.2:
        indicators.append("Positive communication tone")
    if polarity < -0.2:
        indicators.append("Potential dissatisfaction detected")
    if communication_count > 10:
        indicators.append("Long-term client relationship")

    return RelationshipHealth(score=max(1, min(10, round(score))), indicators=indicators)
