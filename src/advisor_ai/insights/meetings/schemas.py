"""Pydantic v2 schemas for meeting planning: recommendations, series, templates, follow-ups."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from src.advisor_ai.insights.schemas import MeetingType, Priority


class Cadence(str, Enum):
    """Meeting cadence bucket derived from the average gap between meetings."""

    WEEKLY = "weekly"
    BI_WEEKLY = "bi-weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class Satisfaction(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RelationshipTrend(str, Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class FollowUpTiming(str, Enum):
    IMMEDIATE = "immediate"
    SHORT_TERM = "short_term"
    LONG_TERM = "long_term"


class FollowUpChannel(str, Enum):
    EMAIL = "email"
    CALL = "call"
    MEETING = "meeting"


# ── Recommendations ──────────────────────────────────────────────────────────


class FrequencyRecommendation(BaseModel):
    suggested: Cadence = Cadence.MONTHLY
    reasoning: str
    current_gap_days: int = 0


class MeetingTypeRecommendation(BaseModel):
    primary: MeetingType = MeetingType.SCHEDULED_CALL
    secondary: MeetingType = MeetingType.PORTFOLIO_REVIEW
    reasoning: str


class MeetingRecommendations(BaseModel):
    """Cadence and meeting-type advice for one client."""

    optimal_frequency: FrequencyRecommendation
    best_meeting_types: MeetingTypeRecommendation


# ── Series & Templates ───────────────────────────────────────────────────────


class MeetingSeries(BaseModel):
    """A recurring run of completed meetings of the same type."""

    series_id: str
    client_id: str
    meeting_type: MeetingType
    cadence: Cadence
    total_meetings: int
    average_effectiveness: float = Field(ge=0, le=10)
    completion_rate: float = Field(ge=0, le=100)
    next_suggested_date: str = Field(description="Calendar date, yyyy-mm-dd")
    topics_evolution: list[str] = Field(
        default_factory=list,
        description="Topics in order of first appearance across the series",
    )
    relationship_trend: RelationshipTrend = RelationshipTrend.STABLE


class MeetingTemplate(BaseModel):
    id: str
    name: str
    type: MeetingType
    duration_minutes: int
    suggested_agenda: list[str] = Field(default_factory=list)
    description: str
    confidence: float = Field(ge=0, le=1)


# ── Single-Meeting Analysis & Follow-ups ─────────────────────────────────────


class MeetingActionItem(BaseModel):
    id: str
    description: str
    priority: Priority = Priority.MEDIUM
    due_date: str | None = None
    assigned_to: str = "advisor"
    status: str = "pending"


class MeetingAnalysis(BaseModel):
    """Heuristic read-out of one meeting's agenda, notes and outcome."""

    meeting_id: str
    effectiveness_score: float = Field(ge=0, le=10)
    client_satisfaction: Satisfaction = Satisfaction.MEDIUM
    key_topics: list[str] = Field(default_factory=list)
    action_items: list[MeetingActionItem] = Field(default_factory=list)
    follow_up_needed: bool = False
    next_meeting_suggested: bool = False
    relationship_impact: str = "neutral"
    insights: list[str] = Field(default_factory=list)


class FollowUpSuggestion(BaseModel):
    channel: FollowUpChannel
    subject: str
    content: str
    timing: FollowUpTiming
    priority: Priority


class RelationshipImpact(BaseModel):
    impact: int = Field(ge=-10, le=10)
    factors: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
