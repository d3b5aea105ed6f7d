"""Pydantic v2 schemas for client communication analysis.

Defines the canonical communication record produced by the normalizer, the
backend-agnostic AnalysisResult every backend returns, the meeting analytics
block, and the EnhancedInsights envelope the processing manager hands back to
callers together with its ProcessingMetrics.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ────────────────────────────────────────────────────────────────────


class ProcessingMode(str, Enum):
    """Analysis backend selector."""

    RULE_BASED = "rule_based"
    LOCAL_NLP = "local_nlp"
    REMOTE_LLM = "remote_llm"

    @classmethod
    def _missing_(cls, value: object) -> ProcessingMode | None:
        if not isinstance(value, str):
            return None
        key = value.strip().lower().replace("-", "_")
        aliases = {
            "mock": cls.RULE_BASED,
            "rules": cls.RULE_BASED,
            "nlp": cls.LOCAL_NLP,
            "openai": cls.REMOTE_LLM,
            "llm": cls.REMOTE_LLM,
        }
        if key in aliases:
            return aliases[key]
        for member in cls:
            if member.value == key:
                return member
        return None


class CommunicationKind(str, Enum):
    """Channel a communication arrived through."""

    EMAIL = "email"
    EVENT = "event"
    CHAT = "chat"
    MEETING = "meeting"


class MeetingType(str, Enum):
    """Kind of advisor/client meeting."""

    SCHEDULED_CALL = "scheduled_call"
    PORTFOLIO_REVIEW = "portfolio_review"
    PLANNING_SESSION = "planning_session"
    URGENT_CONSULTATION = "urgent_consultation"


class MeetingStatus(str, Enum):
    """Lifecycle status of a meeting."""

    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class EngagementLevel(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# ── Communication ────────────────────────────────────────────────────────────


class Attendee(BaseModel):
    """A meeting attendee as reported by the calendar source."""

    name: str = ""
    address: str = ""


class Communication(BaseModel):
    """Canonical communication record produced by the normalizer.

    The timestamp is always present and timezone-aware (UTC). Meeting-only
    fields stay None for other kinds.
    """

    id: str
    kind: CommunicationKind = CommunicationKind.EMAIL
    sender: str | None = None
    subject: str = ""
    body: str = ""
    timestamp: datetime

    # Meeting-only fields
    meeting_type: MeetingType | None = None
    status: MeetingStatus | None = None
    duration_minutes: int | None = None
    location: str | None = None
    meeting_url: str | None = None
    agenda: str | None = None
    notes: str | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    end_time: datetime | None = None

    @property
    def is_meeting(self) -> bool:
        return self.kind == CommunicationKind.MEETING

    @property
    def text(self) -> str:
        """Subject and body joined, the blob every keyword scan runs over."""
        return f"{self.subject} {self.body}"

    @property
    def full_text(self) -> str:
        """Subject, body, agenda and notes joined."""
        return " ".join(
            part for part in (self.subject, self.body, self.agenda, self.notes) if part
        )


# ── Analysis Result ──────────────────────────────────────────────────────────


class ClientSummary(BaseModel):
    text: str = Field(description="Human-readable summary of the relationship")
    topics: list[str] = Field(default_factory=list)
    sentiment: Sentiment = Sentiment.NEUTRAL
    frequency_per_week: float = Field(
        0.0, ge=0, description="Communications per week, one decimal"
    )


class LastInteraction(BaseModel):
    when: str = Field(description="ISO-8601 timestamp of the latest communication")
    kind: CommunicationKind
    subject: str = ""
    snippet: str = ""


class NextBestAction(BaseModel):
    id: str
    title: str
    rationale: str
    priority: Priority
    due_date: str | None = Field(None, description="Calendar date, yyyy-mm-dd")


class Highlight(BaseModel):
    label: str
    value: str


class MeetingFrequency(BaseModel):
    total_meetings: int = 0
    average_per_month: float = 0.0
    last_meeting_date: str | None = None
    next_scheduled_meeting: str | None = None


class VirtualSplit(BaseModel):
    virtual: int = 0
    in_person: int = 0


class MeetingPatterns(BaseModel):
    preferred_meeting_types: list[MeetingType] = Field(default_factory=list)
    average_duration: int = 0
    virtual_vs_in_person: VirtualSplit = Field(default_factory=VirtualSplit)
    completion_rate: float = Field(0.0, ge=0, le=100)


class MeetingEngagement(BaseModel):
    level: EngagementLevel = EngagementLevel.MEDIUM
    indicators: list[str] = Field(default_factory=list)
    follow_up_actions: list[str] = Field(default_factory=list)


class MeetingTopics(BaseModel):
    frequently_discussed: list[str] = Field(default_factory=list)
    meeting_specific_topics: list[str] = Field(default_factory=list)
    email_topics: list[str] = Field(default_factory=list)
    meeting_topics: list[str] = Field(default_factory=list)


class MeetingInsights(BaseModel):
    """Meeting-derived analytics attached to an AnalysisResult."""

    frequency: MeetingFrequency = Field(default_factory=MeetingFrequency)
    patterns: MeetingPatterns = Field(default_factory=MeetingPatterns)
    engagement: MeetingEngagement = Field(default_factory=MeetingEngagement)
    topics: MeetingTopics = Field(default_factory=MeetingTopics)


class AnalysisResult(BaseModel):
    """Backend-agnostic analysis output."""

    summary: ClientSummary
    last_interaction: LastInteraction | None = None
    recommended_actions: list[NextBestAction] = Field(default_factory=list)
    highlights: list[Highlight] = Field(default_factory=list)
    meeting_insights: MeetingInsights | None = None
    tokens_used: int = 0


# ── Orchestration ────────────────────────────────────────────────────────────


class ProcessingConfig(BaseModel):
    """Resolved configuration for one processing manager.

    Frozen: update_config swaps in a new instance so a call that captured
    the previous one keeps a consistent view.
    """

    model_config = ConfigDict(frozen=True)

    mode: ProcessingMode = ProcessingMode.RULE_BASED
    timeout_ms: int = 15000
    max_retries: int = 2
    fallback_to_rule_based: bool = True
    model: str = "openai/gpt-4o-mini"
    max_tokens: int = 2000
    temperature: float = 0.3


class ProcessingMetrics(BaseModel):
    elapsed_ms: float = Field(ge=0)
    backend: ProcessingMode
    confidence: float = Field(ge=0, le=1)
    tokens_used: int = 0
    attempts: int = 1
    fallback: bool = False
    requested_mode: ProcessingMode


class EnhancedInsights(AnalysisResult):
    """AnalysisResult plus the metrics of the run that produced it."""

    client_id: str
    processing_metrics: ProcessingMetrics
    backend_used: ProcessingMode


class ConfigValidation(BaseModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
