"""Remote LLM analysis backend.

Builds a chronological, size-capped transcript of the client's
communications, asks the model for a fixed JSON document, validates it with
pydantic and maps it onto AnalysisResult. Last interaction and meeting
analytics are computed locally from the same communications so they never
depend on the model.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.advisor_ai.insights import heuristics
from src.advisor_ai.insights.backends.base import Clock, utc_now
from src.advisor_ai.insights.errors import AnalysisFailedError, BackendUnavailableError
from src.advisor_ai.insights.meetings.analytics import meeting_insights
from src.advisor_ai.insights.profile import (
    FREQUENCY_PER_WEEK,
    FrequencyBucket,
    RiskTolerance,
    TimeHorizon,
)
from src.advisor_ai.insights.schemas import (
    AnalysisResult,
    ClientSummary,
    Communication,
    Highlight,
    NextBestAction,
    Priority,
    ProcessingConfig,
    ProcessingMode,
    Sentiment,
)
from src.advisor_ai.services.llm import LLMService

logger = structlog.get_logger(__name__)

CredentialProvider = Callable[[], str | Awaitable[str]]

SUMMARY_PREFIX = "[Remote LLM Analysis]"
PROMPT_CHAR_BUDGET = 8000
ANALYSIS_MAX_TOKENS = 1500
ANALYSIS_TEMPERATURE = 0.3
MAX_HIGHLIGHTS = 5

SYSTEM_PROMPT = """You are an AI assistant for financial advisors. Analyze client communications \
including emails, meetings, and other interactions to provide actionable insights for \
relationship management and business development.

Focus on:
- Investment goals and risk tolerance
- Life events that impact financial planning
- Communication patterns and client sentiment
- Meeting frequency, types, engagement levels and follow-up needs
- Opportunities for deeper engagement
- Potential concerns or red flags

Be concise, professional, and action-oriented. Respond with JSON only."""

RESPONSE_SCHEMA = """{
  "clientSummary": "2-3 sentence overview of client relationship and current situation",
  "communicationFrequency": "weekly|monthly|quarterly|irregular",
  "sentiment": {
    "overall": "positive|neutral|negative",
    "reasoning": "brief explanation",
    "confidenceScore": 0.85
  },
  "investmentProfile": {
    "goals": ["retirement", "college fund"],
    "riskTolerance": "conservative|moderate|aggressive|unknown",
    "timeHorizon": "short|medium|long|unknown"
  },
  "lifeEvents": ["mentioned life events or milestones"],
  "keyTopics": ["main discussion topics"],
  "concerns": ["any concerns or issues raised"],
  "nextBestActions": [
    {"action": "specific action to take", "priority": "high|medium|low", "reasoning": "why"}
  ],
  "relationshipHealth": {"score": 8, "indicators": ["relationship indicators"]}
}"""

MESSAGE_PURPOSES: dict[str, str] = {
    "follow-up": "a professional follow-up message addressing recent communications",
    "check-in": "a friendly check-in message to maintain the relationship",
    "proactive": "a proactive outreach message with valuable insights or market updates",
    "urgent": "an urgent but professional message addressing the client's concerns",
}


# ── Response Payload ─────────────────────────────────────────────────────────


def _lowercase(value: Any) -> Any:
    return value.strip().lower() if isinstance(value, str) else value


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class LLMSentiment(_Payload):
    overall: Sentiment
    reasoning: str = ""
    confidence_score: float = Field(0.0, ge=0, le=1, alias="confidenceScore")

    @field_validator("overall", mode="before")
    @classmethod
    def normalize_overall(cls, value: Any) -> Any:
        return _lowercase(value)


class LLMInvestmentProfile(_Payload):
    goals: list[str] = Field(default_factory=list)
    risk_tolerance: RiskTolerance = Field(RiskTolerance.UNKNOWN, alias="riskTolerance")
    time_horizon: TimeHorizon = Field(TimeHorizon.UNKNOWN, alias="timeHorizon")

    @field_validator("risk_tolerance", "time_horizon", mode="before")
    @classmethod
    def normalize_enums(cls, value: Any) -> Any:
        return _lowercase(value)


class LLMAction(_Payload):
    action: str
    priority: Priority = Priority.MEDIUM
    reasoning: str = ""

    @field_validator("priority", mode="before")
    @classmethod
    def normalize_priority(cls, value: Any) -> Any:
        return _lowercase(value)


class LLMRelationshipHealth(_Payload):
    score: float = Field(ge=0, le=10)
    indicators: list[str] = Field(default_factory=list)


class LLMAnalysisPayload(_Payload):
    """The JSON document the model is instructed to return."""

    client_summary: str = Field(alias="clientSummary", min_length=1)
    communication_frequency: FrequencyBucket = Field(alias="communicationFrequency")
    sentiment: LLMSentiment
    investment_profile: LLMInvestmentProfile = Field(
        default_factory=LLMInvestmentProfile, alias="investmentProfile"
    )
    life_events: list[str] = Field(default_factory=list, alias="lifeEvents")
    key_topics: list[str] = Field(default_factory=list, alias="keyTopics")
    concerns: list[str] = Field(default_factory=list)
    next_best_actions: list[LLMAction] = Field(default_factory=list, alias="nextBestActions")
    relationship_health: LLMRelationshipHealth = Field(alias="relationshipHealth")

    @field_validator("communication_frequency", mode="before")
    @classmethod
    def normalize_frequency(cls, value: Any) -> Any:
        return _lowercase(value)


# ── Prompt Building ──────────────────────────────────────────────────────────


def _format_communication(index: int, communication: Communication) -> str:
    date = communication.timestamp.date().isoformat()
    if communication.is_meeting:
        attendees = ", ".join(a.name or a.address for a in communication.attendees) or "Unknown attendees"
        meeting_type = communication.meeting_type.value if communication.meeting_type else "meeting"
        status = communication.status.value if communication.status else "unknown"
        return (
            f"MEETING {index} ({date}):\n"
            f"Type: {meeting_type}\n"
            f"Subject: {communication.subject or 'No subject'}\n"
            f"Status: {status}\n"
            f"Attendees: {attendees}\n"
            f"Location: {communication.location or communication.meeting_url or 'Location TBD'}\n"
            f"Description: {communication.body or communication.agenda or 'No content'}\n"
            f"Notes: {communication.notes or 'No notes'}\n"
            "---"
        )
    return (
        f"{communication.kind.value.upper()} {index} ({date}):\n"
        f"From: {communication.sender or 'Unknown sender'}\n"
        f"Subject: {communication.subject or 'No subject'}\n"
        f"Content: {communication.body or 'No content'}\n"
        "---"
    )


def build_communications_text(
    communications: Sequence[Communication],
    budget: int = PROMPT_CHAR_BUDGET,
) -> str:
    """Chronological transcript of the batch, truncated to ``budget`` characters."""
    ordered = sorted(communications, key=lambda c: c.timestamp)
    blocks = [_format_communication(i, c) for i, c in enumerate(ordered, start=1)]
    return "\n\n".join(blocks)[:budget]


def build_messages(communications: Sequence[Communication]) -> list[dict[str, str]]:
    user_prompt = (
        "Analyze these client communications and provide structured insights.\n\n"
        f"COMMUNICATIONS:\n{build_communications_text(communications)}\n\n"
        f"Respond with a JSON object with exactly these fields:\n{RESPONSE_SCHEMA}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def parse_payload(content: str | None) -> LLMAnalysisPayload:
    """Validate the model's reply.

    Raises:
        AnalysisFailedError: If the reply is empty, not JSON, or does not
            match the expected schema.
    """
    if not content or not content.strip():
        raise AnalysisFailedError("empty response from model")
    try:
        data = json.loads(content)
    except json.JSONDecodeError as exc:
        raise AnalysisFailedError(f"response is not valid JSON ({exc.msg})", exc) from exc
    if not isinstance(data, dict):
        raise AnalysisFailedError("response JSON is not an object")
    try:
        return LLMAnalysisPayload.model_validate(data)
    except ValidationError as exc:
        raise AnalysisFailedError(
            f"response does not match schema ({exc.error_count()} error(s))", exc
        ) from exc


def _highlights(payload: LLMAnalysisPayload) -> list[Highlight]:
    items: list[Highlight] = [Highlight(label="Concern", value=c) for c in payload.concerns]
    items.extend(Highlight(label="Life Event", value=e) for e in payload.life_events)
    items.append(
        Highlight(
            label="Relationship Health",
            value=f"{payload.relationship_health.score:g}/10",
        )
    )
    profile = payload.investment_profile
    if profile.risk_tolerance != RiskTolerance.UNKNOWN:
        items.append(Highlight(label="Risk Tolerance", value=profile.risk_tolerance.value.capitalize()))
    if profile.goals:
        items.append(Highlight(label="Investment Goal", value=", ".join(profile.goals)))
    return items[:MAX_HIGHLIGHTS]


# ── Backend ──────────────────────────────────────────────────────────────────


class RemoteLLMBackend:
    """LLM-backed analysis.

    The credential is fetched lazily on the first call and the LLMService is
    built once from it.

    Args:
        config: Supplies model, max tokens and temperature.
        credential_provider: Returns the provider API key, synchronously or
            as an awaitable. Required unless ``llm_service`` is given.
        llm_service: Pre-built service (tests inject a mock here).
        clock: Returns the current UTC time; injectable for tests.

    Raises:
        BackendUnavailableError: If neither a credential provider nor a
            service is supplied.
    """

    mode = ProcessingMode.REMOTE_LLM
    confidence = 0.9

    def __init__(
        self,
        config: ProcessingConfig,
        credential_provider: CredentialProvider | None = None,
        llm_service: Any | None = None,
        clock: Clock | None = None,
    ) -> None:
        if credential_provider is None and llm_service is None:
            raise BackendUnavailableError(self.mode, "no credential configured")
        self._config = config
        self._credential_provider = credential_provider
        self._llm_service = llm_service
        self._clock = clock or utc_now

    async def _service(self) -> Any:
        if self._llm_service is None:
            credential = self._credential_provider()
            if inspect.isawaitable(credential):
                credential = await credential
            if not credential:
                raise BackendUnavailableError(self.mode, "credential provider returned no key")
            self._llm_service = LLMService(
                api_key=credential,
                model=self._config.model,
                timeout=self._config.timeout_ms / 1000,
            )
        return self._llm_service

    async def analyze(self, communications: Sequence[Communication]) -> AnalysisResult:
        service = await self._service()
        response = await service.completion(
            messages=build_messages(communications),
            max_tokens=min(ANALYSIS_MAX_TOKENS, self._config.max_tokens),
            temperature=ANALYSIS_TEMPERATURE,
            response_format={"type": "json_object"},
            metadata={"purpose": "client_analysis"},
        )
        payload = parse_payload(response.get("content"))
        tokens = int((response.get("usage") or {}).get("total_tokens", 0) or 0)

        logger.info(
            "remote_llm.analyzed",
            model=response.get("model", self._config.model),
            communications=len(communications),
            tokens_used=tokens,
        )

        now = self._clock()
        actions = [
            NextBestAction(
                id=f"llm-action-{index}",
                title=action.action,
                rationale=action.reasoning,
                priority=action.priority,
            )
            for index, action in enumerate(payload.next_best_actions, start=1)
        ]
        return AnalysisResult(
            summary=ClientSummary(
                text=f"{SUMMARY_PREFIX} {payload.client_summary}",
                topics=payload.key_topics,
                sentiment=payload.sentiment.overall,
                frequency_per_week=FREQUENCY_PER_WEEK[payload.communication_frequency],
            ),
            last_interaction=heuristics.last_interaction(communications),
            recommended_actions=actions,
            highlights=_highlights(payload),
            meeting_insights=meeting_insights(communications, now),
            tokens_used=tokens,
        )

    # ── Drafting ─────────────────────────────────────────────────────────

    @staticmethod
    def _context(result: AnalysisResult) -> str:
        lines = [
            f"Client Summary: {result.summary.text}",
            f"Sentiment: {result.summary.sentiment.value}",
            f"Key Topics: {', '.join(result.summary.topics) or 'none'}",
        ]
        lines.extend(f"{h.label}: {h.value}" for h in result.highlights)
        if result.recommended_actions:
            lines.append(
                "Next Actions: " + ", ".join(a.title for a in result.recommended_actions)
            )
        return "\n".join(lines)

    async def executive_summary(self, result: AnalysisResult) -> str:
        """Short executive summary of an analysis, written by the model."""
        service = await self._service()
        try:
            response = await service.completion(
                messages=[
                    {
                        "role": "system",
                        "content": (
                            "You are a financial advisor assistant. Create a concise, professional "
                            "executive summary of client analysis that highlights key points and "
                            "actionable items."
                        ),
                    },
                    {
                        "role": "user",
                        "content": (
                            "Please create an executive summary of this client analysis:\n\n"
                            f"{self._context(result)}"
                        ),
                    },
                ],
                max_tokens=500,
                temperature=0.7,
            )
        except Exception:
            logger.warning("remote_llm.executive_summary_failed", exc_info=True)
            return "Summary generation failed."
        return response.get("content") or "Summary unavailable."

    async def draft_message(self, result: AnalysisResult, message_type: str) -> str:
        """Draft a client message of ``message_type`` (see MESSAGE_PURPOSES).

        Raises:
            ValueError: If ``message_type`` is unknown.
        """
        purpose = MESSAGE_PURPOSES.get(message_type)
        if purpose is None:
            raise ValueError(
                f"Unknown message type '{message_type}'. "
                f"Expected one of: {', '.join(MESSAGE_PURPOSES)}"
            )
        service = await self._service()
        try:
            response = await service.completion(
                messages=[
                    {
                        "role": "system",
                        "content": (
                            f"You are a professional financial advisor writing {purpose}. "
                            "Be warm, professional, and personalized. Keep it to 2-3 short "
                            "paragraphs and reference specific topics or concerns when appropriate."
                        ),
                    },
                    {
                        "role": "user",
                        "content": f"Based on this client analysis, draft {purpose}:\n\n{self._context(result)}",
                    },
                ],
                max_tokens=300,
                temperature=0.8,
            )
        except Exception:
            logger.warning("remote_llm.draft_message_failed", message_type=message_type, exc_info=True)
            return "Unable to generate personalized message at this time."
        return response.get("content") or "Message generation failed."
