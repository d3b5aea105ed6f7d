"""Offline NLP analysis: shared heuristics enriched with entities and a client profile.

Adds spaCy entity extraction, TextBlob polarity for tone, an investment
profile, life events, concerns and a relationship health score on top of the
rule-based heuristics. Everything runs in-process; no network access.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

import structlog
from textblob import TextBlob

from src.advisor_ai.config import Settings
from src.advisor_ai.insights import heuristics, profile
from src.advisor_ai.insights.backends.base import Clock, utc_now
from src.advisor_ai.insights.entities import Entities, EntityExtractor, load_pipeline
from src.advisor_ai.insights.errors import BackendUnavailableError
from src.advisor_ai.insights.meetings.analytics import meeting_insights
from src.advisor_ai.insights.schemas import (
    AnalysisResult,
    Communication,
    Highlight,
    ProcessingMode,
)

logger = structlog.get_logger(__name__)

SUMMARY_PREFIX = "[Local NLP Analysis]"

# Polarity beyond which the tone highlight reads positive/negative
TONE_THRESHOLD = 0.15


def polarity(text: str) -> float:
    """TextBlob polarity in -1..1; 0.0 for empty text."""
    if not text.strip():
        return 0.0
    return float(TextBlob(text).sentiment.polarity)


def describe_tone(value: float) -> str:
    if value > TONE_THRESHOLD:
        return "Warm, positive tone"
    if value < -TONE_THRESHOLD:
        return "Strained or negative tone"
    return "Neutral, professional tone"


class LocalNLPBackend:
    """Heuristic NLP backend.

    Args:
        settings: Checked for NLP_ENABLED and the spaCy model name.
        clock: Returns the current UTC time; injectable for tests.
        entity_extractor: Prebuilt extractor; defaults to one over the
            configured spaCy model, loaded here rather than on first use.

    Raises:
        BackendUnavailableError: If local NLP is disabled in settings.
    """

    mode = ProcessingMode.LOCAL_NLP
    confidence = 0.8

    def __init__(
        self,
        settings: Settings | None = None,
        clock: Clock | None = None,
        entity_extractor: EntityExtractor | None = None,
    ) -> None:
        if settings is not None and not settings.NLP_ENABLED:
            raise BackendUnavailableError(self.mode, "NLP_ENABLED is false")
        self._clock = clock or utc_now
        if entity_extractor is None:
            model = settings.NLP_SPACY_MODEL if settings is not None else None
            entity_extractor = EntityExtractor(load_pipeline(model) if model else None)
        self._entities = entity_extractor

    def analyze(self, communications: Sequence[Communication]) -> AnalysisResult:
        now = self._clock()
        text = heuristics.combined_text(communications)

        entities = self._entities.extract(text)
        tone = polarity(text)
        investment = profile.investment_profile(text)
        events = profile.life_events(text)
        client_concerns = profile.concerns(communications)
        health = profile.relationship_health(
            profile.frequency_bucket(communications),
            tone,
            len(client_concerns),
            len(communications),
        )

        summary = heuristics.build_summary(communications, prefix=SUMMARY_PREFIX)
        details: list[str] = []
        if investment.goals:
            details.append(f"Goals mentioned: {', '.join(investment.goals)}.")
        if investment.risk_tolerance != profile.RiskTolerance.UNKNOWN:
            details.append(f"Risk tolerance appears {investment.risk_tolerance.value}.")
        if events:
            details.append(f"Life events: {', '.join(events)}.")
        if client_concerns:
            details.append(f"{len(client_concerns)} open concern(s).")
        if entities.people:
            details.append(f"People mentioned: {', '.join(entities.people[:3])}.")
        details.append(f"Relationship health {health.score}/10.")
        summary.text = " ".join([summary.text, *details])

        logger.debug(
            "local_nlp.analyzed",
            communications=len(communications),
            polarity=round(tone, 3),
            entities=sum(len(v) for v in entities.model_dump().values()),
        )

        return AnalysisResult(
            summary=summary,
            last_interaction=heuristics.last_interaction(communications),
            recommended_actions=heuristics.next_best_actions(communications, now),
            highlights=self._highlights(communications, now, entities, tone, health, client_concerns, investment),
            meeting_insights=meeting_insights(communications, now),
        )

    @staticmethod
    def _highlights(
        communications: Sequence[Communication],
        now: datetime,
        entities: Entities,
        tone: float,
        health: profile.RelationshipHealth,
        client_concerns: list[str],
        investment: profile.InvestmentProfile,
    ) -> list[Highlight]:
        shared = [
            h
            for h in heuristics.highlights(communications, now)
            if h.value != "No explicit preferences detected"
        ]
        extra: list[Highlight] = [
            Highlight(label="Relationship Health", value=f"{health.score}/10"),
            Highlight(label="Tone", value=describe_tone(tone)),
        ]
        if investment.time_horizon != profile.TimeHorizon.UNKNOWN:
            extra.append(
                Highlight(label="Time Horizon", value=investment.time_horizon.value.capitalize())
            )
        if client_concerns:
            extra.append(Highlight(label="Concern", value=client_concerns[0]))
        if entities.people:
            extra.append(Highlight(label="People Mentioned", value=", ".join(entities.people[:5])))
        if entities.organizations:
            extra.append(
                Highlight(label="Organizations", value=", ".join(entities.organizations[:5]))
            )
        if entities.money:
            extra.append(Highlight(label="Amounts Discussed", value=", ".join(entities.money[:5])))
        if entities.dates:
            extra.append(Highlight(label="Dates Referenced", value=", ".join(entities.dates[:5])))
        return shared + extra
