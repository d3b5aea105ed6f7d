"""Deterministic keyword analysis with no I/O."""

from __future__ import annotations

from collections.abc import Sequence

from src.advisor_ai.insights import heuristics
from src.advisor_ai.insights.backends.base import Clock, utc_now
from src.advisor_ai.insights.meetings.analytics import meeting_insights
from src.advisor_ai.insights.schemas import AnalysisResult, Communication, ProcessingMode

SUMMARY_PREFIX = "[Rule-Based Analysis]"


class RuleBasedBackend:
    """Shared heuristics only; always available and the fallback of last resort."""

    mode = ProcessingMode.RULE_BASED
    confidence = 0.5

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or utc_now

    def analyze(
        self,
        communications: Sequence[Communication],
        summary_prefix: str = SUMMARY_PREFIX,
    ) -> AnalysisResult:
        now = self._clock()
        return AnalysisResult(
            summary=heuristics.build_summary(communications, prefix=summary_prefix),
            last_interaction=heuristics.last_interaction(communications),
            recommended_actions=heuristics.next_best_actions(communications, now),
            highlights=heuristics.highlights(communications, now),
            meeting_insights=meeting_insights(communications, now),
        )
