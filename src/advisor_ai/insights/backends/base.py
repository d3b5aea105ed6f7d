"""Contract shared by every analysis backend."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timezone
from typing import Protocol

from src.advisor_ai.insights.schemas import AnalysisResult, Communication, ProcessingMode

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AnalysisBackend(Protocol):
    """Turns a batch of normalized communications into an AnalysisResult.

    Rule-based and local NLP backends return the result directly; the remote
    LLM backend returns an awaitable. Callers must accept either.
    """

    mode: ProcessingMode
    confidence: float

    def analyze(
        self, communications: Sequence[Communication]
    ) -> AnalysisResult | Awaitable[AnalysisResult]: ...
