"""Unit tests for the in-process analysis backends (rule-based, local NLP)."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.advisor_ai.config import Settings
from src.advisor_ai.insights.backends.local_nlp import (
    LocalNLPBackend,
    describe_tone,
    polarity,
)
from src.advisor_ai.insights.backends.rule_based import RuleBasedBackend
from src.advisor_ai.insights.errors import BackendUnavailableError
from src.advisor_ai.insights.schemas import (
    AnalysisResult,
    Communication,
    CommunicationKind,
    MeetingStatus,
    MeetingType,
    ProcessingMode,
)


# ── Constants ────────────────────────────────────────────────────────────────

NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)


def _history() -> list[Communication]:
    return [
        Communication(
            id="e1",
            sender="jane@example.com",
            subject="Portfolio question",
            body=(
                "Thanks for the great update. I met Jane Doe at Vanguard and we talked "
                "about moving $50,000 for retirement next month."
            ),
            timestamp=NOW - timedelta(days=3),
        ),
        Communication(
            id="m1",
            kind=CommunicationKind.MEETING,
            subject="Annual review",
            timestamp=NOW - timedelta(days=20),
            meeting_type=MeetingType.PORTFOLIO_REVIEW,
            status=MeetingStatus.COMPLETED,
            duration_minutes=60,
        ),
    ]


# ── Rule-Based ───────────────────────────────────────────────────────────────


class TestRuleBasedBackend:
    def test_identity(self):
        backend = RuleBasedBackend()
        assert backend.mode == ProcessingMode.RULE_BASED
        assert backend.confidence == 0.5

    def test_analysis(self):
        result = RuleBasedBackend(clock=lambda: NOW).analyze(_history())
        assert isinstance(result, AnalysisResult)
        assert result.summary.text.startswith("[Rule-Based Analysis] Client communications discuss")
        assert result.summary.topics[0] == "portfolio"
        assert result.last_interaction.subject == "Portfolio question"
        assert result.meeting_insights is not None
        assert result.meeting_insights.frequency.total_meetings == 1
        assert result.tokens_used == 0
        assert "nba-portfolio-summary" in [a.id for a in result.recommended_actions]

    def test_custom_prefix(self):
        result = RuleBasedBackend(clock=lambda: NOW).analyze(_history(), summary_prefix="[X]")
        assert result.summary.text.startswith("[X] ")

    def test_deterministic(self):
        backend = RuleBasedBackend(clock=lambda: NOW)
        assert backend.analyze(_history()) == backend.analyze(_history())


# ── Local NLP ────────────────────────────────────────────────────────────────


class TestLocalNLPBackend:
    def test_disabled_in_settings(self):
        settings = Settings(_env_file=None, NLP_ENABLED=False)
        with pytest.raises(BackendUnavailableError):
            LocalNLPBackend(settings=settings)

    def test_identity(self, settings, entity_extractor):
        backend = LocalNLPBackend(settings=settings, entity_extractor=entity_extractor)
        assert backend.mode == ProcessingMode.LOCAL_NLP
        assert backend.confidence == 0.8

    def test_analysis_enriches_highlights(self, settings, entity_extractor):
        backend = LocalNLPBackend(settings=settings, clock=lambda: NOW, entity_extractor=entity_extractor)
        result = backend.analyze(_history())
        assert result.summary.text.startswith("[Local NLP Analysis] ")
        assert "Goals mentioned: retirement." in result.summary.text
        values = {h.label: h.value for h in result.highlights}
        assert values["Relationship Health"].endswith("/10")
        assert "Tone" in values
        assert values["Time Horizon"] == "Long"
        assert values["People Mentioned"] == "Jane Doe"
        assert values["Organizations"] == "Vanguard"
        assert values["Amounts Discussed"] == "$50,000"
        assert values["Dates Referenced"] == "next month"
        assert "No explicit preferences detected" not in values.values()

    def test_same_actions_as_rule_based(self, settings, entity_extractor):
        backend = LocalNLPBackend(settings=settings, clock=lambda: NOW, entity_extractor=entity_extractor)
        nlp = backend.analyze(_history())
        rules = RuleBasedBackend(clock=lambda: NOW).analyze(_history())
        assert nlp.recommended_actions == rules.recommended_actions
        assert nlp.meeting_insights == rules.meeting_insights


class TestTone:
    def test_empty_text_is_neutral(self):
        assert polarity("") == 0.0
        assert polarity("   ") == 0.0

    def test_positive_text(self):
        assert polarity("This is a wonderful, excellent result") > 0

    def test_describe_tone(self):
        assert describe_tone(0.5) == "Warm, positive tone"
        assert describe_tone(-0.5) == "Strained or negative tone"
        assert describe_tone(0.0) == "Neutral, professional tone"
