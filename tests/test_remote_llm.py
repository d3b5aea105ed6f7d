"""Remote LLM backend tests.

Uses mocks for actual LLM calls to avoid API costs in tests.
Tests prompt building, response schema validation, mapping onto
AnalysisResult, lazy credential handling, and message drafting.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.advisor_ai.insights.backends.remote_llm import (
    PROMPT_CHAR_BUDGET,
    RemoteLLMBackend,
    build_communications_text,
    build_messages,
    parse_payload,
)
from src.advisor_ai.insights.errors import (
    AnalysisFailedError,
    BackendExecutionError,
    BackendUnavailableError,
)
from src.advisor_ai.insights.schemas import (
    AnalysisResult,
    ClientSummary,
    Communication,
    CommunicationKind,
    MeetingStatus,
    MeetingType,
    Priority,
    ProcessingConfig,
    ProcessingMode,
    Sentiment,
)


# ── Constants ────────────────────────────────────────────────────────────────

NOW = datetime(2024, 6, 14, 12, 0, tzinfo=timezone.utc)

VALID_PAYLOAD = {
    "clientSummary": "Long-standing client focused on retirement.",
    "communicationFrequency": "Monthly",
    "sentiment": {"overall": "Positive", "reasoning": "Appreciative tone", "confidenceScore": 0.85},
    "investmentProfile": {
        "goals": ["retirement"],
        "riskTolerance": "Moderate",
        "timeHorizon": "long",
    },
    "lifeEvents": ["daughter's wedding"],
    "keyTopics": ["portfolio", "retirement"],
    "concerns": ["fees"],
    "nextBestActions": [
        {"action": "Send fee breakdown", "priority": "High", "reasoning": "Asked about fees"},
        {"action": "Plan wedding budget", "priority": "low", "reasoning": "Upcoming event"},
    ],
    "relationshipHealth": {"score": 8, "indicators": ["engaged"]},
}


def _history() -> list[Communication]:
    return [
        Communication(
            id="e2",
            sender="client@example.com",
            subject="Fees",
            body="What are the fees this year?",
            timestamp=NOW - timedelta(days=1),
        ),
        Communication(
            id="m1",
            kind=CommunicationKind.MEETING,
            subject="Annual review",
            timestamp=NOW - timedelta(days=30),
            meeting_type=MeetingType.PORTFOLIO_REVIEW,
            status=MeetingStatus.COMPLETED,
            notes="Discussed allocation",
        ),
    ]


def _mock_service(content: str | None, total_tokens: int = 321) -> MagicMock:
    service = MagicMock()
    service.completion = AsyncMock(
        return_value={
            "content": content,
            "model": "openai/gpt-4o-mini",
            "usage": {"prompt_tokens": 300, "completion_tokens": 21, "total_tokens": total_tokens},
        }
    )
    return service


def _backend(service) -> RemoteLLMBackend:
    return RemoteLLMBackend(
        ProcessingConfig(mode=ProcessingMode.REMOTE_LLM),
        llm_service=service,
        clock=lambda: NOW,
    )


# ── Prompt Building ──────────────────────────────────────────────────────────


class TestPrompt:
    def test_chronological_blocks(self):
        text = build_communications_text(_history())
        assert text.index("MEETING 1") < text.index("EMAIL 2")
        assert "Type: portfolio_review" in text
        assert "Notes: Discussed allocation" in text
        assert "From: client@example.com" in text

    def test_budget(self):
        comms = [
            Communication(id=str(i), body="x" * 500, timestamp=NOW - timedelta(hours=i))
            for i in range(100)
        ]
        assert len(build_communications_text(comms)) == PROMPT_CHAR_BUDGET

    def test_messages(self):
        messages = build_messages(_history())
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "clientSummary" in messages[1]["content"]


# ── Payload Validation ───────────────────────────────────────────────────────


class TestParsePayload:
    def test_valid_payload_is_normalized(self):
        payload = parse_payload(json.dumps(VALID_PAYLOAD))
        assert payload.sentiment.overall == Sentiment.POSITIVE
        assert payload.next_best_actions[0].priority == Priority.HIGH
        assert payload.investment_profile.risk_tolerance.value == "moderate"

    @pytest.mark.parametrize("content", [None, "", "   "])
    def test_empty(self, content):
        with pytest.raises(AnalysisFailedError, match="empty response"):
            parse_payload(content)

    def test_not_json(self):
        with pytest.raises(AnalysisFailedError, match="not valid JSON"):
            parse_payload("Sure! Here is the analysis...")

    def test_not_an_object(self):
        with pytest.raises(AnalysisFailedError, match="not an object"):
            parse_payload("[1, 2, 3]")

    def test_schema_mismatch(self):
        broken = {k: v for k, v in VALID_PAYLOAD.items() if k != "relationshipHealth"}
        with pytest.raises(AnalysisFailedError, match="does not match schema"):
            parse_payload(json.dumps(broken))

    def test_analysis_failure_is_retryable(self):
        with pytest.raises(BackendExecutionError) as exc_info:
            parse_payload("{")
        assert exc_info.value.mode == ProcessingMode.REMOTE_LLM


# ── Backend ──────────────────────────────────────────────────────────────────


class TestRemoteLLMBackend:
    def test_requires_credential_or_service(self):
        with pytest.raises(BackendUnavailableError):
            RemoteLLMBackend(ProcessingConfig(mode=ProcessingMode.REMOTE_LLM))

    @pytest.mark.asyncio
    async def test_analysis_maps_payload(self):
        service = _mock_service(json.dumps(VALID_PAYLOAD))
        result = await _backend(service).analyze(_history())

        assert result.summary.text == "[Remote LLM Analysis] Long-standing client focused on retirement."
        assert result.summary.sentiment == Sentiment.POSITIVE
        assert result.summary.frequency_per_week == 0.25
        assert result.summary.topics == ["portfolio", "retirement"]
        assert result.tokens_used == 321
        assert [a.id for a in result.recommended_actions] == ["llm-action-1", "llm-action-2"]
        assert result.recommended_actions[0].title == "Send fee breakdown"
        assert result.recommended_actions[1].priority == Priority.LOW
        assert len(result.highlights) <= 5
        assert result.highlights[0].label == "Concern"
        assert result.last_interaction.subject == "Fees"
        assert result.meeting_insights.frequency.total_meetings == 1

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        service = _mock_service(json.dumps(VALID_PAYLOAD))
        await _backend(service).analyze(_history())

        kwargs = service.completion.call_args.kwargs
        assert kwargs["max_tokens"] == 1500
        assert kwargs["temperature"] == 0.3
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["metadata"] == {"purpose": "client_analysis"}

    @pytest.mark.asyncio
    async def test_malformed_response_raises(self):
        with pytest.raises(AnalysisFailedError):
            await _backend(_mock_service("not json")).analyze(_history())

    @pytest.mark.asyncio
    async def test_async_credential_provider_builds_service_once(self):
        provider = AsyncMock(return_value="sk-test")
        with patch("src.advisor_ai.insights.backends.remote_llm.LLMService") as MockService:
            MockService.return_value = _mock_service(json.dumps(VALID_PAYLOAD))
            backend = RemoteLLMBackend(
                ProcessingConfig(mode=ProcessingMode.REMOTE_LLM, model="openai/gpt-4o"),
                credential_provider=provider,
                clock=lambda: NOW,
            )
            await backend.analyze(_history())
            await backend.analyze(_history())

        MockService.assert_called_once()
        assert MockService.call_args.kwargs["api_key"] == "sk-test"
        assert MockService.call_args.kwargs["model"] == "openai/gpt-4o"
        provider.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_credential(self):
        backend = RemoteLLMBackend(
            ProcessingConfig(mode=ProcessingMode.REMOTE_LLM),
            credential_provider=lambda: "",
        )
        with pytest.raises(BackendUnavailableError):
            await backend.analyze(_history())


# ── Drafting ─────────────────────────────────────────────────────────────────


class TestDrafting:
    @pytest.mark.asyncio
    async def test_draft_message(self):
        service = _mock_service(json.dumps(VALID_PAYLOAD))
        backend = _backend(service)
        result = await backend.analyze(_history())

        service.completion = AsyncMock(return_value={"content": "Dear client, ...", "usage": {}})
        message = await backend.draft_message(result, "check-in")

        assert message == "Dear client, ..."
        system = service.completion.call_args.kwargs["messages"][0]["content"]
        assert "friendly check-in message" in system

    @pytest.mark.asyncio
    async def test_unknown_message_type(self):
        backend = _backend(_mock_service("{}"))
        result = AnalysisResult(summary=ClientSummary(text="Client summary"))
        with pytest.raises(ValueError, match="Unknown message type"):
            await backend.draft_message(result, "birthday")

    @pytest.mark.asyncio
    async def test_draft_failure_returns_fallback_text(self):
        service = _mock_service(json.dumps(VALID_PAYLOAD))
        backend = _backend(service)
        result = await backend.analyze(_history())

        service.completion = AsyncMock(side_effect=RuntimeError("rate limited"))
        assert await backend.draft_message(result, "urgent") == (
            "Unable to generate personalized message at this time."
        )
        assert await backend.executive_summary(result) == "Summary generation failed."

    @pytest.mark.asyncio
    async def test_executive_summary(self):
        service = _mock_service(json.dumps(VALID_PAYLOAD))
        backend = _backend(service)
        result = await backend.analyze(_history())

        service.completion = AsyncMock(return_value={"content": "Key points: fees.", "usage": {}})
        assert await backend.executive_summary(result) == "Key points: fees."
