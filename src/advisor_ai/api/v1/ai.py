"""REST endpoints for client communication analysis and processing mode control.

Thin layer over the services held on app.state: client analysis, remote LLM
executive summaries and message drafts, per-message text analysis and
insights, mode listing and switching, re-initialization and a configuration
health report.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from src.advisor_ai.api.deps import get_processing_manager, get_text_analyzer
from src.advisor_ai.insights.errors import (
    BackendUnavailableError,
    InputValidationError,
    ProcessingFailedError,
)
from src.advisor_ai.insights.manager import ProcessingManager
from src.advisor_ai.insights.normalizer import normalize
from src.advisor_ai.insights.schemas import EnhancedInsights, ProcessingMode
from src.advisor_ai.insights.text_analysis import (
    CommunicationInsight,
    TextAnalysis,
    TextAnalyzer,
)
from src.advisor_ai.insights.validator import parse_mode

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/ai", tags=["ai"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class AnalyzeRequest(BaseModel):
    """Request body for an analysis run."""

    client_id: str = Field(..., description="Client identifier, usually the email address")
    communications: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Upstream communication records in any supported shape",
    )


class AnalyzeResponse(BaseModel):
    success: bool = True
    insights: EnhancedInsights


class ModeRequest(BaseModel):
    mode: str | None = Field(None, description="rule_based, local_nlp or remote_llm")


class ModeResponse(BaseModel):
    success: bool = True
    mode: ProcessingMode


class ModesResponse(BaseModel):
    success: bool = True
    modes: list[ProcessingMode]


class DraftRequest(AnalyzeRequest):
    message_type: str = Field(
        "follow-up",
        description="follow-up, check-in, proactive or urgent",
    )


class SummaryResponse(BaseModel):
    success: bool = True
    summary: str


class DraftResponse(BaseModel):
    success: bool = True
    message_type: str
    message: str


class TextAnalysisRequest(BaseModel):
    text: str = Field("", description="A single email body, event description or note")


class TextAnalysisResponse(BaseModel):
    success: bool = True
    analysis: TextAnalysis


class InsightsRequest(BaseModel):
    communications: list[dict[str, Any]] = Field(default_factory=list)


class InsightsResponse(BaseModel):
    success: bool = True
    insights: list[CommunicationInsight]


def _parse_requested_mode(value: str | None) -> ProcessingMode | None:
    if value is None:
        return None
    mode = parse_mode(value)
    if mode is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown mode '{value}'",
        )
    return mode


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze(
    body: AnalyzeRequest,
    manager: ProcessingManager = Depends(get_processing_manager),
) -> AnalyzeResponse:
    """Analyze a client's communications with the current processing mode."""
    try:
        insights = await manager.process_client_communications(body.client_id, body.communications)
    except InputValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except ProcessingFailedError as exc:
        logger.error("api.analysis_failed", client_id=body.client_id, error=str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"AI analysis failed: {exc}",
        ) from exc
    return AnalyzeResponse(insights=insights)


def _drafting_http_error(exc: Exception, client_id: str) -> HTTPException:
    if isinstance(exc, InputValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, BackendUnavailableError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    logger.error("api.drafting_failed", client_id=client_id, error=str(exc))
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"AI analysis failed: {exc}",
    )


@router.post("/executive-summary", response_model=SummaryResponse)
async def executive_summary(
    body: AnalyzeRequest,
    manager: ProcessingManager = Depends(get_processing_manager),
) -> SummaryResponse:
    """Analyze, then have the remote LLM write an executive summary."""
    try:
        summary = await manager.executive_summary(body.client_id, body.communications)
    except (InputValidationError, BackendUnavailableError, ProcessingFailedError) as exc:
        raise _drafting_http_error(exc, body.client_id) from exc
    return SummaryResponse(summary=summary)


@router.post("/draft-message", response_model=DraftResponse)
async def draft_message(
    body: DraftRequest,
    manager: ProcessingManager = Depends(get_processing_manager),
) -> DraftResponse:
    """Analyze, then have the remote LLM draft a client message."""
    try:
        message = await manager.draft_message(
            body.client_id, body.communications, body.message_type
        )
    except (InputValidationError, BackendUnavailableError, ProcessingFailedError) as exc:
        raise _drafting_http_error(exc, body.client_id) from exc
    return DraftResponse(message_type=body.message_type, message=message)


@router.post("/text-analysis", response_model=TextAnalysisResponse)
async def text_analysis(
    body: TextAnalysisRequest,
    analyzer: TextAnalyzer = Depends(get_text_analyzer),
) -> TextAnalysisResponse:
    """Sentiment, entities, topics, keywords and readability of one text."""
    return TextAnalysisResponse(analysis=analyzer.analyze(body.text))


@router.post("/insights", response_model=InsightsResponse)
async def communication_insights(
    body: InsightsRequest,
    analyzer: TextAnalyzer = Depends(get_text_analyzer),
) -> InsightsResponse:
    """Per-message alerts, tasks and reminders, most pressing first."""
    return InsightsResponse(insights=analyzer.generate_insights(normalize(body.communications)))


@router.get("/modes", response_model=ModesResponse)
async def list_modes(
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ModesResponse:
    """Modes that can currently be selected."""
    return ModesResponse(modes=manager.available_modes())


@router.get("/mode", response_model=ModeResponse)
async def get_mode(
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ModeResponse:
    return ModeResponse(mode=manager.current_mode())


@router.post("/mode", response_model=ModeResponse)
async def switch_mode(
    body: ModeRequest,
    manager: ProcessingManager = Depends(get_processing_manager),
) -> ModeResponse:
    """Switch mode; an unavailable mode resolves to the best available one."""
    mode = _parse_requested_mode(body.mode)
    if mode is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="mode is required")
    config = manager.update_config(mode=mode)
    return ModeResponse(mode=config.mode)


@router.post("/initialize", response_model=ModeResponse)
async def initialize(body: ModeRequest, request: Request) -> ModeResponse:
    """Replace the application's ProcessingManager, optionally with a new mode."""
    mode = _parse_requested_mode(body.mode)
    settings = getattr(request.app.state, "settings", None)
    manager = ProcessingManager(config={"mode": mode} if mode else None, settings=settings)
    request.app.state.processing_manager = manager
    logger.info("api.processing_manager_initialized", mode=manager.current_mode().value)
    return ModeResponse(mode=manager.current_mode())


@router.get("/health")
async def health(
    manager: ProcessingManager = Depends(get_processing_manager),
) -> dict[str, Any]:
    """Configuration health report with recommendations."""
    report = manager.validator.health_check()
    report["current_mode"] = manager.current_mode().value
    return report
