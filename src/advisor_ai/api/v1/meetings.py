"""REST endpoints for meeting planning and single-meeting analysis.

Records arrive in any upstream shape and are normalized before the
MeetingPlanner on app.state sees them. All endpoints are stateless.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from src.advisor_ai.api.deps import get_meeting_planner
from src.advisor_ai.insights.meetings.planner import MeetingPlanner
from src.advisor_ai.insights.meetings.schemas import (
    FollowUpSuggestion,
    MeetingAnalysis,
    MeetingRecommendations,
    MeetingSeries,
    MeetingTemplate,
    RelationshipImpact,
)
from src.advisor_ai.insights.normalizer import normalize, normalize_one

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/v1/ai/meetings", tags=["meetings"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class CommunicationsRequest(BaseModel):
    communications: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Upstream communication records; non-meetings are ignored",
    )


class SeriesRequest(CommunicationsRequest):
    client_id: str = Field(..., min_length=1)


class MeetingAnalysisRequest(BaseModel):
    meeting: dict[str, Any] = Field(..., description="A single upstream meeting record")
    client_name: str = "Client"


class RecommendationsResponse(BaseModel):
    success: bool = True
    recommendations: MeetingRecommendations


class SeriesResponse(BaseModel):
    success: bool = True
    series: list[MeetingSeries]


class TemplatesResponse(BaseModel):
    success: bool = True
    templates: list[MeetingTemplate]


class MeetingAnalysisResponse(BaseModel):
    """Analysis of one meeting plus the follow-ups and impact derived from it."""

    success: bool = True
    analysis: MeetingAnalysis
    follow_ups: list[FollowUpSuggestion] = Field(default_factory=list)
    relationship_impact: RelationshipImpact


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.post("/recommendations", response_model=RecommendationsResponse)
async def recommendations(
    body: CommunicationsRequest,
    planner: MeetingPlanner = Depends(get_meeting_planner),
) -> RecommendationsResponse:
    """Suggested cadence, meeting types and next meeting date."""
    return RecommendationsResponse(recommendations=planner.recommend(normalize(body.communications)))


@router.post("/series", response_model=SeriesResponse)
async def series(
    body: SeriesRequest,
    planner: MeetingPlanner = Depends(get_meeting_planner),
) -> SeriesResponse:
    """Recurring meeting series grouped by meeting type."""
    return SeriesResponse(series=planner.series(body.client_id, normalize(body.communications)))


@router.post("/templates", response_model=TemplatesResponse)
async def templates(
    body: CommunicationsRequest,
    planner: MeetingPlanner = Depends(get_meeting_planner),
) -> TemplatesResponse:
    return TemplatesResponse(templates=planner.templates(normalize(body.communications)))


@router.post("/analyze", response_model=MeetingAnalysisResponse)
async def analyze_meeting(
    body: MeetingAnalysisRequest,
    planner: MeetingPlanner = Depends(get_meeting_planner),
) -> MeetingAnalysisResponse:
    """Analyze one meeting and draft follow-ups for it."""
    meeting = normalize_one(body.meeting, 0)
    if not meeting.is_meeting:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Record is not a meeting",
        )
    analysis = planner.analyze_meeting(meeting)
    logger.info(
        "api.meeting_analyzed",
        meeting_id=meeting.id,
        effectiveness=analysis.effectiveness_score,
    )
    return MeetingAnalysisResponse(
        analysis=analysis,
        follow_ups=planner.follow_up_suggestions(meeting, analysis, client_name=body.client_name),
        relationship_impact=planner.relationship_impact(analysis),
    )
