"""FastAPI dependency injection for application-scoped services."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.advisor_ai.insights.manager import ProcessingManager
from src.advisor_ai.insights.meetings.planner import MeetingPlanner
from src.advisor_ai.insights.text_analysis import TextAnalyzer


def _from_state(request: Request, name: str, label: str) -> Any:
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return service


def get_processing_manager(request: Request) -> ProcessingManager:
    """Retrieve the ProcessingManager from app.state, 503 if not available."""
    return _from_state(request, "processing_manager", "Processing manager")


def get_meeting_planner(request: Request) -> MeetingPlanner:
    return _from_state(request, "meeting_planner", "Meeting planner")


def get_text_analyzer(request: Request) -> TextAnalyzer:
    return _from_state(request, "text_analyzer", "Text analyzer")
