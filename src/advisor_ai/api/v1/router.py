"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.advisor_ai.api.v1 import ai, meetings

router = APIRouter()

router.include_router(ai.router)
router.include_router(meetings.router)
