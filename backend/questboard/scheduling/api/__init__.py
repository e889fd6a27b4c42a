"""FastAPI routers for the scheduling domain."""

from __future__ import annotations

from fastapi import APIRouter

from questboard.scheduling.api import campaigns, search, sessions

router = APIRouter(prefix="/api/v1")

router.include_router(campaigns.router)
router.include_router(sessions.router)
router.include_router(search.router)

__all__ = ["router"]
