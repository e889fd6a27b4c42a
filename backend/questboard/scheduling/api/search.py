"""Public discovery endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Query

from questboard.scheduling.api._errors import to_http_error
from questboard.scheduling.domain.search_service import SearchService
from questboard.scheduling.schemas import dto

router = APIRouter(tags=["scheduling:search"])
_service = SearchService()


@router.get("/search/campaigns", response_model=dto.CampaignSearchResponse)
async def search_campaigns_endpoint(
	q: Optional[str] = Query(default=None, max_length=100),
	system: Optional[str] = Query(default=None),
	sort_by: str = Query("newest"),
	limit: Optional[int] = Query(default=None),
	offset: int = Query(0),
) -> dto.CampaignSearchResponse:
	try:
		return await _service.search_campaigns(query=q, system=system, limit=limit, offset=offset, sort_by=sort_by)
	except Exception as exc:  # pragma: no cover - translated by handler
		raise to_http_error(exc) from exc


@router.get("/search/sessions", response_model=dto.SessionSearchResponse)
async def search_sessions_endpoint(
	q: Optional[str] = Query(default=None, max_length=100),
	system: Optional[str] = Query(default=None),
	date_from: Optional[datetime] = Query(default=None),
	date_to: Optional[datetime] = Query(default=None),
	min_price: Optional[float] = Query(default=None, ge=0),
	max_price: Optional[float] = Query(default=None, ge=0),
	has_available_slots: bool = Query(False),
	one_shot: Optional[bool] = Query(default=None),
	sort_by: str = Query("date"),
	limit: Optional[int] = Query(default=None),
	offset: int = Query(0),
) -> dto.SessionSearchResponse:
	try:
		return await _service.search_sessions(
			query=q,
			system=system,
			date_from=date_from,
			date_to=date_to,
			min_price=min_price,
			max_price=max_price,
			has_available_slots=has_available_slots,
			one_shot=one_shot,
			limit=limit,
			offset=offset,
			sort_by=sort_by,
		)
	except Exception as exc:  # pragma: no cover - translated by handler
		raise to_http_error(exc) from exc
