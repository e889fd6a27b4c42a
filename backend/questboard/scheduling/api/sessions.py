"""Session lifecycle, roster and calendar routes."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from questboard.infra.auth import AuthenticatedUser, get_current_user, get_optional_user
from questboard.scheduling.api._errors import to_http_error
from questboard.scheduling.domain import calendar_service
from questboard.scheduling.domain.calendar_service import CalendarService
from questboard.scheduling.domain.models import SessionStatus
from questboard.scheduling.domain.sessions_service import SessionsService
from questboard.scheduling.schemas import dto

router = APIRouter(tags=["scheduling:sessions"])
_service = SessionsService()
_calendar = CalendarService()


def _calendar_filters(
	system: Optional[str] = Query(default=None),
	date_from: Optional[datetime] = Query(default=None),
	date_to: Optional[datetime] = Query(default=None),
	search_query: Optional[str] = Query(default=None, alias="q"),
) -> dto.CalendarFilters:
	return dto.CalendarFilters(system=system, date_from=date_from, date_to=date_to, search_query=search_query)


@router.post("/sessions", response_model=dto.SessionDetailResponse, status_code=201)
async def create_session_endpoint(
	payload: dto.SessionCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SessionDetailResponse:
	try:
		return await _service.create_session(auth_user, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/mine", response_model=dto.SessionListResponse)
async def list_my_sessions_endpoint(
	status: Optional[SessionStatus] = Query(default=None),
	role: Optional[str] = Query(default=None),
	limit: int = Query(20, ge=1, le=50),
	offset: int = Query(0, ge=0),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SessionListResponse:
	try:
		return await _service.list_my_sessions(auth_user, status=status, role=role, limit=limit, offset=offset)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/calendar", response_model=dto.CalendarResponse)
async def calendar_endpoint(
	year: int = Query(..., ge=1970, le=9999),
	month: int = Query(..., ge=1, le=12),
	scope: Optional[str] = Query(default=None),
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.CalendarResponse:
	try:
		return await _calendar.get_calendar(viewer, year, month, scope)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/calendar-stats", response_model=dto.CalendarStatsResponse)
async def calendar_stats_endpoint(
	month: str = Query(..., description="YYYY-MM"),
	scope: Optional[str] = Query(default=None),
	filters: dto.CalendarFilters = Depends(_calendar_filters),
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.CalendarStatsResponse:
	try:
		first_day = calendar_service.parse_month(month)
		return await _calendar.get_calendar_stats(viewer, first_day, scope, filters)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/day/{day}", response_model=dto.DaySessionsResponse)
async def sessions_by_day_endpoint(
	day: date,
	scope: Optional[str] = Query(default=None),
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.DaySessionsResponse:
	try:
		return await _calendar.get_sessions_by_day(viewer, day, scope)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/day/{day}/filtered", response_model=dto.DaySessionsResponse)
async def sessions_by_day_filtered_endpoint(
	day: date,
	scope: Optional[str] = Query(default=None),
	filters: dto.CalendarFilters = Depends(_calendar_filters),
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.DaySessionsResponse:
	try:
		return await _calendar.get_sessions_by_day_filtered(viewer, day, scope, filters)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/{session_id}", response_model=dto.SessionDetailResponse)
async def get_session_endpoint(
	session_id: UUID,
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.SessionDetailResponse:
	try:
		return await _service.get_session(viewer, session_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.patch("/sessions/{session_id}", response_model=dto.SessionResponse)
async def patch_session_endpoint(
	session_id: UUID,
	payload: dto.SessionUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SessionResponse:
	try:
		return await _service.update_session(auth_user, session_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/sessions/{session_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_session_endpoint(
	session_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.delete_session(auth_user, session_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/sessions/{session_id}/cancel", response_model=dto.SessionResponse)
async def cancel_session_endpoint(
	session_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.SessionResponse:
	try:
		return await _service.cancel_session(auth_user, session_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/sessions/{session_id}/join", response_model=dto.ParticipantResponse, status_code=201)
async def join_session_endpoint(
	session_id: UUID,
	payload: Optional[dto.SessionJoinRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ParticipantResponse:
	try:
		return await _service.join_session(auth_user, session_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post(
	"/sessions/{session_id}/leave",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def leave_session_endpoint(
	session_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.leave_session(auth_user, session_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/sessions/{session_id}/participants", response_model=dto.ParticipantListResponse)
async def list_participants_endpoint(
	session_id: UUID,
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.ParticipantListResponse:
	try:
		return await _service.list_participants(viewer, session_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.patch("/sessions/{session_id}/participants/{participant_id}", response_model=dto.ParticipantResponse)
async def update_participant_status_endpoint(
	session_id: UUID,
	participant_id: UUID,
	payload: dto.ParticipantStatusUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.ParticipantResponse:
	try:
		return await _service.update_participant_status(auth_user, session_id, participant_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/sessions/{session_id}/participants/{participant_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def remove_participant_endpoint(
	session_id: UUID,
	participant_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.remove_participant(auth_user, session_id, participant_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc
