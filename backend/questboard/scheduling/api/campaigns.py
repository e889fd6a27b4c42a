"""Campaign, membership and join request routes."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response

from questboard.infra.auth import AuthenticatedUser, get_current_user, get_optional_user
from questboard.scheduling.api._errors import to_http_error
from questboard.scheduling.domain.campaigns_service import CampaignsService
from questboard.scheduling.domain.sessions_service import SessionsService
from questboard.scheduling.schemas import dto

router = APIRouter(tags=["scheduling:campaigns"])
_service = CampaignsService()
_sessions = SessionsService()


@router.post("/campaigns", response_model=dto.CampaignResponse, status_code=201)
async def create_campaign_endpoint(
	payload: dto.CampaignCreateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CampaignResponse:
	try:
		return await _service.create_campaign(auth_user, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/campaigns/mine", response_model=dto.CampaignListResponse)
async def list_my_campaigns_endpoint(
	role: str = Query("all"),
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CampaignListResponse:
	try:
		return await _service.list_my_campaigns(auth_user, role=role)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/campaigns/join/{code}", response_model=dto.MemberResponse, status_code=201)
async def join_by_code_endpoint(
	code: str,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MemberResponse:
	try:
		return await _service.join_by_invite_code(auth_user, code)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/campaigns/{campaign_id}", response_model=dto.CampaignDetailResponse)
async def get_campaign_endpoint(
	campaign_id: UUID,
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.CampaignDetailResponse:
	try:
		return await _service.get_campaign(viewer, campaign_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.patch("/campaigns/{campaign_id}", response_model=dto.CampaignResponse)
async def patch_campaign_endpoint(
	campaign_id: UUID,
	payload: dto.CampaignUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.CampaignResponse:
	try:
		return await _service.update_campaign(auth_user, campaign_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/campaigns/{campaign_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def delete_campaign_endpoint(
	campaign_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.delete_campaign(auth_user, campaign_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/campaigns/{campaign_id}/members", response_model=dto.MemberListResponse)
async def list_members_endpoint(
	campaign_id: UUID,
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.MemberListResponse:
	try:
		return await _service.list_members(viewer, campaign_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/campaigns/{campaign_id}/members", response_model=dto.MemberResponse, status_code=201)
async def add_member_endpoint(
	campaign_id: UUID,
	payload: dto.MemberAddRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MemberResponse:
	try:
		return await _service.add_member(auth_user, campaign_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.patch("/campaigns/{campaign_id}/members/{user_id}", response_model=dto.MemberResponse)
async def update_member_role_endpoint(
	campaign_id: UUID,
	user_id: UUID,
	payload: dto.MemberRoleUpdateRequest,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.MemberResponse:
	try:
		return await _service.update_member_role(auth_user, campaign_id, user_id, payload)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.delete(
	"/campaigns/{campaign_id}/members/{user_id}",
	status_code=204,
	response_class=Response,
	response_model=None,
)
async def remove_member_endpoint(
	campaign_id: UUID,
	user_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> None:
	try:
		await _service.remove_member(auth_user, campaign_id, user_id)
		return None
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/campaigns/{campaign_id}/invite-code", response_model=dto.InviteCodeResponse)
async def regenerate_invite_code_endpoint(
	campaign_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.InviteCodeResponse:
	try:
		return await _service.regenerate_invite_code(auth_user, campaign_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/campaigns/{campaign_id}/join-requests", response_model=dto.JoinRequestListResponse)
async def list_join_requests_endpoint(
	campaign_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinRequestListResponse:
	try:
		return await _service.list_join_requests(auth_user, campaign_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/campaigns/{campaign_id}/join-requests", response_model=dto.JoinRequestOutcome, status_code=201)
async def submit_join_request_endpoint(
	campaign_id: UUID,
	payload: Optional[dto.JoinRequestCreateRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinRequestOutcome:
	try:
		return await _service.submit_join_request(auth_user, campaign_id, payload or dto.JoinRequestCreateRequest())
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/join-requests/{request_id}/approve", response_model=dto.JoinRequestOutcome)
async def approve_join_request_endpoint(
	request_id: UUID,
	payload: Optional[dto.JoinRequestApproveRequest] = None,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinRequestOutcome:
	try:
		return await _service.approve_join_request(auth_user, request_id, payload or dto.JoinRequestApproveRequest())
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.post("/join-requests/{request_id}/reject", response_model=dto.JoinRequestResponse)
async def reject_join_request_endpoint(
	request_id: UUID,
	auth_user: AuthenticatedUser = Depends(get_current_user),
) -> dto.JoinRequestResponse:
	try:
		return await _service.reject_join_request(auth_user, request_id)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc


@router.get("/campaigns/{campaign_id}/sessions", response_model=dto.SessionListResponse)
async def list_campaign_sessions_endpoint(
	campaign_id: UUID,
	limit: int = Query(20, ge=1, le=50),
	offset: int = Query(0, ge=0),
	viewer: Optional[AuthenticatedUser] = Depends(get_optional_user),
) -> dto.SessionListResponse:
	try:
		return await _sessions.list_campaign_sessions(viewer, campaign_id, limit=limit, offset=offset)
	except Exception as exc:  # pragma: no cover
		raise to_http_error(exc) from exc
