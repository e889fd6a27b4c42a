"""Campaign membership engine: campaigns, rosters, invite codes and join requests."""

from __future__ import annotations

import secrets
from typing import Optional
from uuid import UUID

from questboard.infra.auth import AuthenticatedUser
from questboard.infra.postgres import get_pool
from questboard.obs import logging as obs_logging
from questboard.obs import metrics as obs_metrics
from questboard.scheduling.domain import hooks as hooks_module
from questboard.scheduling.domain import models, policies, presenters
from questboard.scheduling.domain import repo as repo_module
from questboard.scheduling.domain.exceptions import (
	AccessDeniedError,
	DuplicateEntityError,
	InvalidStateError,
	NotFoundError,
	ValidationFailedError,
)
from questboard.scheduling.schemas import dto
from questboard.settings import settings

logger = obs_logging.get_logger("questboard.scheduling.campaigns")

ROLE_FILTERS = ("all", "owner", "member")


def generate_invite_code() -> str:
	"""Random hex code; ``invite_code_bytes`` bytes of entropy (16 hex chars by default)."""
	return secrets.token_hex(max(8, settings.invite_code_bytes))


class CampaignsService:
	"""Creates campaigns and mutates their membership under the owner/GM rules."""

	def __init__(
		self,
		*,
		repository: repo_module.SchedulingRepository | None = None,
		hooks: hooks_module.SchedulingHooks | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.hooks = hooks or hooks_module.LoggingHooks()

	async def _load_campaign(self, campaign_id: UUID, *, conn=None, for_update: bool = False) -> models.Campaign:
		campaign = await self.repo.get_campaign(campaign_id, conn=conn, for_update=for_update)
		if campaign is None:
			raise NotFoundError("campaign_not_found")
		return campaign

	async def _role(self, campaign: models.Campaign, user_id: UUID | None, *, conn=None) -> models.CampaignRole | None:
		if user_id is None:
			return None
		membership = None
		if campaign.owner_id != user_id:
			membership = await self.repo.get_member(campaign.id, user_id, conn=conn)
		return policies.role_in_campaign(campaign, user_id, membership)

	async def create_campaign(
		self,
		auth_user: AuthenticatedUser,
		payload: dto.CampaignCreateRequest,
	) -> dto.CampaignResponse:
		owner_id = auth_user.uuid
		invite_code = generate_invite_code() if payload.visibility == models.Visibility.LINK_ONLY else None
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign, _owner = await self.repo.create_campaign(
					owner_id=owner_id,
					title=payload.title,
					description=payload.description,
					system=payload.system,
					image_url=payload.image_url,
					visibility=payload.visibility,
					invite_code=invite_code,
					conn=conn,
				)
		obs_metrics.inc_campaign_created(campaign.visibility.value)
		logger.info("campaign_created", extra={"campaign_id": str(campaign.id), "visibility": campaign.visibility.value})
		return presenters.campaign_response(campaign, my_role=models.CampaignRole.OWNER, show_invite=True)

	async def get_campaign(
		self,
		viewer: Optional[AuthenticatedUser],
		campaign_id: UUID,
	) -> dto.CampaignDetailResponse:
		viewer_id = viewer.uuid if viewer else None
		campaign = await self._load_campaign(campaign_id)
		role = await self._role(campaign, viewer_id)
		policies.require_campaign_visible(campaign, role)
		manager = policies.is_campaign_manager(role)
		members = await self.repo.list_members(campaign.id)
		visibilities = None if role is not None else policies.LISTED_VISIBILITIES
		sessions = await self.repo.list_campaign_sessions(campaign.id, visibilities=visibilities)
		join_requests = None
		if manager:
			pending = await self.repo.list_pending_join_requests(campaign.id)
			join_requests = [presenters.join_request_response(item) for item in pending]
		base = presenters.campaign_response(campaign, my_role=role, show_invite=manager)
		return dto.CampaignDetailResponse(
			**base.model_dump(),
			members=[presenters.member_response(member) for member in members],
			sessions=[presenters.session_summary(item) for item in sessions],
			join_requests=join_requests,
		)

	async def update_campaign(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
		payload: dto.CampaignUpdateRequest,
	) -> dto.CampaignResponse:
		changes = payload.model_dump(exclude_unset=True)
		if changes.get("title", "") is None or changes.get("visibility", "") is None:
			raise ValidationFailedError("field_not_nullable")
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_owner(role)
				visibility = changes.get("visibility")
				if visibility is not None and visibility != campaign.visibility:
					if visibility == models.Visibility.LINK_ONLY and not campaign.invite_code:
						changes["invite_code"] = generate_invite_code()
					elif visibility == models.Visibility.PRIVATE:
						changes["invite_code"] = None
				if not changes:
					return presenters.campaign_response(campaign, my_role=role, show_invite=True)
				updated = await self.repo.update_campaign(campaign.id, changes, conn=conn)
		logger.info("campaign_updated", extra={"campaign_id": str(campaign_id), "fields": sorted(changes)})
		return presenters.campaign_response(updated, my_role=role, show_invite=True)

	async def delete_campaign(self, auth_user: AuthenticatedUser, campaign_id: UUID) -> None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_owner(role)
				await self.repo.delete_campaign(campaign.id, conn=conn)
		logger.info("campaign_deleted", extra={"campaign_id": str(campaign_id)})

	async def list_my_campaigns(
		self,
		auth_user: AuthenticatedUser,
		*,
		role: str = "all",
	) -> dto.CampaignListResponse:
		role_filter = (role or "all").lower()
		if role_filter not in ROLE_FILTERS:
			role_filter = "all"
		user_id = auth_user.uuid
		campaigns = await self.repo.list_campaigns_for_user(user_id, role_filter=role_filter)
		items = []
		for campaign in campaigns:
			my_role = await self._role(campaign, user_id)
			items.append(
				presenters.campaign_summary(
					campaign,
					my_role=my_role,
					show_invite=policies.is_campaign_manager(my_role),
				)
			)
		return dto.CampaignListResponse(items=items)

	async def list_members(
		self,
		viewer: Optional[AuthenticatedUser],
		campaign_id: UUID,
	) -> dto.MemberListResponse:
		campaign = await self._load_campaign(campaign_id)
		role = await self._role(campaign, viewer.uuid if viewer else None)
		policies.require_campaign_visible(campaign, role)
		members = await self.repo.list_members(campaign.id)
		return dto.MemberListResponse(items=[presenters.member_response(member) for member in members])

	async def add_member(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
		payload: dto.MemberAddRequest,
	) -> dto.MemberResponse:
		policies.ensure_assignable_role(payload.role)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_manager(role)
				if campaign.owner_id == payload.user_id:
					raise DuplicateEntityError("already_member")
				existing = await self.repo.get_member(campaign.id, payload.user_id, conn=conn)
				if existing is not None:
					raise DuplicateEntityError("already_member")
				member = await self.repo.add_member(campaign.id, payload.user_id, payload.role, conn=conn)
				await self.repo.close_pending_join_request(
					campaign.id,
					payload.user_id,
					reviewer_id=auth_user.uuid,
					conn=conn,
				)
		obs_metrics.inc_member_added("direct")
		logger.info(
			"campaign_member_added",
			extra={"campaign_id": str(campaign_id), "member_user_id": str(payload.user_id), "role": payload.role.value},
		)
		return presenters.member_response(member)

	async def remove_member(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
		target_user_id: UUID,
	) -> None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_manager(role)
				policies.ensure_not_owner(campaign, target_user_id)
				target = await self.repo.get_member(campaign.id, target_user_id, conn=conn, for_update=True)
				if target is None:
					raise NotFoundError("member_not_found")
				await self.repo.delete_member(campaign.id, target_user_id, conn=conn)
		logger.info(
			"campaign_member_removed",
			extra={"campaign_id": str(campaign_id), "member_user_id": str(target_user_id)},
		)

	async def update_member_role(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
		target_user_id: UUID,
		payload: dto.MemberRoleUpdateRequest,
	) -> dto.MemberResponse:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_owner(role)
				policies.ensure_not_owner(campaign, target_user_id)
				policies.ensure_assignable_role(payload.role)
				target = await self.repo.get_member(campaign.id, target_user_id, conn=conn, for_update=True)
				if target is None:
					raise NotFoundError("member_not_found")
				member = await self.repo.update_member_role(campaign.id, target_user_id, payload.role, conn=conn)
		logger.info(
			"campaign_member_role_updated",
			extra={"campaign_id": str(campaign_id), "member_user_id": str(target_user_id), "role": payload.role.value},
		)
		return presenters.member_response(member)

	async def regenerate_invite_code(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
	) -> dto.InviteCodeResponse:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				role = await self._role(campaign, auth_user.uuid, conn=conn)
				policies.assert_campaign_owner(role)
				if campaign.visibility == models.Visibility.PRIVATE:
					raise InvalidStateError("invite_code_private_campaign")
				updated = await self.repo.update_campaign(
					campaign.id,
					{"invite_code": generate_invite_code()},
					conn=conn,
				)
		logger.info("campaign_invite_regenerated", extra={"campaign_id": str(campaign_id)})
		return dto.InviteCodeResponse(campaign_id=updated.id, invite_code=updated.invite_code or "")

	async def join_by_invite_code(self, auth_user: AuthenticatedUser, code: str) -> dto.MemberResponse:
		user_id = auth_user.uuid
		normalised = (code or "").strip().lower()
		if not normalised:
			raise NotFoundError("invite_code_not_found")
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self.repo.get_campaign_by_invite_code(normalised, conn=conn, for_update=True)
				if campaign is None:
					raise NotFoundError("invite_code_not_found")
				if campaign.visibility == models.Visibility.PRIVATE:
					raise AccessDeniedError("invite_code_private_campaign")
				if campaign.owner_id == user_id:
					raise DuplicateEntityError("already_member")
				if await self.repo.get_member(campaign.id, user_id, conn=conn) is not None:
					raise DuplicateEntityError("already_member")
				member = await self.repo.add_member(campaign.id, user_id, models.CampaignRole.PLAYER, conn=conn)
				await self.repo.close_pending_join_request(campaign.id, user_id, reviewer_id=None, conn=conn)
		obs_metrics.inc_member_added("invite_code")
		logger.info("campaign_joined_by_code", extra={"campaign_id": str(campaign.id)})
		return presenters.member_response(member)

	async def submit_join_request(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
		payload: dto.JoinRequestCreateRequest,
	) -> dto.JoinRequestOutcome:
		user_id = auth_user.uuid
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign = await self._load_campaign(campaign_id, conn=conn, for_update=True)
				if await self._role(campaign, user_id, conn=conn) is not None:
					raise DuplicateEntityError("already_member")
				if campaign.visibility == models.Visibility.PUBLIC:
					member = await self.repo.add_member(campaign.id, user_id, models.CampaignRole.PLAYER, conn=conn)
					await self.repo.close_pending_join_request(campaign.id, user_id, reviewer_id=None, conn=conn)
					request = None
				else:
					member = None
					request = await self.repo.upsert_pending_join_request(
						campaign.id,
						user_id,
						payload.message,
						conn=conn,
					)
					if request is None:
						raise DuplicateEntityError("join_request_pending")
		if member is not None:
			obs_metrics.inc_member_added("public_join")
			logger.info("campaign_auto_joined", extra={"campaign_id": str(campaign_id)})
			return dto.JoinRequestOutcome(joined=True, member=presenters.member_response(member))
		obs_metrics.inc_join_request(models.JoinRequestStatus.PENDING.value)
		logger.info("join_request_submitted", extra={"campaign_id": str(campaign_id), "request_id": str(request.id)})
		await self.hooks.join_request_submitted(campaign, request)
		return dto.JoinRequestOutcome(joined=False, request=presenters.join_request_response(request))

	async def list_join_requests(
		self,
		auth_user: AuthenticatedUser,
		campaign_id: UUID,
	) -> dto.JoinRequestListResponse:
		campaign = await self._load_campaign(campaign_id)
		role = await self._role(campaign, auth_user.uuid)
		policies.assert_campaign_manager(role)
		pending = await self.repo.list_pending_join_requests(campaign.id)
		return dto.JoinRequestListResponse(items=[presenters.join_request_response(item) for item in pending])

	async def _review(self, auth_user: AuthenticatedUser, request_id: UUID, conn) -> tuple[models.Campaign, models.JoinRequest]:
		located = await self.repo.get_join_request(request_id, conn=conn)
		if located is None:
			raise NotFoundError("join_request_not_found")
		# Campaign row before request row, the same order submit_join_request takes them in.
		campaign = await self._load_campaign(located.campaign_id, conn=conn, for_update=True)
		request = await self.repo.get_join_request(request_id, conn=conn, for_update=True)
		if request is None:
			raise NotFoundError("join_request_not_found")
		role = await self._role(campaign, auth_user.uuid, conn=conn)
		policies.assert_campaign_manager(role)
		if request.status != models.JoinRequestStatus.PENDING:
			raise InvalidStateError("join_request_not_pending")
		return campaign, request

	async def approve_join_request(
		self,
		auth_user: AuthenticatedUser,
		request_id: UUID,
		payload: dto.JoinRequestApproveRequest,
	) -> dto.JoinRequestOutcome:
		policies.ensure_assignable_role(payload.role)
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign, request = await self._review(auth_user, request_id, conn)
				reviewed = await self.repo.review_join_request(
					request.id,
					status=models.JoinRequestStatus.APPROVED,
					reviewer_id=auth_user.uuid,
					conn=conn,
				)
				member = await self.repo.get_member(campaign.id, request.user_id, conn=conn)
				added = member is None
				if added:
					member = await self.repo.add_member(campaign.id, request.user_id, payload.role, conn=conn)
		obs_metrics.inc_join_request(models.JoinRequestStatus.APPROVED.value)
		if added:
			obs_metrics.inc_member_added("join_request")
		logger.info("join_request_approved", extra={"campaign_id": str(campaign.id), "request_id": str(request_id)})
		return dto.JoinRequestOutcome(
			joined=True,
			member=presenters.member_response(member),
			request=presenters.join_request_response(reviewed),
		)

	async def reject_join_request(
		self,
		auth_user: AuthenticatedUser,
		request_id: UUID,
	) -> dto.JoinRequestResponse:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				campaign, request = await self._review(auth_user, request_id, conn)
				reviewed = await self.repo.review_join_request(
					request.id,
					status=models.JoinRequestStatus.REJECTED,
					reviewer_id=auth_user.uuid,
					conn=conn,
				)
		obs_metrics.inc_join_request(models.JoinRequestStatus.REJECTED.value)
		logger.info("join_request_rejected", extra={"campaign_id": str(campaign.id), "request_id": str(request_id)})
		return presenters.join_request_response(reviewed)
