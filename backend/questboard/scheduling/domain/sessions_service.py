"""Session lifecycle engine: scheduling, status transitions and the participant roster."""

from __future__ import annotations

from datetime import datetime, timezone
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
	SchedulingError,
	ValidationFailedError,
)
from questboard.scheduling.schemas import dto
from questboard.settings import settings

logger = obs_logging.get_logger("questboard.scheduling.sessions")

_NOT_NULLABLE = ("title", "date", "duration", "max_players", "price", "status", "visibility")


def _now() -> datetime:
	return datetime.now(timezone.utc)


def _page(limit: int, offset: int) -> tuple[int, int]:
	return max(1, min(limit, settings.search_max_limit)), max(0, offset)


class SessionsService:
	"""Owns session creation, the status machine and join/leave/roster changes."""

	def __init__(
		self,
		*,
		repository: repo_module.SchedulingRepository | None = None,
		hooks: hooks_module.SchedulingHooks | None = None,
	) -> None:
		self.repo = repository or repo_module.SchedulingRepository()
		self.hooks = hooks or hooks_module.LoggingHooks()

	async def _load_session(self, session_id: UUID, *, conn=None, for_update: bool = False) -> models.Session:
		session = await self.repo.get_session(session_id, conn=conn, for_update=for_update)
		if session is None:
			raise NotFoundError("session_not_found")
		return session

	async def _viewer_context(
		self,
		session: models.Session,
		user_id: UUID | None,
		*,
		conn=None,
	) -> tuple[models.SessionRole | None, models.SessionParticipant | None]:
		if user_id is None:
			return None, None
		participant = await self.repo.get_participant(session.id, user_id, conn=conn)
		return policies.role_in_session(session, user_id, participant), participant

	async def _require_gm(self, session: models.Session, user_id: UUID, *, conn) -> None:
		role, _participant = await self._viewer_context(session, user_id, conn=conn)
		policies.assert_session_gm(role)

	async def create_session(
		self,
		auth_user: AuthenticatedUser,
		payload: dto.SessionCreateRequest,
	) -> dto.SessionDetailResponse:
		creator_id = auth_user.uuid
		policies.ensure_future(payload.date, _now())
		system = payload.system
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				if payload.campaign_id is not None:
					campaign = await self.repo.get_campaign(payload.campaign_id, conn=conn, for_update=True)
					if campaign is None:
						raise NotFoundError("campaign_not_found")
					membership = None
					if campaign.owner_id != creator_id:
						membership = await self.repo.get_member(campaign.id, creator_id, conn=conn)
					role = policies.role_in_campaign(campaign, creator_id, membership)
					if not policies.is_campaign_manager(role):
						raise AccessDeniedError("campaign_manager_required")
					system = system or campaign.system
				session, gm = await self.repo.create_session(
					creator_id=creator_id,
					campaign_id=payload.campaign_id,
					title=payload.title,
					description=payload.description,
					system=system,
					image_url=payload.image_url,
					date=payload.date,
					duration=payload.duration,
					max_players=payload.max_players,
					price=payload.price,
					visibility=payload.visibility,
					conn=conn,
				)
		logger.info(
			"session_created",
			extra={"session_id": str(session.id), "campaign_id": str(payload.campaign_id) if payload.campaign_id else None},
		)
		base = presenters.session_response(
			session,
			current_players=0,
			my_role=models.SessionRole.GM,
			my_status=gm.status,
		)
		return dto.SessionDetailResponse(**base.model_dump(), participants=[presenters.participant_response(gm)])

	async def get_session(
		self,
		viewer: Optional[AuthenticatedUser],
		session_id: UUID,
	) -> dto.SessionDetailResponse:
		session = await self._load_session(session_id)
		role, participant = await self._viewer_context(session, viewer.uuid if viewer else None)
		policies.require_session_visible(session, role)
		participants = await self.repo.list_participants(session.id)
		players = sum(1 for item in participants if item.role == models.SessionRole.PLAYER)
		base = presenters.session_response(
			session,
			current_players=players,
			my_role=role,
			my_status=participant.status if participant else None,
		)
		return dto.SessionDetailResponse(
			**base.model_dump(),
			participants=[presenters.participant_response(item) for item in participants],
		)

	async def update_session(
		self,
		auth_user: AuthenticatedUser,
		session_id: UUID,
		payload: dto.SessionUpdateRequest,
	) -> dto.SessionResponse:
		changes = payload.model_dump(exclude_unset=True)
		for field in _NOT_NULLABLE:
			if field in changes and changes[field] is None:
				raise ValidationFailedError(f"{field}_not_nullable")
		now = _now()
		canceled_roster: list[models.SessionParticipant] = []
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				await self._require_gm(session, auth_user.uuid, conn=conn)
				target_status = changes.get("status")
				if target_status is not None:
					policies.ensure_transition(session.status, target_status)
				if session.is_terminal:
					raise InvalidStateError("session_closed")
				if target_status == session.status:
					changes.pop("status")
				if "date" in changes and changes["date"] != session.date:
					policies.ensure_future(changes["date"], now)
				players = await self.repo.count_players(session.id, conn=conn)
				if "max_players" in changes and changes["max_players"] < players:
					raise InvalidStateError("max_players_below_current")
				if not changes:
					return presenters.session_response(session, current_players=players, my_role=models.SessionRole.GM)
				updated = await self.repo.update_session(session.id, changes, conn=conn)
				if "status" in changes and updated.status == models.SessionStatus.CANCELED:
					canceled_roster = await self.repo.list_participants(session.id, conn=conn)
		if "status" in changes:
			obs_metrics.inc_session_transition(updated.status.value)
		logger.info("session_updated", extra={"session_id": str(session_id), "fields": sorted(changes)})
		if canceled_roster:
			await self._after_cancel(updated, canceled_roster)
		return presenters.session_response(updated, current_players=players, my_role=models.SessionRole.GM)

	async def delete_session(self, auth_user: AuthenticatedUser, session_id: UUID) -> None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				await self._require_gm(session, auth_user.uuid, conn=conn)
				await self.repo.delete_session(session.id, conn=conn)
		logger.info("session_deleted", extra={"session_id": str(session_id)})

	async def list_my_sessions(
		self,
		auth_user: AuthenticatedUser,
		*,
		status: Optional[models.SessionStatus] = None,
		role: Optional[str] = None,
		limit: int = 20,
		offset: int = 0,
	) -> dto.SessionListResponse:
		user_id = auth_user.uuid
		role_filter = None
		if role and role.upper() != "ALL":
			try:
				role_filter = models.SessionRole(role.upper())
			except ValueError:
				raise ValidationFailedError("invalid_role_filter") from None
		limit, offset = _page(limit, offset)
		listings = await self.repo.list_sessions_for_user(
			user_id,
			status=status,
			role=role_filter,
			limit=limit,
			offset=offset,
		)
		items = []
		for listing in listings:
			role_value, participant = await self._viewer_context(listing, user_id)
			items.append(
				presenters.session_summary(
					listing,
					my_role=role_value,
					my_status=participant.status if participant else None,
				)
			)
		return dto.SessionListResponse(items=items)

	async def list_campaign_sessions(
		self,
		viewer: Optional[AuthenticatedUser],
		campaign_id: UUID,
		*,
		limit: int = 20,
		offset: int = 0,
	) -> dto.SessionListResponse:
		viewer_id = viewer.uuid if viewer else None
		campaign = await self.repo.get_campaign(campaign_id)
		if campaign is None:
			raise NotFoundError("campaign_not_found")
		membership = None
		if viewer_id is not None and campaign.owner_id != viewer_id:
			membership = await self.repo.get_member(campaign.id, viewer_id)
		role = policies.role_in_campaign(campaign, viewer_id, membership)
		policies.require_campaign_visible(campaign, role)
		visibilities = None if role is not None else policies.LISTED_VISIBILITIES
		limit, offset = _page(limit, offset)
		listings = await self.repo.list_campaign_sessions(
			campaign.id,
			visibilities=visibilities,
			limit=limit,
			offset=offset,
		)
		return dto.SessionListResponse(items=[presenters.session_summary(item) for item in listings])

	async def join_session(
		self,
		auth_user: AuthenticatedUser,
		session_id: UUID,
		payload: dto.SessionJoinRequest | None = None,
	) -> dto.ParticipantResponse:
		user_id = auth_user.uuid
		is_guest = payload.is_guest if payload else False
		try:
			pool = await get_pool()
			async with pool.acquire() as conn:
				async with conn.transaction():
					# Row lock serialises concurrent joins so the count below is authoritative.
					session = await self._load_session(session_id, conn=conn, for_update=True)
					policies.ensure_joinable(session, _now())
					if session.creator_id == user_id:
						raise DuplicateEntityError("already_joined")
					if await self.repo.get_participant(session.id, user_id, conn=conn) is not None:
						raise DuplicateEntityError("already_joined")
					players = await self.repo.count_players(session.id, conn=conn)
					policies.ensure_capacity(session, players)
					participant = await self.repo.add_participant(
						session.id,
						user_id,
						status=policies.initial_participant_status(session),
						is_guest=is_guest,
						conn=conn,
					)
		except SchedulingError as exc:
			obs_metrics.inc_session_join(exc.kind)
			raise
		obs_metrics.inc_session_join("joined")
		logger.info(
			"session_joined",
			extra={"session_id": str(session_id), "participant_status": participant.status.value},
		)
		return presenters.participant_response(participant)

	async def leave_session(self, auth_user: AuthenticatedUser, session_id: UUID) -> None:
		user_id = auth_user.uuid
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				participant = await self.repo.get_participant(session.id, user_id, conn=conn)
				if participant is None:
					raise NotFoundError("participant_not_found")
				policies.ensure_leavable(session, user_id)
				await self.repo.delete_participant(participant.id, conn=conn)
		logger.info("session_left", extra={"session_id": str(session_id)})

	async def list_participants(
		self,
		viewer: Optional[AuthenticatedUser],
		session_id: UUID,
	) -> dto.ParticipantListResponse:
		session = await self._load_session(session_id)
		role, _participant = await self._viewer_context(session, viewer.uuid if viewer else None)
		policies.require_session_visible(session, role)
		participants = await self.repo.list_participants(session.id)
		return dto.ParticipantListResponse(items=[presenters.participant_response(item) for item in participants])

	async def _load_participant(self, session: models.Session, participant_id: UUID, *, conn) -> models.SessionParticipant:
		participant = await self.repo.get_participant_by_id(participant_id, conn=conn)
		if participant is None or participant.session_id != session.id:
			raise NotFoundError("participant_not_found")
		return participant

	async def update_participant_status(
		self,
		auth_user: AuthenticatedUser,
		session_id: UUID,
		participant_id: UUID,
		payload: dto.ParticipantStatusUpdateRequest,
	) -> dto.ParticipantResponse:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				await self._require_gm(session, auth_user.uuid, conn=conn)
				policies.ensure_participant_status_allowed(session, payload.status)
				participant = await self._load_participant(session, participant_id, conn=conn)
				updated = await self.repo.update_participant_status(participant.id, payload.status, conn=conn)
		logger.info(
			"participant_status_updated",
			extra={"session_id": str(session_id), "participant_id": str(participant_id), "status": payload.status.value},
		)
		return presenters.participant_response(updated)

	async def remove_participant(
		self,
		auth_user: AuthenticatedUser,
		session_id: UUID,
		participant_id: UUID,
	) -> None:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				await self._require_gm(session, auth_user.uuid, conn=conn)
				participant = await self._load_participant(session, participant_id, conn=conn)
				policies.ensure_removable(session, participant)
				await self.repo.delete_participant(participant.id, conn=conn)
		logger.info(
			"participant_removed",
			extra={"session_id": str(session_id), "participant_id": str(participant_id)},
		)

	async def cancel_session(self, auth_user: AuthenticatedUser, session_id: UUID) -> dto.SessionResponse:
		pool = await get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				session = await self._load_session(session_id, conn=conn, for_update=True)
				await self._require_gm(session, auth_user.uuid, conn=conn)
				policies.ensure_cancelable(session)
				updated = await self.repo.update_session(
					session.id,
					{"status": models.SessionStatus.CANCELED},
					conn=conn,
				)
				participants = await self.repo.list_participants(session.id, conn=conn)
		obs_metrics.inc_session_transition(models.SessionStatus.CANCELED.value)
		logger.info("session_canceled", extra={"session_id": str(session_id)})
		await self._after_cancel(updated, participants)
		players = sum(1 for item in participants if item.role == models.SessionRole.PLAYER)
		return presenters.session_response(updated, current_players=players, my_role=models.SessionRole.GM)

	async def _after_cancel(
		self,
		session: models.Session,
		participants: list[models.SessionParticipant],
	) -> None:
		await self.hooks.session_canceled(session, participants)
		if session.price > 0:
			await self.hooks.refund_session(session, participants)
