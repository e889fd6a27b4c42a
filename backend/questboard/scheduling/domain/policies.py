"""Role resolution and authorization guards for campaigns and sessions.

Everything here is pure: callers load the rows, these functions decide.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from questboard.scheduling.domain import models
from questboard.scheduling.domain.exceptions import (
	AccessDeniedError,
	AuthenticationRequiredError,
	CapacityExceededError,
	InvalidStateError,
	ValidationFailedError,
)

CampaignRole = models.CampaignRole
SessionRole = models.SessionRole
SessionStatus = models.SessionStatus
ParticipantStatus = models.ParticipantStatus
Visibility = models.Visibility

MANAGER_ROLES = frozenset({CampaignRole.OWNER, CampaignRole.GM})
ASSIGNABLE_ROLES = frozenset({CampaignRole.GM, CampaignRole.PLAYER})
LISTED_VISIBILITIES = (Visibility.PUBLIC, Visibility.LINK_ONLY)

# Forward-only; CANCELED and FINISHED have no exits.
SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
	SessionStatus.PLANNED: frozenset({SessionStatus.ACTIVE, SessionStatus.FINISHED, SessionStatus.CANCELED}),
	SessionStatus.ACTIVE: frozenset({SessionStatus.FINISHED, SessionStatus.CANCELED}),
	SessionStatus.FINISHED: frozenset(),
	SessionStatus.CANCELED: frozenset(),
}
RESULT_STATUSES = frozenset({ParticipantStatus.ATTENDED, ParticipantStatus.NO_SHOW})
PLANNING_STATUSES = frozenset({ParticipantStatus.PENDING, ParticipantStatus.CONFIRMED})


class CalendarScope(str, Enum):
	USER = "user"
	GLOBAL = "global"
	SEARCH = "search"


_SCOPE_ALIASES = {
	"user": CalendarScope.USER,
	"my": CalendarScope.USER,
	"global": CalendarScope.GLOBAL,
	"public": CalendarScope.GLOBAL,
	"search": CalendarScope.SEARCH,
	"all": CalendarScope.SEARCH,
}


def role_in_campaign(
	campaign: models.Campaign,
	user_id: UUID | None,
	membership: models.CampaignMember | None,
) -> CampaignRole | None:
	"""Effective role of ``user_id`` given the caller's membership row (if any)."""
	if user_id is None:
		return None
	if campaign.owner_id == user_id:
		return CampaignRole.OWNER
	if membership is None or membership.user_id != user_id or membership.campaign_id != campaign.id:
		return None
	if membership.role == CampaignRole.OWNER:
		# Ownership comes from owner_id only.
		return CampaignRole.GM
	return membership.role


def role_in_session(
	session: models.Session,
	user_id: UUID | None,
	participant: models.SessionParticipant | None,
) -> SessionRole | None:
	if user_id is None:
		return None
	if session.creator_id == user_id:
		return SessionRole.GM
	if participant is None or participant.user_id != user_id or participant.session_id != session.id:
		return None
	if participant.role == SessionRole.GM:
		# GM comes from creator_id only.
		return SessionRole.PLAYER
	return participant.role


def can_view_campaign(campaign: models.Campaign, role: CampaignRole | None) -> bool:
	if campaign.visibility != Visibility.PRIVATE:
		return True
	return role is not None


def require_campaign_visible(campaign: models.Campaign, role: CampaignRole | None) -> None:
	if not can_view_campaign(campaign, role):
		raise AccessDeniedError("campaign_private")


def can_view_session(session: models.Session, role: SessionRole | None) -> bool:
	if session.visibility != Visibility.PRIVATE:
		return True
	return role is not None


def require_session_visible(session: models.Session, role: SessionRole | None) -> None:
	if not can_view_session(session, role):
		raise AccessDeniedError("session_private")


def is_campaign_manager(role: CampaignRole | None) -> bool:
	return role in MANAGER_ROLES


def assert_campaign_manager(role: CampaignRole | None) -> None:
	if not is_campaign_manager(role):
		raise AccessDeniedError("campaign_manager_required")


def assert_campaign_owner(role: CampaignRole | None) -> None:
	if role != CampaignRole.OWNER:
		raise AccessDeniedError("campaign_owner_required")


def assert_session_gm(role: SessionRole | None) -> None:
	if role != SessionRole.GM:
		raise AccessDeniedError("session_gm_required")


def ensure_assignable_role(role: CampaignRole) -> None:
	if role not in ASSIGNABLE_ROLES:
		raise InvalidStateError("owner_role_not_assignable")


def ensure_not_owner(campaign: models.Campaign, target_user_id: UUID) -> None:
	if campaign.owner_id == target_user_id:
		raise InvalidStateError("owner_membership_fixed")


def ensure_future(date: datetime, now: datetime) -> None:
	if date <= now:
		raise ValidationFailedError("date_in_past")


def ensure_transition(current: SessionStatus, target: SessionStatus) -> None:
	if target == current:
		return
	if target not in SESSION_TRANSITIONS[current]:
		raise InvalidStateError(f"transition_{current.value.lower()}_to_{target.value.lower()}_not_allowed")


def ensure_joinable(session: models.Session, now: datetime) -> None:
	if session.status != SessionStatus.PLANNED:
		raise InvalidStateError("session_not_open")
	if session.date <= now:
		raise InvalidStateError("session_already_started")


def ensure_capacity(session: models.Session, player_count: int) -> None:
	"""GMs never count against ``max_players``."""
	if player_count >= session.max_players:
		raise CapacityExceededError("session_full")


def ensure_leavable(session: models.Session, user_id: UUID) -> None:
	if session.is_terminal:
		raise InvalidStateError("session_closed")
	if session.status == SessionStatus.ACTIVE:
		raise InvalidStateError("session_in_progress")
	if session.creator_id == user_id:
		raise AccessDeniedError("gm_cannot_leave")


def ensure_participant_status_allowed(session: models.Session, target: ParticipantStatus) -> None:
	if target in RESULT_STATUSES and session.status != SessionStatus.FINISHED:
		raise InvalidStateError("result_status_requires_finished_session")
	if target in PLANNING_STATUSES and session.status == SessionStatus.FINISHED:
		raise InvalidStateError("planning_status_after_finish")


def ensure_removable(session: models.Session, participant: models.SessionParticipant) -> None:
	if session.is_terminal:
		raise InvalidStateError("session_closed")
	if participant.role == SessionRole.GM or participant.user_id == session.creator_id:
		raise AccessDeniedError("gm_cannot_be_removed")


def ensure_cancelable(session: models.Session) -> None:
	if session.is_terminal:
		raise InvalidStateError("session_closed")


def initial_participant_status(session: models.Session) -> ParticipantStatus:
	if session.visibility == Visibility.PRIVATE:
		return ParticipantStatus.PENDING
	return ParticipantStatus.CONFIRMED


def resolve_scope(
	scope: str | CalendarScope | None,
	viewer_id: UUID | None,
	*,
	downgrade_anonymous: bool = True,
) -> CalendarScope:
	"""Map ``user``/``MY``, ``global``/``PUBLIC`` and ``search``/``ALL`` to a scope.

	Anonymous viewers asking for a personal scope fall back to GLOBAL unless
	``downgrade_anonymous`` is off, in which case USER raises.
	"""
	if scope is None:
		resolved = CalendarScope.GLOBAL
	elif isinstance(scope, CalendarScope):
		resolved = scope
	else:
		try:
			resolved = _SCOPE_ALIASES[str(scope).strip().lower()]
		except KeyError:
			raise ValidationFailedError("invalid_scope") from None
	if viewer_id is not None or resolved == CalendarScope.GLOBAL:
		return resolved
	if not downgrade_anonymous and resolved == CalendarScope.USER:
		raise AuthenticationRequiredError("viewer_required_for_user_scope")
	return CalendarScope.GLOBAL
