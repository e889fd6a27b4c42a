"""Model → response conversions shared by the scheduling services."""

from __future__ import annotations

from typing import Optional

from questboard.scheduling.domain import models
from questboard.scheduling.schemas import dto


def campaign_response(
	campaign: models.Campaign,
	*,
	my_role: Optional[models.CampaignRole] = None,
	show_invite: bool = False,
) -> dto.CampaignResponse:
	payload = campaign.model_dump()
	if not show_invite:
		payload["invite_code"] = None
	return dto.CampaignResponse(**payload, my_role=my_role)


def campaign_summary(
	campaign: models.CampaignWithCounts,
	*,
	my_role: Optional[models.CampaignRole] = None,
	show_invite: bool = False,
) -> dto.CampaignSummaryResponse:
	payload = campaign.model_dump()
	if not show_invite:
		payload["invite_code"] = None
	return dto.CampaignSummaryResponse(**payload, my_role=my_role)


def member_response(member: models.CampaignMember) -> dto.MemberResponse:
	return dto.MemberResponse(**member.model_dump())


def join_request_response(request: models.JoinRequest) -> dto.JoinRequestResponse:
	return dto.JoinRequestResponse(**request.model_dump())


def participant_response(participant: models.SessionParticipant) -> dto.ParticipantResponse:
	return dto.ParticipantResponse(**participant.model_dump())


def _session_fields(session: models.Session) -> dict:
	fields = models.Session.model_fields
	payload = {name: getattr(session, name) for name in fields}
	payload["is_one_shot"] = session.is_one_shot
	return payload


def session_response(
	session: models.Session,
	*,
	current_players: int,
	my_role: Optional[models.SessionRole] = None,
	my_status: Optional[models.ParticipantStatus] = None,
) -> dto.SessionResponse:
	return dto.SessionResponse(
		**_session_fields(session),
		current_players=current_players,
		my_role=my_role,
		my_status=my_status,
	)


def session_summary(
	listing: models.SessionListing,
	*,
	my_role: Optional[models.SessionRole] = None,
	my_status: Optional[models.ParticipantStatus] = None,
) -> dto.SessionSummaryResponse:
	return dto.SessionSummaryResponse(
		**_session_fields(listing),
		campaign_title=listing.campaign_title,
		current_players=listing.player_count,
		my_role=my_role,
		my_status=my_status,
	)
