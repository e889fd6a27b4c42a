"""Domain models for campaigns, sessions and their rosters."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class Visibility(str, Enum):
	PUBLIC = "PUBLIC"
	PRIVATE = "PRIVATE"
	LINK_ONLY = "LINK_ONLY"


class CampaignRole(str, Enum):
	OWNER = "OWNER"
	GM = "GM"
	PLAYER = "PLAYER"


class SessionRole(str, Enum):
	GM = "GM"
	PLAYER = "PLAYER"


class SessionStatus(str, Enum):
	PLANNED = "PLANNED"
	ACTIVE = "ACTIVE"
	FINISHED = "FINISHED"
	CANCELED = "CANCELED"


class ParticipantStatus(str, Enum):
	PENDING = "PENDING"
	CONFIRMED = "CONFIRMED"
	DECLINED = "DECLINED"
	ATTENDED = "ATTENDED"
	NO_SHOW = "NO_SHOW"


class JoinRequestStatus(str, Enum):
	PENDING = "PENDING"
	APPROVED = "APPROVED"
	REJECTED = "REJECTED"


class Campaign(BaseModel):
	"""Represents a campaign; ``owner_id`` is the authority for ownership."""

	id: UUID
	title: str
	description: Optional[str] = None
	system: Optional[str] = None
	image_url: Optional[str] = None
	visibility: Visibility
	invite_code: Optional[str] = None
	owner_id: UUID
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)


class CampaignWithCounts(Campaign):
	members_count: int = 0
	sessions_count: int = 0


class CampaignMember(BaseModel):
	id: UUID
	campaign_id: UUID
	user_id: UUID
	role: CampaignRole
	joined_at: datetime

	model_config = ConfigDict(from_attributes=True)


class JoinRequest(BaseModel):
	id: UUID
	campaign_id: UUID
	user_id: UUID
	status: JoinRequestStatus
	message: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	reviewed_at: Optional[datetime] = None
	reviewed_by: Optional[UUID] = None

	model_config = ConfigDict(from_attributes=True)


class Session(BaseModel):
	"""Represents a scheduled game; ``creator_id`` is always the GM."""

	id: UUID
	campaign_id: Optional[UUID] = None
	creator_id: UUID
	title: str
	description: Optional[str] = None
	system: Optional[str] = None
	image_url: Optional[str] = None
	date: datetime
	duration: int
	max_players: int
	price: float
	status: SessionStatus
	visibility: Visibility
	created_at: datetime
	updated_at: datetime

	model_config = ConfigDict(from_attributes=True)

	@property
	def is_one_shot(self) -> bool:
		return self.campaign_id is None

	@property
	def is_terminal(self) -> bool:
		return self.status in (SessionStatus.FINISHED, SessionStatus.CANCELED)


class SessionListing(Session):
	"""Session row joined with its campaign and roster counters."""

	campaign_title: Optional[str] = None
	campaign_system: Optional[str] = None
	player_count: int = 0
	confirmed_players: int = 0


class SessionParticipant(BaseModel):
	id: UUID
	session_id: UUID
	user_id: UUID
	role: SessionRole
	status: ParticipantStatus
	is_guest: bool = False
	joined_at: datetime

	model_config = ConfigDict(from_attributes=True)
