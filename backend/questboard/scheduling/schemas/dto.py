"""Pydantic schemas for the scheduling API."""

from __future__ import annotations

from datetime import date as date_type
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from questboard.scheduling.domain.models import (
	CampaignRole,
	JoinRequestStatus,
	ParticipantStatus,
	SessionRole,
	SessionStatus,
	Visibility,
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
	if value is None:
		return None
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


# Campaigns


class CampaignCreateRequest(BaseModel):
	title: str = Field(..., min_length=3, max_length=100)
	description: Optional[str] = Field(default=None, max_length=1000)
	system: Optional[str] = Field(default=None, max_length=50)
	image_url: Optional[str] = None
	visibility: Visibility = Visibility.PRIVATE


class CampaignUpdateRequest(BaseModel):
	title: Optional[str] = Field(default=None, min_length=3, max_length=100)
	description: Optional[str] = Field(default=None, max_length=1000)
	system: Optional[str] = Field(default=None, max_length=50)
	image_url: Optional[str] = None
	visibility: Optional[Visibility] = None


class CampaignResponse(BaseModel):
	id: UUID
	title: str
	description: Optional[str] = None
	system: Optional[str] = None
	image_url: Optional[str] = None
	visibility: Visibility
	owner_id: UUID
	invite_code: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	my_role: Optional[CampaignRole] = None


class CampaignSummaryResponse(CampaignResponse):
	members_count: int = 0
	sessions_count: int = 0


class CampaignListResponse(BaseModel):
	items: List[CampaignSummaryResponse]


class MemberAddRequest(BaseModel):
	user_id: UUID
	role: CampaignRole = CampaignRole.PLAYER


class MemberRoleUpdateRequest(BaseModel):
	role: CampaignRole


class MemberResponse(BaseModel):
	id: UUID
	campaign_id: UUID
	user_id: UUID
	role: CampaignRole
	joined_at: datetime


class MemberListResponse(BaseModel):
	items: List[MemberResponse]


class InviteCodeResponse(BaseModel):
	campaign_id: UUID
	invite_code: str


class JoinRequestCreateRequest(BaseModel):
	message: Optional[str] = Field(default=None, max_length=500)


class JoinRequestApproveRequest(BaseModel):
	role: CampaignRole = CampaignRole.PLAYER


class JoinRequestResponse(BaseModel):
	id: UUID
	campaign_id: UUID
	user_id: UUID
	status: JoinRequestStatus
	message: Optional[str] = None
	created_at: datetime
	updated_at: datetime
	reviewed_at: Optional[datetime] = None
	reviewed_by: Optional[UUID] = None


class JoinRequestListResponse(BaseModel):
	items: List[JoinRequestResponse]


class JoinRequestOutcome(BaseModel):
	"""Either an immediate membership (PUBLIC campaigns) or a queued request."""

	joined: bool
	member: Optional[MemberResponse] = None
	request: Optional[JoinRequestResponse] = None


# Sessions


class SessionCreateRequest(BaseModel):
	campaign_id: Optional[UUID] = None
	title: str = Field(..., min_length=3, max_length=150)
	description: Optional[str] = Field(default=None, max_length=2000)
	system: Optional[str] = Field(default=None, max_length=50)
	image_url: Optional[str] = None
	date: datetime
	duration: int = Field(default=180, ge=30, le=480)
	max_players: int = Field(default=4, ge=1, le=20)
	price: float = Field(default=0, ge=0, le=10000)
	visibility: Visibility = Visibility.PRIVATE

	@field_validator("date")
	@classmethod
	def normalise_date(cls, value):
		return as_utc(value)


class SessionUpdateRequest(BaseModel):
	title: Optional[str] = Field(default=None, min_length=3, max_length=150)
	description: Optional[str] = Field(default=None, max_length=2000)
	system: Optional[str] = Field(default=None, max_length=50)
	image_url: Optional[str] = None
	date: Optional[datetime] = None
	duration: Optional[int] = Field(default=None, ge=30, le=480)
	max_players: Optional[int] = Field(default=None, ge=1, le=20)
	price: Optional[float] = Field(default=None, ge=0, le=10000)
	status: Optional[SessionStatus] = None
	visibility: Optional[Visibility] = None

	@field_validator("date")
	@classmethod
	def normalise_date(cls, value):
		return as_utc(value)


class SessionJoinRequest(BaseModel):
	is_guest: bool = False


class ParticipantStatusUpdateRequest(BaseModel):
	status: ParticipantStatus


class ParticipantResponse(BaseModel):
	id: UUID
	session_id: UUID
	user_id: UUID
	role: SessionRole
	status: ParticipantStatus
	is_guest: bool
	joined_at: datetime


class ParticipantListResponse(BaseModel):
	items: List[ParticipantResponse]


class SessionResponse(BaseModel):
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
	is_one_shot: bool
	created_at: datetime
	updated_at: datetime
	current_players: int = 0
	my_role: Optional[SessionRole] = None
	my_status: Optional[ParticipantStatus] = None


class SessionSummaryResponse(SessionResponse):
	campaign_title: Optional[str] = None


class SessionDetailResponse(SessionResponse):
	participants: List[ParticipantResponse] = Field(default_factory=list)


class SessionListResponse(BaseModel):
	items: List[SessionSummaryResponse]


class CampaignDetailResponse(CampaignResponse):
	members: List[MemberResponse] = Field(default_factory=list)
	sessions: List[SessionSummaryResponse] = Field(default_factory=list)
	join_requests: Optional[List[JoinRequestResponse]] = None


# Calendar


class CalendarFilters(BaseModel):
	system: Optional[str] = None
	date_from: Optional[datetime] = None
	date_to: Optional[datetime] = None
	search_query: Optional[str] = None

	@field_validator("date_from", "date_to")
	@classmethod
	def normalise_bounds(cls, value):
		return as_utc(value)


class CalendarResponse(BaseModel):
	year: int
	month: int
	scope: str
	days: Dict[str, int]


class DaySessionRef(BaseModel):
	system: Optional[str] = None
	campaign_title: Optional[str] = None
	campaign_id: Optional[UUID] = None


class DayStats(BaseModel):
	count: int
	sessions: List[DaySessionRef] = Field(default_factory=list)


class CalendarStatsResponse(BaseModel):
	month: str
	scope: str
	days: Dict[str, DayStats]


class DaySessionsResponse(BaseModel):
	date: date_type
	scope: str
	items: List[SessionSummaryResponse]


# Search


class CampaignSearchResponse(BaseModel):
	items: List[CampaignSummaryResponse]
	total: int
	has_more: bool
	limit: int
	offset: int


class SessionSearchItem(SessionSummaryResponse):
	available_slots: int


class SessionSearchResponse(BaseModel):
	items: List[SessionSearchItem]
	total: int
	has_more: bool
	limit: int
	offset: int
