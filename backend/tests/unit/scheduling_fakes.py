"""In-memory stand-ins for the scheduling repository and the asyncpg pool.

The fake repository mirrors the SQL semantics of ``SchedulingRepository``;
``for_update`` reads take a per-row asyncio lock that is held until the
owning fake transaction exits, so concurrent service calls serialise the
same way they do on Postgres. Writes made through a fake connection are
journalled and undone when its transaction exits with an exception.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from questboard.infra.auth import AuthenticatedUser
from questboard.scheduling.domain import models
from questboard.scheduling.domain import repo as repo_module
from questboard.scheduling.domain.exceptions import DuplicateEntityError, NotFoundError


def make_user() -> AuthenticatedUser:
	return AuthenticatedUser(id=str(uuid4()))


def in_days(days: float) -> datetime:
	return datetime.now(timezone.utc) + timedelta(days=days)


_MISSING = object()


class FakeTransaction:
	def __init__(self, conn: "FakeConnection") -> None:
		self.conn = conn

	async def __aenter__(self) -> "FakeTransaction":
		return self

	async def __aexit__(self, exc_type, exc, tb) -> bool:
		if exc_type is not None:
			self.conn.rollback()
		self.conn.undo.clear()
		self.conn.release_locks()
		return False


class FakeConnection:
	def __init__(self) -> None:
		self.locks: list[asyncio.Lock] = []
		self.held: set[tuple[str, UUID]] = set()
		self.undo: list[tuple[dict, UUID, Any]] = []
		self.lock_order: list[str] = []

	def transaction(self) -> FakeTransaction:
		return FakeTransaction(self)

	def rollback(self) -> None:
		for table, key, previous in reversed(self.undo):
			if previous is _MISSING:
				table.pop(key, None)
			else:
				table[key] = previous

	def release_locks(self) -> None:
		for lock in reversed(self.locks):
			lock.release()
		self.locks.clear()
		self.held.clear()


class FakePool:
	def __init__(self) -> None:
		self.acquired = 0
		self.connections: list[FakeConnection] = []

	@asynccontextmanager
	async def acquire(self):
		self.acquired += 1
		conn = FakeConnection()
		self.connections.append(conn)
		yield conn


def _contains(haystack: Optional[str], needle: str) -> bool:
	return haystack is not None and needle.lower() in haystack.lower()


class FakeRepository:
	def __init__(self) -> None:
		self.campaigns: dict[UUID, models.Campaign] = {}
		self.members: dict[UUID, models.CampaignMember] = {}
		self.join_requests: dict[UUID, models.JoinRequest] = {}
		self.sessions: dict[UUID, models.Session] = {}
		self.participants: dict[UUID, models.SessionParticipant] = {}
		self._row_locks: dict[tuple[str, UUID], asyncio.Lock] = {}
		self._tick = 0
		self.lock_requests: list[tuple[str, UUID]] = []
		self.last_search_limit: Optional[int] = None

	# helpers

	def _now(self) -> datetime:
		self._tick += 1
		return datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=self._tick)

	async def _lock(self, kind: str, row_id: UUID, conn: Optional[FakeConnection], for_update: bool) -> None:
		await asyncio.sleep(0)
		if not for_update or conn is None:
			return
		key = (kind, row_id)
		self.lock_requests.append(key)
		if key in conn.held:
			return
		lock = self._row_locks.setdefault(key, asyncio.Lock())
		await lock.acquire()
		conn.locks.append(lock)
		conn.held.add(key)
		conn.lock_order.append(kind)

	def _put(self, conn: Optional[FakeConnection], table: dict, key: UUID, value: Any) -> None:
		if conn is not None:
			conn.undo.append((table, key, table.get(key, _MISSING)))
		table[key] = value

	def _drop(self, conn: Optional[FakeConnection], table: dict, key: UUID) -> None:
		if conn is not None and key in table:
			conn.undo.append((table, key, table[key]))
		table.pop(key, None)

	def _campaign_counts(self, campaign: models.Campaign) -> models.CampaignWithCounts:
		members = sum(1 for m in self.members.values() if m.campaign_id == campaign.id)
		sessions = sum(1 for s in self.sessions.values() if s.campaign_id == campaign.id)
		return models.CampaignWithCounts(**campaign.model_dump(), members_count=members, sessions_count=sessions)

	def _listing(self, session: models.Session) -> models.SessionListing:
		campaign = self.campaigns.get(session.campaign_id) if session.campaign_id else None
		players = [
			p
			for p in self.participants.values()
			if p.session_id == session.id and p.role == models.SessionRole.PLAYER
		]
		return models.SessionListing(
			**session.model_dump(),
			campaign_title=campaign.title if campaign else None,
			campaign_system=campaign.system if campaign else None,
			player_count=len(players),
			confirmed_players=sum(1 for p in players if p.status == models.ParticipantStatus.CONFIRMED),
		)

	def _matches_system(self, listing: models.SessionListing, system: str) -> bool:
		return _contains(listing.system, system) or _contains(listing.campaign_system, system)

	def _matches_text(self, session: models.Session, text: str) -> bool:
		return _contains(session.title, text) or _contains(session.description, text)

	# seeding

	def seed_campaign(
		self,
		owner_id: UUID,
		*,
		title: str = "The Sunless Citadel",
		system: Optional[str] = "D&D 5e",
		visibility: models.Visibility = models.Visibility.PUBLIC,
		invite_code: Optional[str] = None,
		description: Optional[str] = None,
	) -> models.Campaign:
		now = self._now()
		campaign = models.Campaign(
			id=uuid4(),
			title=title,
			description=description,
			system=system,
			visibility=visibility,
			invite_code=invite_code,
			owner_id=owner_id,
			created_at=now,
			updated_at=now,
		)
		self.campaigns[campaign.id] = campaign
		self._insert_member(campaign.id, owner_id, models.CampaignRole.OWNER)
		return campaign

	def seed_session(
		self,
		creator_id: UUID,
		*,
		campaign_id: Optional[UUID] = None,
		title: str = "Goblin Ambush",
		description: Optional[str] = None,
		system: Optional[str] = "D&D 5e",
		date: Optional[datetime] = None,
		max_players: int = 4,
		price: float = 0,
		status: models.SessionStatus = models.SessionStatus.PLANNED,
		visibility: models.Visibility = models.Visibility.PUBLIC,
	) -> models.Session:
		now = self._now()
		session = models.Session(
			id=uuid4(),
			campaign_id=campaign_id,
			creator_id=creator_id,
			title=title,
			description=description,
			system=system,
			date=date or in_days(7),
			duration=180,
			max_players=max_players,
			price=price,
			status=status,
			visibility=visibility,
			created_at=now,
			updated_at=now,
		)
		self.sessions[session.id] = session
		self._insert_participant(session.id, creator_id, models.SessionRole.GM, models.ParticipantStatus.CONFIRMED)
		return session

	def seed_player(
		self,
		session_id: UUID,
		user_id: UUID,
		status: models.ParticipantStatus = models.ParticipantStatus.CONFIRMED,
	) -> models.SessionParticipant:
		return self._insert_participant(session_id, user_id, models.SessionRole.PLAYER, status)

	def seed_member(self, campaign_id: UUID, user_id: UUID, role: models.CampaignRole) -> models.CampaignMember:
		return self._insert_member(campaign_id, user_id, role)

	def _insert_member(self, campaign_id: UUID, user_id: UUID, role: models.CampaignRole, conn=None) -> models.CampaignMember:
		if any(m.campaign_id == campaign_id and m.user_id == user_id for m in self.members.values()):
			raise DuplicateEntityError("already_member")
		member = models.CampaignMember(
			id=uuid4(),
			campaign_id=campaign_id,
			user_id=user_id,
			role=role,
			joined_at=self._now(),
		)
		self._put(conn, self.members, member.id, member)
		return member

	def _insert_participant(
		self,
		session_id: UUID,
		user_id: UUID,
		role: models.SessionRole,
		status: models.ParticipantStatus,
		is_guest: bool = False,
		conn=None,
	) -> models.SessionParticipant:
		if any(p.session_id == session_id and p.user_id == user_id for p in self.participants.values()):
			raise DuplicateEntityError("already_joined")
		participant = models.SessionParticipant(
			id=uuid4(),
			session_id=session_id,
			user_id=user_id,
			role=role,
			status=status,
			is_guest=is_guest,
			joined_at=self._now(),
		)
		self._put(conn, self.participants, participant.id, participant)
		return participant

	# Campaigns

	async def create_campaign(
		self,
		*,
		owner_id: UUID,
		title: str,
		description: Optional[str],
		system: Optional[str],
		image_url: Optional[str],
		visibility: models.Visibility,
		invite_code: Optional[str],
		conn,
	) -> tuple[models.Campaign, models.CampaignMember]:
		await asyncio.sleep(0)
		now = self._now()
		campaign = models.Campaign(
			id=uuid4(),
			title=title,
			description=description,
			system=system,
			image_url=image_url,
			visibility=visibility,
			invite_code=invite_code,
			owner_id=owner_id,
			created_at=now,
			updated_at=now,
		)
		self._put(conn, self.campaigns, campaign.id, campaign)
		owner = self._insert_member(campaign.id, owner_id, models.CampaignRole.OWNER, conn=conn)
		return campaign, owner

	async def get_campaign(self, campaign_id: UUID, *, conn=None, for_update: bool = False) -> Optional[models.Campaign]:
		await self._lock("campaign", campaign_id, conn, for_update)
		return self.campaigns.get(campaign_id)

	async def get_campaign_by_invite_code(self, code: str, *, conn=None, for_update: bool = False):
		await asyncio.sleep(0)
		for campaign in self.campaigns.values():
			if campaign.invite_code == code:
				await self._lock("campaign", campaign.id, conn, for_update)
				return self.campaigns.get(campaign.id)
		return None

	async def update_campaign(self, campaign_id: UUID, changes: Mapping[str, Any], *, conn) -> models.Campaign:
		await asyncio.sleep(0)
		current = self.campaigns.get(campaign_id)
		if current is None:
			raise NotFoundError("campaign_not_found")
		for column in changes:
			if column not in repo_module.CAMPAIGN_COLUMNS:
				raise ValueError(f"column_not_updatable:{column}")
		code = changes.get("invite_code")
		if code and any(c.invite_code == code and c.id != campaign_id for c in self.campaigns.values()):
			raise DuplicateEntityError("invite_code_collision")
		updated = current.model_copy(update={**changes, "updated_at": self._now()})
		self._put(conn, self.campaigns, campaign_id, updated)
		return updated

	async def delete_campaign(self, campaign_id: UUID, *, conn) -> None:
		await asyncio.sleep(0)
		self._drop(conn, self.campaigns, campaign_id)
		for member_id in [m.id for m in self.members.values() if m.campaign_id == campaign_id]:
			self._drop(conn, self.members, member_id)
		for request_id in [r.id for r in self.join_requests.values() if r.campaign_id == campaign_id]:
			self._drop(conn, self.join_requests, request_id)
		for session_id in [s.id for s in self.sessions.values() if s.campaign_id == campaign_id]:
			await self.delete_session(session_id, conn=conn)

	async def list_campaigns_for_user(self, user_id: UUID, *, role_filter: str = "all") -> list[models.CampaignWithCounts]:
		await asyncio.sleep(0)
		result = []
		for campaign in self.campaigns.values():
			owned = campaign.owner_id == user_id
			member = any(
				m.campaign_id == campaign.id and m.user_id == user_id and m.role != models.CampaignRole.OWNER
				for m in self.members.values()
			)
			if role_filter == "owner":
				keep = owned
			elif role_filter == "member":
				keep = member
			else:
				keep = owned or member
			if keep:
				result.append(self._campaign_counts(campaign))
		return sorted(result, key=lambda c: c.updated_at, reverse=True)

	# Members

	async def get_member(self, campaign_id: UUID, user_id: UUID, *, conn=None, for_update: bool = False):
		await asyncio.sleep(0)
		for member in self.members.values():
			if member.campaign_id == campaign_id and member.user_id == user_id:
				await self._lock("member", member.id, conn, for_update)
				return member
		return None

	async def list_members(self, campaign_id: UUID, *, conn=None) -> list[models.CampaignMember]:
		await asyncio.sleep(0)
		order = {models.CampaignRole.OWNER: 0, models.CampaignRole.GM: 1, models.CampaignRole.PLAYER: 2}
		rows = [m for m in self.members.values() if m.campaign_id == campaign_id]
		return sorted(rows, key=lambda m: (order[m.role], m.joined_at))

	async def add_member(self, campaign_id: UUID, user_id: UUID, role: models.CampaignRole, *, conn) -> models.CampaignMember:
		await asyncio.sleep(0)
		return self._insert_member(campaign_id, user_id, role, conn=conn)

	async def update_member_role(self, campaign_id: UUID, user_id: UUID, role: models.CampaignRole, *, conn):
		await asyncio.sleep(0)
		for member in self.members.values():
			if member.campaign_id == campaign_id and member.user_id == user_id:
				updated = member.model_copy(update={"role": role})
				self._put(conn, self.members, member.id, updated)
				return updated
		raise NotFoundError("member_not_found")

	async def delete_member(self, campaign_id: UUID, user_id: UUID, *, conn) -> None:
		await asyncio.sleep(0)
		for member_id in [m.id for m in self.members.values() if m.campaign_id == campaign_id and m.user_id == user_id]:
			self._drop(conn, self.members, member_id)

	# Join requests

	async def get_join_request(self, request_id: UUID, *, conn=None, for_update: bool = False):
		await self._lock("join_request", request_id, conn, for_update)
		return self.join_requests.get(request_id)

	async def upsert_pending_join_request(self, campaign_id: UUID, user_id: UUID, message: Optional[str], *, conn):
		await asyncio.sleep(0)
		now = self._now()
		for request_id, request in list(self.join_requests.items()):
			if request.campaign_id == campaign_id and request.user_id == user_id:
				# ON CONFLICT locks the conflicting row even when its WHERE guard skips the update.
				await self._lock("join_request", request_id, conn, True)
				request = self.join_requests[request_id]
				if request.status == models.JoinRequestStatus.PENDING:
					return None
				reopened = request.model_copy(
					update={
						"status": models.JoinRequestStatus.PENDING,
						"message": message,
						"created_at": now,
						"updated_at": now,
						"reviewed_at": None,
						"reviewed_by": None,
					}
				)
				self._put(conn, self.join_requests, request.id, reopened)
				return reopened
		request = models.JoinRequest(
			id=uuid4(),
			campaign_id=campaign_id,
			user_id=user_id,
			status=models.JoinRequestStatus.PENDING,
			message=message,
			created_at=now,
			updated_at=now,
		)
		self._put(conn, self.join_requests, request.id, request)
		return request

	async def list_pending_join_requests(self, campaign_id: UUID, *, conn=None) -> list[models.JoinRequest]:
		await asyncio.sleep(0)
		rows = [
			r
			for r in self.join_requests.values()
			if r.campaign_id == campaign_id and r.status == models.JoinRequestStatus.PENDING
		]
		return sorted(rows, key=lambda r: r.created_at, reverse=True)

	async def review_join_request(self, request_id: UUID, *, status, reviewer_id: UUID, conn) -> models.JoinRequest:
		await asyncio.sleep(0)
		request = self.join_requests.get(request_id)
		if request is None:
			raise NotFoundError("join_request_not_found")
		now = self._now()
		reviewed = request.model_copy(
			update={"status": status, "reviewed_by": reviewer_id, "reviewed_at": now, "updated_at": now}
		)
		self._put(conn, self.join_requests, request_id, reviewed)
		return reviewed

	async def close_pending_join_request(self, campaign_id: UUID, user_id: UUID, *, reviewer_id, conn):
		await asyncio.sleep(0)
		for request_id, request in list(self.join_requests.items()):
			if request.campaign_id == campaign_id and request.user_id == user_id:
				await self._lock("join_request", request_id, conn, True)
				request = self.join_requests[request_id]
				if request.status != models.JoinRequestStatus.PENDING:
					return None
				now = self._now()
				closed = request.model_copy(
					update={
						"status": models.JoinRequestStatus.APPROVED,
						"reviewed_by": reviewer_id,
						"reviewed_at": now,
						"updated_at": now,
					}
				)
				self._put(conn, self.join_requests, request_id, closed)
				return closed
		return None

	# Sessions

	async def create_session(
		self,
		*,
		creator_id: UUID,
		campaign_id: Optional[UUID],
		title: str,
		description: Optional[str],
		system: Optional[str],
		image_url: Optional[str],
		date: datetime,
		duration: int,
		max_players: int,
		price: float,
		visibility: models.Visibility,
		conn,
	) -> tuple[models.Session, models.SessionParticipant]:
		await asyncio.sleep(0)
		now = self._now()
		session = models.Session(
			id=uuid4(),
			campaign_id=campaign_id,
			creator_id=creator_id,
			title=title,
			description=description,
			system=system,
			image_url=image_url,
			date=date,
			duration=duration,
			max_players=max_players,
			price=price,
			status=models.SessionStatus.PLANNED,
			visibility=visibility,
			created_at=now,
			updated_at=now,
		)
		self._put(conn, self.sessions, session.id, session)
		gm = self._insert_participant(session.id, creator_id, models.SessionRole.GM, models.ParticipantStatus.CONFIRMED, conn=conn)
		return session, gm

	async def get_session(self, session_id: UUID, *, conn=None, for_update: bool = False) -> Optional[models.Session]:
		await self._lock("session", session_id, conn, for_update)
		return self.sessions.get(session_id)

	async def update_session(self, session_id: UUID, changes: Mapping[str, Any], *, conn) -> models.Session:
		await asyncio.sleep(0)
		current = self.sessions.get(session_id)
		if current is None:
			raise NotFoundError("session_not_found")
		for column in changes:
			if column not in repo_module.SESSION_COLUMNS:
				raise ValueError(f"column_not_updatable:{column}")
		updated = current.model_copy(update={**changes, "updated_at": self._now()})
		self._put(conn, self.sessions, session_id, updated)
		return updated

	async def delete_session(self, session_id: UUID, *, conn) -> None:
		await asyncio.sleep(0)
		self._drop(conn, self.sessions, session_id)
		for participant_id in [p.id for p in self.participants.values() if p.session_id == session_id]:
			self._drop(conn, self.participants, participant_id)

	async def list_sessions_for_user(
		self,
		user_id: UUID,
		*,
		status=None,
		role=None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.SessionListing]:
		await asyncio.sleep(0)
		rows = []
		for participant in self.participants.values():
			if participant.user_id != user_id:
				continue
			if role is not None and participant.role != role:
				continue
			session = self.sessions.get(participant.session_id)
			if session is None or (status is not None and session.status != status):
				continue
			rows.append(self._listing(session))
		rows.sort(key=lambda s: s.date)
		return rows[offset:offset + limit]

	async def list_campaign_sessions(
		self,
		campaign_id: UUID,
		*,
		visibilities: Optional[Sequence[models.Visibility]] = None,
		limit: Optional[int] = None,
		offset: int = 0,
	) -> list[models.SessionListing]:
		await asyncio.sleep(0)
		rows = [
			self._listing(s)
			for s in self.sessions.values()
			if s.campaign_id == campaign_id and (visibilities is None or s.visibility in visibilities)
		]
		rows.sort(key=lambda s: s.date)
		if limit is not None:
			rows = rows[offset:offset + limit]
		return rows

	async def list_sessions_in_window(self, window: repo_module.SessionWindow) -> list[models.SessionListing]:
		await asyncio.sleep(0)
		if not window.listed_visibilities and window.participant_id is None:
			return []
		rows = []
		for session in self.sessions.values():
			if not window.start <= session.date < window.end:
				continue
			listed = session.visibility in window.listed_visibilities
			joined = window.participant_id is not None and any(
				p.session_id == session.id and p.user_id == window.participant_id for p in self.participants.values()
			)
			if not (listed or joined):
				continue
			if session.status in window.exclude_statuses:
				continue
			listing = self._listing(session)
			if window.system and not self._matches_system(listing, window.system):
				continue
			if window.text and not self._matches_text(session, window.text):
				continue
			rows.append(listing)
		return sorted(rows, key=lambda s: s.date)

	# Participants

	async def get_participant(self, session_id: UUID, user_id: UUID, *, conn=None):
		await asyncio.sleep(0)
		for participant in self.participants.values():
			if participant.session_id == session_id and participant.user_id == user_id:
				return participant
		return None

	async def get_participant_by_id(self, participant_id: UUID, *, conn=None):
		await asyncio.sleep(0)
		return self.participants.get(participant_id)

	async def list_participants(self, session_id: UUID, *, conn=None) -> list[models.SessionParticipant]:
		await asyncio.sleep(0)
		rows = [p for p in self.participants.values() if p.session_id == session_id]
		return sorted(rows, key=lambda p: (p.role != models.SessionRole.GM, p.joined_at))

	async def count_players(self, session_id: UUID, *, conn=None) -> int:
		await asyncio.sleep(0)
		return sum(
			1
			for p in self.participants.values()
			if p.session_id == session_id and p.role == models.SessionRole.PLAYER
		)

	async def add_participant(self, session_id: UUID, user_id: UUID, *, status, is_guest: bool, conn):
		await asyncio.sleep(0)
		return self._insert_participant(session_id, user_id, models.SessionRole.PLAYER, status, is_guest, conn=conn)

	async def update_participant_status(self, participant_id: UUID, status, *, conn):
		await asyncio.sleep(0)
		participant = self.participants.get(participant_id)
		if participant is None:
			raise NotFoundError("participant_not_found")
		updated = participant.model_copy(update={"status": status})
		self._put(conn, self.participants, participant_id, updated)
		return updated

	async def delete_participant(self, participant_id: UUID, *, conn) -> None:
		await asyncio.sleep(0)
		self._drop(conn, self.participants, participant_id)

	# Search

	async def search_campaigns(self, *, text, system, sort_by: str, limit: int, offset: int):
		await asyncio.sleep(0)
		rows = []
		for campaign in self.campaigns.values():
			if campaign.visibility != models.Visibility.PUBLIC:
				continue
			if text and not (_contains(campaign.title, text) or _contains(campaign.description, text)):
				continue
			if system and not _contains(campaign.system, system):
				continue
			rows.append(self._campaign_counts(campaign))
		if sort_by == "popular":
			rows.sort(key=lambda c: (-c.members_count, -c.created_at.timestamp()))
		elif sort_by == "title":
			rows.sort(key=lambda c: c.title)
		else:
			rows.sort(key=lambda c: c.created_at, reverse=True)
		return rows[offset:offset + limit], len(rows)

	async def search_sessions(self, search: repo_module.SessionSearch, *, now: datetime, sort_by: str, limit, offset: int):
		await asyncio.sleep(0)
		self.last_search_limit = limit
		rows = []
		for session in self.sessions.values():
			if session.visibility != models.Visibility.PUBLIC:
				continue
			if session.status not in (models.SessionStatus.PLANNED, models.SessionStatus.ACTIVE):
				continue
			listing = self._listing(session)
			if search.text and not self._matches_text(session, search.text):
				continue
			if search.system and not self._matches_system(listing, search.system):
				continue
			if search.date_from is None and search.date_to is None and session.date < now:
				continue
			if search.date_from is not None and session.date < search.date_from:
				continue
			if search.date_to is not None and session.date > search.date_to:
				continue
			if search.min_price is not None and session.price < search.min_price:
				continue
			if search.max_price is not None and session.price > search.max_price:
				continue
			if search.one_shot is True and session.campaign_id is not None:
				continue
			if search.one_shot is False and session.campaign_id is None:
				continue
			rows.append(listing)
		if sort_by == "price":
			rows.sort(key=lambda s: (s.price, s.date))
		elif sort_by == "newest":
			rows.sort(key=lambda s: s.created_at, reverse=True)
		else:
			rows.sort(key=lambda s: s.date)
		total = len(rows)
		if limit is not None:
			rows = rows[offset:offset + limit]
		return rows, total


class RecordingHooks:
	def __init__(self) -> None:
		self.canceled: list[tuple[UUID, int]] = []
		self.refunds: list[tuple[UUID, int]] = []
		self.join_requests: list[UUID] = []

	async def session_canceled(self, session, participants) -> None:
		self.canceled.append((session.id, len(participants)))

	async def refund_session(self, session, participants) -> None:
		self.refunds.append((session.id, len(participants)))

	async def join_request_submitted(self, campaign, request) -> None:
		self.join_requests.append(request.id)

