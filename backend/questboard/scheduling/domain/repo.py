"""Postgres repository for campaigns, sessions and their rosters."""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Sequence
from uuid import UUID

import asyncpg

from questboard.infra.postgres import get_pool
from questboard.scheduling.domain import models
from questboard.scheduling.domain.exceptions import DuplicateEntityError, NotFoundError

CAMPAIGN_COLUMNS = frozenset({"title", "description", "system", "image_url", "visibility", "invite_code"})
SESSION_COLUMNS = frozenset(
	{
		"title",
		"description",
		"system",
		"image_url",
		"date",
		"duration",
		"max_players",
		"price",
		"status",
		"visibility",
	}
)

_MEMBER_ORDER = "CASE role WHEN 'OWNER' THEN 0 WHEN 'GM' THEN 1 ELSE 2 END, joined_at ASC"

_SESSION_LISTING_SELECT = """
	SELECT s.*,
		c.title AS campaign_title,
		c.system AS campaign_system,
		(
			SELECT COUNT(*) FROM session_participants p
			WHERE p.session_id = s.id AND p.role = 'PLAYER'
		) AS player_count,
		(
			SELECT COUNT(*) FROM session_participants p
			WHERE p.session_id = s.id AND p.role = 'PLAYER' AND p.status = 'CONFIRMED'
		) AS confirmed_players
	FROM sessions s
	LEFT JOIN campaigns c ON c.id = s.campaign_id
"""

_CAMPAIGN_COUNTS_SELECT = """
	SELECT c.*,
		(SELECT COUNT(*) FROM campaign_members m WHERE m.campaign_id = c.id) AS members_count,
		(SELECT COUNT(*) FROM sessions s WHERE s.campaign_id = c.id) AS sessions_count
	FROM campaigns c
"""

CAMPAIGN_SORTS = {
	"newest": "c.created_at DESC",
	"popular": "members_count DESC, c.created_at DESC",
	"title": "c.title ASC",
}

SESSION_SORTS = {
	"date": "s.date ASC",
	"price": "s.price ASC, s.date ASC",
	"newest": "s.created_at DESC",
}


@dataclass(slots=True)
class SessionWindow:
	"""Calendar query: sessions in ``[start, end)`` visible under a scope.

	A session matches when its visibility is listed or ``participant_id``
	holds a participant row in it.
	"""

	start: datetime
	end: datetime
	listed_visibilities: tuple[models.Visibility, ...] = ()
	participant_id: Optional[UUID] = None
	exclude_statuses: tuple[models.SessionStatus, ...] = ()
	system: Optional[str] = None
	text: Optional[str] = None


@dataclass(slots=True)
class SessionSearch:
	"""Public session search; restricted to PUBLIC and PLANNED/ACTIVE."""

	text: Optional[str] = None
	system: Optional[str] = None
	date_from: Optional[datetime] = None
	date_to: Optional[datetime] = None
	min_price: Optional[float] = None
	max_price: Optional[float] = None
	one_shot: Optional[bool] = None


def like_pattern(text: str) -> str:
	escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
	return f"%{escaped}%"


class _Params:
	"""Positional parameter collector for dynamically built queries."""

	def __init__(self, *initial: object) -> None:
		self.values: list[object] = list(initial)

	def add(self, value: object) -> str:
		self.values.append(value)
		return f"${len(self.values)}"


@asynccontextmanager
async def _connection(conn: Optional[asyncpg.Connection]) -> AsyncIterator[asyncpg.Connection]:
	if conn is not None:
		yield conn
		return
	pool = await get_pool()
	async with pool.acquire() as pooled:
		yield pooled


def _money(value: float) -> Decimal:
	return Decimal(str(value))


def _lock(for_update: bool) -> str:
	return " FOR UPDATE" if for_update else ""


def _set_clause(changes: Mapping[str, Any], allowed: frozenset[str], params: _Params) -> str:
	fields: list[str] = []
	for column, value in changes.items():
		if column not in allowed:
			raise ValueError(f"column_not_updatable:{column}")
		if isinstance(value, Enum):
			value = value.value
		elif column == "price" and value is not None:
			value = _money(value)
		fields.append(f"{column} = {params.add(value)}")
	fields.append("updated_at = NOW()")
	return ", ".join(fields)


class SchedulingRepository:
	"""Thin asyncpg layer; every mutating method takes the caller's transaction."""

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
		conn: asyncpg.Connection,
	) -> tuple[models.Campaign, models.CampaignMember]:
		campaign_row = await conn.fetchrow(
			"""
			INSERT INTO campaigns (title, description, system, image_url, visibility, invite_code, owner_id)
			VALUES ($1, $2, $3, $4, $5, $6, $7)
			RETURNING *
			""",
			title,
			description,
			system,
			image_url,
			visibility.value,
			invite_code,
			owner_id,
		)
		member_row = await conn.fetchrow(
			"""
			INSERT INTO campaign_members (campaign_id, user_id, role)
			VALUES ($1, $2, 'OWNER')
			RETURNING *
			""",
			campaign_row["id"],
			owner_id,
		)
		return (
			models.Campaign.model_validate(dict(campaign_row)),
			models.CampaignMember.model_validate(dict(member_row)),
		)

	async def get_campaign(
		self,
		campaign_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.Campaign]:
		async with _connection(conn) as db:
			record = await db.fetchrow(f"SELECT * FROM campaigns WHERE id = $1{_lock(for_update)}", campaign_id)
		return models.Campaign.model_validate(dict(record)) if record else None

	async def get_campaign_by_invite_code(
		self,
		code: str,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.Campaign]:
		async with _connection(conn) as db:
			record = await db.fetchrow(f"SELECT * FROM campaigns WHERE invite_code = $1{_lock(for_update)}", code)
		return models.Campaign.model_validate(dict(record)) if record else None

	async def update_campaign(
		self,
		campaign_id: UUID,
		changes: Mapping[str, Any],
		*,
		conn: asyncpg.Connection,
	) -> models.Campaign:
		params = _Params(campaign_id)
		set_clause = _set_clause(changes, CAMPAIGN_COLUMNS, params)
		try:
			record = await conn.fetchrow(
				f"UPDATE campaigns SET {set_clause} WHERE id = $1 RETURNING *",
				*params.values,
			)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise DuplicateEntityError("invite_code_collision") from exc
		if record is None:
			raise NotFoundError("campaign_not_found")
		return models.Campaign.model_validate(dict(record))

	async def delete_campaign(self, campaign_id: UUID, *, conn: asyncpg.Connection) -> None:
		await conn.execute("DELETE FROM campaigns WHERE id = $1", campaign_id)

	async def list_campaigns_for_user(
		self,
		user_id: UUID,
		*,
		role_filter: str = "all",
	) -> list[models.CampaignWithCounts]:
		owned = "c.owner_id = $1"
		member = (
			"EXISTS (SELECT 1 FROM campaign_members m "
			"WHERE m.campaign_id = c.id AND m.user_id = $1 AND m.role <> 'OWNER')"
		)
		if role_filter == "owner":
			where = owned
		elif role_filter == "member":
			where = member
		else:
			where = f"({owned} OR {member})"
		async with _connection(None) as db:
			rows = await db.fetch(
				f"{_CAMPAIGN_COUNTS_SELECT} WHERE {where} ORDER BY c.updated_at DESC",
				user_id,
			)
		return [models.CampaignWithCounts.model_validate(dict(row)) for row in rows]

	# Members

	async def get_member(
		self,
		campaign_id: UUID,
		user_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.CampaignMember]:
		async with _connection(conn) as db:
			record = await db.fetchrow(
				f"SELECT * FROM campaign_members WHERE campaign_id = $1 AND user_id = $2{_lock(for_update)}",
				campaign_id,
				user_id,
			)
		return models.CampaignMember.model_validate(dict(record)) if record else None

	async def list_members(
		self,
		campaign_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> list[models.CampaignMember]:
		async with _connection(conn) as db:
			rows = await db.fetch(
				f"SELECT * FROM campaign_members WHERE campaign_id = $1 ORDER BY {_MEMBER_ORDER}",
				campaign_id,
			)
		return [models.CampaignMember.model_validate(dict(row)) for row in rows]

	async def add_member(
		self,
		campaign_id: UUID,
		user_id: UUID,
		role: models.CampaignRole,
		*,
		conn: asyncpg.Connection,
	) -> models.CampaignMember:
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO campaign_members (campaign_id, user_id, role)
				VALUES ($1, $2, $3)
				RETURNING *
				""",
				campaign_id,
				user_id,
				role.value,
			)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise DuplicateEntityError("already_member") from exc
		return models.CampaignMember.model_validate(dict(record))

	async def update_member_role(
		self,
		campaign_id: UUID,
		user_id: UUID,
		role: models.CampaignRole,
		*,
		conn: asyncpg.Connection,
	) -> models.CampaignMember:
		record = await conn.fetchrow(
			"""
			UPDATE campaign_members SET role = $3
			WHERE campaign_id = $1 AND user_id = $2
			RETURNING *
			""",
			campaign_id,
			user_id,
			role.value,
		)
		if record is None:
			raise NotFoundError("member_not_found")
		return models.CampaignMember.model_validate(dict(record))

	async def delete_member(self, campaign_id: UUID, user_id: UUID, *, conn: asyncpg.Connection) -> None:
		await conn.execute(
			"DELETE FROM campaign_members WHERE campaign_id = $1 AND user_id = $2",
			campaign_id,
			user_id,
		)

	# Join requests

	async def get_join_request(
		self,
		request_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.JoinRequest]:
		async with _connection(conn) as db:
			record = await db.fetchrow(f"SELECT * FROM join_requests WHERE id = $1{_lock(for_update)}", request_id)
		return models.JoinRequest.model_validate(dict(record)) if record else None

	async def upsert_pending_join_request(
		self,
		campaign_id: UUID,
		user_id: UUID,
		message: Optional[str],
		*,
		conn: asyncpg.Connection,
	) -> Optional[models.JoinRequest]:
		"""Create a PENDING request or reopen a reviewed one.

		Returns None when a PENDING request already exists for the pair.
		"""
		record = await conn.fetchrow(
			"""
			INSERT INTO join_requests (campaign_id, user_id, message, status)
			VALUES ($1, $2, $3, 'PENDING')
			ON CONFLICT (campaign_id, user_id) DO UPDATE
			SET status = 'PENDING',
				message = EXCLUDED.message,
				created_at = NOW(),
				updated_at = NOW(),
				reviewed_at = NULL,
				reviewed_by = NULL
			WHERE join_requests.status <> 'PENDING'
			RETURNING *
			""",
			campaign_id,
			user_id,
			message,
		)
		return models.JoinRequest.model_validate(dict(record)) if record else None

	async def list_pending_join_requests(
		self,
		campaign_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> list[models.JoinRequest]:
		async with _connection(conn) as db:
			rows = await db.fetch(
				"""
				SELECT * FROM join_requests
				WHERE campaign_id = $1 AND status = 'PENDING'
				ORDER BY created_at DESC
				""",
				campaign_id,
			)
		return [models.JoinRequest.model_validate(dict(row)) for row in rows]

	async def review_join_request(
		self,
		request_id: UUID,
		*,
		status: models.JoinRequestStatus,
		reviewer_id: UUID,
		conn: asyncpg.Connection,
	) -> models.JoinRequest:
		record = await conn.fetchrow(
			"""
			UPDATE join_requests
			SET status = $2, reviewed_by = $3, reviewed_at = NOW(), updated_at = NOW()
			WHERE id = $1
			RETURNING *
			""",
			request_id,
			status.value,
			reviewer_id,
		)
		if record is None:
			raise NotFoundError("join_request_not_found")
		return models.JoinRequest.model_validate(dict(record))

	async def close_pending_join_request(
		self,
		campaign_id: UUID,
		user_id: UUID,
		*,
		reviewer_id: Optional[UUID],
		conn: asyncpg.Connection,
	) -> Optional[models.JoinRequest]:
		"""Mark the user's PENDING request APPROVED once they became a member another way."""
		record = await conn.fetchrow(
			"""
			UPDATE join_requests
			SET status = 'APPROVED', reviewed_by = $3, reviewed_at = NOW(), updated_at = NOW()
			WHERE campaign_id = $1 AND user_id = $2 AND status = 'PENDING'
			RETURNING *
			""",
			campaign_id,
			user_id,
			reviewer_id,
		)
		return models.JoinRequest.model_validate(dict(record)) if record else None

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
		conn: asyncpg.Connection,
	) -> tuple[models.Session, models.SessionParticipant]:
		session_row = await conn.fetchrow(
			"""
			INSERT INTO sessions (
				campaign_id, creator_id, title, description, system, image_url,
				date, duration, max_players, price, visibility
			)
			VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
			RETURNING *
			""",
			campaign_id,
			creator_id,
			title,
			description,
			system,
			image_url,
			date,
			duration,
			max_players,
			_money(price),
			visibility.value,
		)
		gm_row = await conn.fetchrow(
			"""
			INSERT INTO session_participants (session_id, user_id, role, status, is_guest)
			VALUES ($1, $2, 'GM', 'CONFIRMED', FALSE)
			RETURNING *
			""",
			session_row["id"],
			creator_id,
		)
		return (
			models.Session.model_validate(dict(session_row)),
			models.SessionParticipant.model_validate(dict(gm_row)),
		)

	async def get_session(
		self,
		session_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[models.Session]:
		async with _connection(conn) as db:
			record = await db.fetchrow(f"SELECT * FROM sessions WHERE id = $1{_lock(for_update)}", session_id)
		return models.Session.model_validate(dict(record)) if record else None

	async def update_session(
		self,
		session_id: UUID,
		changes: Mapping[str, Any],
		*,
		conn: asyncpg.Connection,
	) -> models.Session:
		params = _Params(session_id)
		set_clause = _set_clause(changes, SESSION_COLUMNS, params)
		record = await conn.fetchrow(
			f"UPDATE sessions SET {set_clause} WHERE id = $1 RETURNING *",
			*params.values,
		)
		if record is None:
			raise NotFoundError("session_not_found")
		return models.Session.model_validate(dict(record))

	async def delete_session(self, session_id: UUID, *, conn: asyncpg.Connection) -> None:
		await conn.execute("DELETE FROM sessions WHERE id = $1", session_id)

	async def list_sessions_for_user(
		self,
		user_id: UUID,
		*,
		status: Optional[models.SessionStatus] = None,
		role: Optional[models.SessionRole] = None,
		limit: int = 20,
		offset: int = 0,
	) -> list[models.SessionListing]:
		params = _Params(user_id)
		clauses = ["me.user_id = $1"]
		if status is not None:
			clauses.append(f"s.status = {params.add(status.value)}")
		if role is not None:
			clauses.append(f"me.role = {params.add(role.value)}")
		limit_ref = params.add(limit)
		offset_ref = params.add(offset)
		query = f"""
			{_SESSION_LISTING_SELECT}
			JOIN session_participants me ON me.session_id = s.id
			WHERE {' AND '.join(clauses)}
			ORDER BY s.date ASC
			LIMIT {limit_ref} OFFSET {offset_ref}
		"""
		async with _connection(None) as db:
			rows = await db.fetch(query, *params.values)
		return [models.SessionListing.model_validate(dict(row)) for row in rows]

	async def list_campaign_sessions(
		self,
		campaign_id: UUID,
		*,
		visibilities: Optional[Sequence[models.Visibility]] = None,
		limit: Optional[int] = None,
		offset: int = 0,
	) -> list[models.SessionListing]:
		params = _Params(campaign_id)
		clauses = ["s.campaign_id = $1"]
		if visibilities is not None:
			clauses.append(f"s.visibility = ANY({params.add([v.value for v in visibilities])}::text[])")
		paging = ""
		if limit is not None:
			paging = f" LIMIT {params.add(limit)} OFFSET {params.add(offset)}"
		query = f"{_SESSION_LISTING_SELECT} WHERE {' AND '.join(clauses)} ORDER BY s.date ASC{paging}"
		async with _connection(None) as db:
			rows = await db.fetch(query, *params.values)
		return [models.SessionListing.model_validate(dict(row)) for row in rows]

	async def list_sessions_in_window(self, window: SessionWindow) -> list[models.SessionListing]:
		params = _Params(window.start, window.end)
		clauses = ["s.date >= $1", "s.date < $2"]
		visible: list[str] = []
		if window.listed_visibilities:
			visible.append(
				f"s.visibility = ANY({params.add([v.value for v in window.listed_visibilities])}::text[])"
			)
		if window.participant_id is not None:
			visible.append(
				"EXISTS (SELECT 1 FROM session_participants vp "
				f"WHERE vp.session_id = s.id AND vp.user_id = {params.add(window.participant_id)})"
			)
		if not visible:
			return []
		clauses.append(f"({' OR '.join(visible)})")
		if window.exclude_statuses:
			clauses.append(f"NOT (s.status = ANY({params.add([st.value for st in window.exclude_statuses])}::text[]))")
		if window.system:
			ref = params.add(like_pattern(window.system))
			clauses.append(f"(s.system ILIKE {ref} OR c.system ILIKE {ref})")
		if window.text:
			ref = params.add(like_pattern(window.text))
			clauses.append(f"(s.title ILIKE {ref} OR s.description ILIKE {ref})")
		query = f"{_SESSION_LISTING_SELECT} WHERE {' AND '.join(clauses)} ORDER BY s.date ASC"
		async with _connection(None) as db:
			rows = await db.fetch(query, *params.values)
		return [models.SessionListing.model_validate(dict(row)) for row in rows]

	# Participants

	async def get_participant(
		self,
		session_id: UUID,
		user_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.SessionParticipant]:
		async with _connection(conn) as db:
			record = await db.fetchrow(
				"SELECT * FROM session_participants WHERE session_id = $1 AND user_id = $2",
				session_id,
				user_id,
			)
		return models.SessionParticipant.model_validate(dict(record)) if record else None

	async def get_participant_by_id(
		self,
		participant_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> Optional[models.SessionParticipant]:
		async with _connection(conn) as db:
			record = await db.fetchrow("SELECT * FROM session_participants WHERE id = $1", participant_id)
		return models.SessionParticipant.model_validate(dict(record)) if record else None

	async def list_participants(
		self,
		session_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
	) -> list[models.SessionParticipant]:
		async with _connection(conn) as db:
			rows = await db.fetch(
				"""
				SELECT * FROM session_participants
				WHERE session_id = $1
				ORDER BY CASE role WHEN 'GM' THEN 0 ELSE 1 END, joined_at ASC
				""",
				session_id,
			)
		return [models.SessionParticipant.model_validate(dict(row)) for row in rows]

	async def count_players(self, session_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> int:
		async with _connection(conn) as db:
			value = await db.fetchval(
				"SELECT COUNT(*) FROM session_participants WHERE session_id = $1 AND role = 'PLAYER'",
				session_id,
			)
		return int(value or 0)

	async def add_participant(
		self,
		session_id: UUID,
		user_id: UUID,
		*,
		status: models.ParticipantStatus,
		is_guest: bool,
		conn: asyncpg.Connection,
	) -> models.SessionParticipant:
		try:
			record = await conn.fetchrow(
				"""
				INSERT INTO session_participants (session_id, user_id, role, status, is_guest)
				VALUES ($1, $2, 'PLAYER', $3, $4)
				RETURNING *
				""",
				session_id,
				user_id,
				status.value,
				is_guest,
			)
		except asyncpg.UniqueViolationError as exc:  # type: ignore[attr-defined]
			raise DuplicateEntityError("already_joined") from exc
		return models.SessionParticipant.model_validate(dict(record))

	async def update_participant_status(
		self,
		participant_id: UUID,
		status: models.ParticipantStatus,
		*,
		conn: asyncpg.Connection,
	) -> models.SessionParticipant:
		record = await conn.fetchrow(
			"UPDATE session_participants SET status = $2 WHERE id = $1 RETURNING *",
			participant_id,
			status.value,
		)
		if record is None:
			raise NotFoundError("participant_not_found")
		return models.SessionParticipant.model_validate(dict(record))

	async def delete_participant(self, participant_id: UUID, *, conn: asyncpg.Connection) -> None:
		await conn.execute("DELETE FROM session_participants WHERE id = $1", participant_id)

	# Search

	async def search_campaigns(
		self,
		*,
		text: Optional[str],
		system: Optional[str],
		sort_by: str,
		limit: int,
		offset: int,
	) -> tuple[list[models.CampaignWithCounts], int]:
		params = _Params()
		clauses = ["c.visibility = 'PUBLIC'"]
		if text:
			ref = params.add(like_pattern(text))
			clauses.append(f"(c.title ILIKE {ref} OR c.description ILIKE {ref})")
		if system:
			clauses.append(f"c.system ILIKE {params.add(like_pattern(system))}")
		where = " AND ".join(clauses)
		filter_values = list(params.values)
		limit_ref = params.add(limit)
		offset_ref = params.add(offset)
		async with _connection(None) as db:
			total = await db.fetchval(f"SELECT COUNT(*) FROM campaigns c WHERE {where}", *filter_values)
			rows = await db.fetch(
				f"{_CAMPAIGN_COUNTS_SELECT} WHERE {where} ORDER BY {CAMPAIGN_SORTS[sort_by]} "
				f"LIMIT {limit_ref} OFFSET {offset_ref}",
				*params.values,
			)
		return [models.CampaignWithCounts.model_validate(dict(row)) for row in rows], int(total or 0)

	async def search_sessions(
		self,
		search: SessionSearch,
		*,
		now: datetime,
		sort_by: str,
		limit: Optional[int],
		offset: int,
	) -> tuple[list[models.SessionListing], int]:
		"""Return one page (or every match when ``limit`` is None) plus the match count."""
		params = _Params()
		clauses = ["s.visibility = 'PUBLIC'", "s.status IN ('PLANNED', 'ACTIVE')"]
		if search.text:
			ref = params.add(like_pattern(search.text))
			clauses.append(f"(s.title ILIKE {ref} OR s.description ILIKE {ref})")
		if search.system:
			ref = params.add(like_pattern(search.system))
			clauses.append(f"(s.system ILIKE {ref} OR c.system ILIKE {ref})")
		if search.date_from is None and search.date_to is None:
			clauses.append(f"s.date >= {params.add(now)}")
		if search.date_from is not None:
			clauses.append(f"s.date >= {params.add(search.date_from)}")
		if search.date_to is not None:
			clauses.append(f"s.date <= {params.add(search.date_to)}")
		if search.min_price is not None:
			clauses.append(f"s.price >= {params.add(_money(search.min_price))}")
		if search.max_price is not None:
			clauses.append(f"s.price <= {params.add(_money(search.max_price))}")
		if search.one_shot is True:
			clauses.append("s.campaign_id IS NULL")
		elif search.one_shot is False:
			clauses.append("s.campaign_id IS NOT NULL")
		where = " AND ".join(clauses)
		filter_values = list(params.values)
		paging = ""
		if limit is not None:
			paging = f" LIMIT {params.add(limit)} OFFSET {params.add(offset)}"
		async with _connection(None) as db:
			total = await db.fetchval(
				f"SELECT COUNT(*) FROM sessions s LEFT JOIN campaigns c ON c.id = s.campaign_id WHERE {where}",
				*filter_values,
			)
			rows = await db.fetch(
				f"{_SESSION_LISTING_SELECT} WHERE {where} ORDER BY {SESSION_SORTS[sort_by]}{paging}",
				*params.values,
			)
		return [models.SessionListing.model_validate(dict(row)) for row in rows], int(total or 0)
