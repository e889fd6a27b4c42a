from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import asyncpg
import pytest

from questboard.scheduling.domain import models
from questboard.scheduling.domain import repo as repo_module
from questboard.scheduling.domain.exceptions import DuplicateEntityError

NOW = datetime(2030, 1, 1, tzinfo=timezone.utc)


class _RecordingConnection:
	def __init__(self, *, row=None, rows=(), value=0, error: Exception | None = None) -> None:
		self.row = row
		self.rows = list(rows)
		self.value = value
		self.error = error
		self.calls: list[tuple[str, tuple]] = []

	async def fetchrow(self, query, *args):
		self.calls.append((query, args))
		if self.error is not None:
			raise self.error
		return self.row

	async def fetch(self, query, *args):
		self.calls.append((query, args))
		return self.rows

	async def fetchval(self, query, *args):
		self.calls.append((query, args))
		return self.value

	async def execute(self, query, *args):
		self.calls.append((query, args))
		return "OK"


class _Pool:
	def __init__(self, conn) -> None:
		self.conn = conn

	@asynccontextmanager
	async def acquire(self):
		yield self.conn


@pytest.fixture
def pooled(monkeypatch):
	def _install(conn):
		async def _get_pool():
			return _Pool(conn)

		monkeypatch.setattr(repo_module, "get_pool", _get_pool)
		return conn

	return _install


def _session_row(**overrides):
	row = {
		"id": uuid4(),
		"campaign_id": None,
		"creator_id": uuid4(),
		"title": "Night watch",
		"description": None,
		"system": None,
		"image_url": None,
		"date": NOW,
		"duration": 120,
		"max_players": 4,
		"price": Decimal("12.50"),
		"status": "PLANNED",
		"visibility": "PUBLIC",
		"created_at": NOW,
		"updated_at": NOW,
	}
	row.update(overrides)
	return row


def test_like_pattern_escapes_wildcards():
	assert repo_module.like_pattern("100%_off\\") == "%100\\%\\_off\\\\%"


def test_set_clause_converts_values():
	params = repo_module._Params(uuid4())
	clause = repo_module._set_clause(
		{"status": models.SessionStatus.ACTIVE, "price": 9.99},
		repo_module.SESSION_COLUMNS,
		params,
	)
	assert clause == "status = $2, price = $3, updated_at = NOW()"
	assert params.values[1:] == ["ACTIVE", Decimal("9.99")]


def test_set_clause_rejects_unknown_columns():
	with pytest.raises(ValueError):
		repo_module._set_clause({"owner_id": uuid4()}, repo_module.CAMPAIGN_COLUMNS, repo_module._Params())


@pytest.mark.asyncio
async def test_locked_read_uses_for_update():
	conn = _RecordingConnection(row=_session_row())
	repo = repo_module.SchedulingRepository()

	session = await repo.get_session(uuid4(), conn=conn, for_update=True)

	assert conn.calls[0][0].endswith("FOR UPDATE")
	assert session.price == 12.5
	assert session.status == models.SessionStatus.PLANNED


@pytest.mark.asyncio
async def test_plain_read_does_not_lock(pooled):
	conn = pooled(_RecordingConnection(row=None))

	assert await repo_module.SchedulingRepository().get_campaign(uuid4()) is None
	assert "FOR UPDATE" not in conn.calls[0][0]


@pytest.mark.asyncio
async def test_unique_violation_maps_to_duplicate():
	conn = _RecordingConnection(error=asyncpg.UniqueViolationError("duplicate key"))

	with pytest.raises(DuplicateEntityError) as exc:
		await repo_module.SchedulingRepository().add_participant(
			uuid4(),
			uuid4(),
			status=models.ParticipantStatus.CONFIRMED,
			is_guest=False,
			conn=conn,
		)
	assert exc.value.detail == "already_joined"


@pytest.mark.asyncio
async def test_window_without_visibility_short_circuits(pooled):
	conn = pooled(_RecordingConnection())
	window = repo_module.SessionWindow(start=NOW, end=NOW)

	assert await repo_module.SchedulingRepository().list_sessions_in_window(window) == []
	assert conn.calls == []


@pytest.mark.asyncio
async def test_window_query_combines_filters(pooled):
	conn = pooled(_RecordingConnection())
	viewer = uuid4()
	window = repo_module.SessionWindow(
		start=NOW,
		end=NOW,
		listed_visibilities=(models.Visibility.PUBLIC,),
		participant_id=viewer,
		exclude_statuses=(models.SessionStatus.CANCELED,),
		system="5e",
		text="dragon",
	)

	await repo_module.SchedulingRepository().list_sessions_in_window(window)

	query, args = conn.calls[0]
	assert "s.visibility = ANY($3::text[])" in query
	assert "vp.user_id = $4" in query
	assert "NOT (s.status = ANY($5::text[]))" in query
	assert "c.system ILIKE $6" in query
	assert "s.description ILIKE $7" in query
	assert args == (NOW, NOW, ["PUBLIC"], viewer, ["CANCELED"], "%5e%", "%dragon%")


@pytest.mark.asyncio
async def test_unbounded_session_search_has_no_limit(pooled):
	conn = pooled(_RecordingConnection(value=3))
	search = repo_module.SessionSearch(min_price=1.5)

	rows, total = await repo_module.SchedulingRepository().search_sessions(
		search, now=NOW, sort_by="price", limit=None, offset=0
	)

	count_query, count_args = conn.calls[0]
	page_query, page_args = conn.calls[1]
	assert total == 3
	assert rows == []
	assert count_query.startswith("SELECT COUNT(*)")
	assert count_args == (NOW, Decimal("1.5"))
	assert "LIMIT" not in page_query
	assert page_query.rstrip().endswith(repo_module.SESSION_SORTS["price"])
	assert page_args == count_args


@pytest.mark.asyncio
async def test_paged_session_search_appends_limit(pooled):
	conn = pooled(_RecordingConnection(value=0))

	await repo_module.SchedulingRepository().search_sessions(
		repo_module.SessionSearch(one_shot=True), now=NOW, sort_by="date", limit=10, offset=20
	)

	page_query, page_args = conn.calls[1]
	assert "s.campaign_id IS NULL" in page_query
	assert page_query.endswith("LIMIT $2 OFFSET $3")
	assert page_args == (NOW, 10, 20)


@pytest.mark.asyncio
async def test_close_pending_join_request_only_touches_pending_rows():
	conn = _RecordingConnection(row=None)
	campaign_id, user_id = uuid4(), uuid4()

	closed = await repo_module.SchedulingRepository().close_pending_join_request(
		campaign_id, user_id, reviewer_id=None, conn=conn
	)

	query, args = conn.calls[0]
	assert closed is None
	assert "status = 'APPROVED'" in query
	assert "AND status = 'PENDING'" in query
	assert args == (campaign_id, user_id, None)
