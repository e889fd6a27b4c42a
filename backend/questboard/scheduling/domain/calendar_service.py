"""Calendar aggregation over sessions visible to a viewer.

Every read recomputes from the session tables; nothing is cached. Date keys
are ``YYYY-MM-DD`` in UTC.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from uuid import UUID

from questboard.infra.auth import AuthenticatedUser
from questboard.scheduling.domain import models, policies, presenters
from questboard.scheduling.domain import repo as repo_module
from questboard.scheduling.domain.exceptions import ValidationFailedError
from questboard.scheduling.schemas import dto

CalendarScope = policies.CalendarScope


def date_key(moment: datetime) -> str:
	if moment.tzinfo is None:
		moment = moment.replace(tzinfo=timezone.utc)
	return moment.astimezone(timezone.utc).date().isoformat()


def parse_month(value: str) -> date:
	"""Parse a ``YYYY-MM`` month key into the first day of that month."""
	try:
		year_part, month_part = (value or "").strip().split("-")
		return date(int(year_part), int(month_part), 1)
	except ValueError:
		raise ValidationFailedError("invalid_month") from None


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
	if not 1 <= month <= 12:
		raise ValidationFailedError("invalid_month")
	start = datetime(year, month, 1, tzinfo=timezone.utc)
	if month == 12:
		end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
	else:
		end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
	return start, end


def day_bounds(day: date) -> tuple[datetime, datetime]:
	start = datetime.combine(day, time.min, tzinfo=timezone.utc)
	return start, start + timedelta(days=1)


def build_window(
	scope: CalendarScope,
	viewer_id: UUID | None,
	start: datetime,
	end: datetime,
	*,
	filters: dto.CalendarFilters | None = None,
	exclude_canceled: bool = False,
) -> repo_module.SessionWindow:
	"""Translate a resolved scope and optional filters into a session window.

	``date_from``/``date_to`` only ever narrow ``[start, end)``.
	"""
	listed: tuple[models.Visibility, ...] = ()
	participant_id = None
	if scope in (CalendarScope.GLOBAL, CalendarScope.SEARCH):
		listed = policies.LISTED_VISIBILITIES
	if scope in (CalendarScope.USER, CalendarScope.SEARCH):
		participant_id = viewer_id
	system = text = None
	if filters is not None:
		if filters.date_from is not None and filters.date_from > start:
			start = filters.date_from
		if filters.date_to is not None and filters.date_to < end:
			# date_to is inclusive
			end = filters.date_to + timedelta(microseconds=1)
		system = (filters.system or "").strip() or None
		text = (filters.search_query or "").strip() or None
	return repo_module.SessionWindow(
		start=start,
		end=end,
		listed_visibilities=listed,
		participant_id=participant_id,
		exclude_statuses=(models.SessionStatus.CANCELED,) if exclude_canceled else (),
		system=system,
		text=text,
	)


class CalendarService:
	"""Month and day views of the sessions a viewer may see."""

	def __init__(self, *, repository: repo_module.SchedulingRepository | None = None) -> None:
		self.repo = repository or repo_module.SchedulingRepository()

	async def _sessions(self, window: repo_module.SessionWindow) -> list[models.SessionListing]:
		if window.start >= window.end:
			return []
		return await self.repo.list_sessions_in_window(window)

	async def get_calendar(
		self,
		viewer: Optional[AuthenticatedUser],
		year: int,
		month: int,
		scope: str | None = None,
		*,
		downgrade_anonymous: bool = True,
	) -> dto.CalendarResponse:
		viewer_id = viewer.uuid if viewer else None
		resolved = policies.resolve_scope(scope, viewer_id, downgrade_anonymous=downgrade_anonymous)
		start, end = month_bounds(year, month)
		sessions = await self._sessions(build_window(resolved, viewer_id, start, end))
		days: dict[str, int] = {}
		for session in sessions:
			key = date_key(session.date)
			days[key] = days.get(key, 0) + 1
		return dto.CalendarResponse(year=year, month=month, scope=resolved.value, days=days)

	async def get_calendar_stats(
		self,
		viewer: Optional[AuthenticatedUser],
		month: date,
		scope: str | None = None,
		filters: dto.CalendarFilters | None = None,
		*,
		downgrade_anonymous: bool = True,
	) -> dto.CalendarStatsResponse:
		viewer_id = viewer.uuid if viewer else None
		resolved = policies.resolve_scope(scope, viewer_id, downgrade_anonymous=downgrade_anonymous)
		start, end = month_bounds(month.year, month.month)
		window = build_window(resolved, viewer_id, start, end, filters=filters, exclude_canceled=True)
		days: dict[str, dto.DayStats] = {}
		for session in await self._sessions(window):
			key = date_key(session.date)
			stats = days.setdefault(key, dto.DayStats(count=0))
			stats.count += 1
			stats.sessions.append(
				dto.DaySessionRef(
					system=session.system or session.campaign_system,
					campaign_title=session.campaign_title,
					campaign_id=session.campaign_id,
				)
			)
		return dto.CalendarStatsResponse(month=f"{month.year:04d}-{month.month:02d}", scope=resolved.value, days=days)

	async def get_sessions_by_day(
		self,
		viewer: Optional[AuthenticatedUser],
		day: date,
		scope: str | None = None,
	) -> dto.DaySessionsResponse:
		return await self._day(viewer, day, scope, filters=None, exclude_canceled=False)

	async def get_sessions_by_day_filtered(
		self,
		viewer: Optional[AuthenticatedUser],
		day: date,
		scope: str | None = None,
		filters: dto.CalendarFilters | None = None,
	) -> dto.DaySessionsResponse:
		return await self._day(viewer, day, scope, filters=filters, exclude_canceled=True)

	async def _day(
		self,
		viewer: Optional[AuthenticatedUser],
		day: date,
		scope: str | None,
		*,
		filters: dto.CalendarFilters | None,
		exclude_canceled: bool,
	) -> dto.DaySessionsResponse:
		viewer_id = viewer.uuid if viewer else None
		resolved = policies.resolve_scope(scope, viewer_id)
		start, end = day_bounds(day)
		window = build_window(resolved, viewer_id, start, end, filters=filters, exclude_canceled=exclude_canceled)
		items = []
		for listing in await self._sessions(window):
			my_role = my_status = None
			if viewer_id is not None:
				participant = await self.repo.get_participant(listing.id, viewer_id)
				my_role = policies.role_in_session(listing, viewer_id, participant)
				my_status = participant.status if participant else None
			items.append(presenters.session_summary(listing, my_role=my_role, my_status=my_status))
		return dto.DaySessionsResponse(date=day, scope=resolved.value, items=items)
