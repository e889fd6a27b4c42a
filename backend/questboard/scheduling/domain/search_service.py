"""Public discovery of campaigns and sessions."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from questboard.obs import logging as obs_logging
from questboard.scheduling.domain import models, presenters
from questboard.scheduling.domain import repo as repo_module
from questboard.scheduling.domain.exceptions import ValidationFailedError
from questboard.scheduling.schemas import dto
from questboard.settings import settings

logger = obs_logging.get_logger("questboard.scheduling.search")


def clamp_page(limit: Optional[int], offset: Optional[int]) -> tuple[int, int]:
	if limit is None:
		limit = settings.search_default_limit
	return max(1, min(limit, settings.search_max_limit)), max(0, offset or 0)


def _clean(text: Optional[str]) -> Optional[str]:
	if text is None:
		return None
	return text.strip() or None


def _search_item(listing: models.SessionListing) -> dto.SessionSearchItem:
	summary = presenters.session_summary(listing)
	payload = summary.model_dump()
	payload["current_players"] = listing.confirmed_players
	return dto.SessionSearchItem(
		**payload,
		available_slots=max(0, listing.max_players - listing.confirmed_players),
	)


class SearchService:
	def __init__(self, *, repository: repo_module.SchedulingRepository | None = None) -> None:
		self.repo = repository or repo_module.SchedulingRepository()

	async def search_campaigns(
		self,
		*,
		query: Optional[str] = None,
		system: Optional[str] = None,
		limit: Optional[int] = None,
		offset: Optional[int] = None,
		sort_by: str = "newest",
	) -> dto.CampaignSearchResponse:
		if sort_by not in repo_module.CAMPAIGN_SORTS:
			raise ValidationFailedError("invalid_sort")
		limit, offset = clamp_page(limit, offset)
		campaigns, total = await self.repo.search_campaigns(
			text=_clean(query),
			system=_clean(system),
			sort_by=sort_by,
			limit=limit,
			offset=offset,
		)
		return dto.CampaignSearchResponse(
			items=[presenters.campaign_summary(campaign) for campaign in campaigns],
			total=total,
			has_more=offset + len(campaigns) < total,
			limit=limit,
			offset=offset,
		)

	async def search_sessions(
		self,
		*,
		query: Optional[str] = None,
		system: Optional[str] = None,
		date_from: Optional[datetime] = None,
		date_to: Optional[datetime] = None,
		min_price: Optional[float] = None,
		max_price: Optional[float] = None,
		has_available_slots: bool = False,
		one_shot: Optional[bool] = None,
		limit: Optional[int] = None,
		offset: Optional[int] = None,
		sort_by: str = "date",
	) -> dto.SessionSearchResponse:
		"""Search PUBLIC sessions that are still PLANNED or ACTIVE.

		Free capacity depends on CONFIRMED players, so ``has_available_slots``
		is applied to the full match set before paginating; ``total`` and
		``has_more`` then describe the filtered set.
		"""
		if sort_by not in repo_module.SESSION_SORTS:
			raise ValidationFailedError("invalid_sort")
		if min_price is not None and max_price is not None and min_price > max_price:
			raise ValidationFailedError("invalid_price_range")
		date_from, date_to = dto.as_utc(date_from), dto.as_utc(date_to)
		if date_from is not None and date_to is not None and date_from > date_to:
			raise ValidationFailedError("invalid_date_range")
		limit, offset = clamp_page(limit, offset)
		search = repo_module.SessionSearch(
			text=_clean(query),
			system=_clean(system),
			date_from=date_from,
			date_to=date_to,
			min_price=min_price,
			max_price=max_price,
			one_shot=one_shot,
		)
		now = datetime.now(timezone.utc)
		if has_available_slots:
			candidates, _raw_total = await self.repo.search_sessions(
				search,
				now=now,
				sort_by=sort_by,
				limit=None,
				offset=0,
			)
			open_sessions = [item for item in candidates if item.confirmed_players < item.max_players]
			total = len(open_sessions)
			page = open_sessions[offset:offset + limit]
		else:
			page, total = await self.repo.search_sessions(
				search,
				now=now,
				sort_by=sort_by,
				limit=limit,
				offset=offset,
			)
		logger.debug("session_search", extra={"total": total, "filtered": has_available_slots})
		return dto.SessionSearchResponse(
			items=[_search_item(item) for item in page],
			total=total,
			has_more=offset + len(page) < total,
			limit=limit,
			offset=offset,
		)
