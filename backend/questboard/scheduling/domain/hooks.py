"""Outbound hooks the scheduling core calls after a commit.

Delivery (notifications, email, refunds) lives outside this service; the
default implementation only records that the hook fired.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from questboard.obs import logging as obs_logging
from questboard.obs import metrics as obs_metrics
from questboard.scheduling.domain import models

logger = obs_logging.get_logger("questboard.scheduling.hooks")


class SchedulingHooks(Protocol):
	async def session_canceled(
		self,
		session: models.Session,
		participants: Sequence[models.SessionParticipant],
	) -> None: ...

	async def refund_session(
		self,
		session: models.Session,
		participants: Sequence[models.SessionParticipant],
	) -> None: ...

	async def join_request_submitted(
		self,
		campaign: models.Campaign,
		request: models.JoinRequest,
	) -> None: ...


class LoggingHooks:
	"""Logs and counts every hook call without delivering anything."""

	async def session_canceled(self, session, participants) -> None:
		obs_metrics.inc_hook("session_canceled")
		logger.info(
			"hook_session_canceled",
			extra={"session_id": str(session.id), "recipients": len(participants)},
		)

	async def refund_session(self, session, participants) -> None:
		obs_metrics.inc_hook("refund_session")
		payers = [p for p in participants if p.role == models.SessionRole.PLAYER]
		logger.info(
			"hook_refund_session",
			extra={"session_id": str(session.id), "price": float(session.price), "payers": len(payers)},
		)

	async def join_request_submitted(self, campaign, request) -> None:
		obs_metrics.inc_hook("join_request_submitted")
		logger.info(
			"hook_join_request_submitted",
			extra={"campaign_id": str(campaign.id), "request_id": str(request.id)},
		)
