from __future__ import annotations

import pytest

from questboard.scheduling.domain import campaigns_service, sessions_service
from scheduling_fakes import FakePool, FakeRepository, RecordingHooks


@pytest.fixture
def fake_repo() -> FakeRepository:
	return FakeRepository()


@pytest.fixture
def recording_hooks() -> RecordingHooks:
	return RecordingHooks()


@pytest.fixture
def fake_pool(monkeypatch) -> FakePool:
	pool = FakePool()

	async def _get_pool():
		return pool

	monkeypatch.setattr(campaigns_service, "get_pool", _get_pool)
	monkeypatch.setattr(sessions_service, "get_pool", _get_pool)
	return pool
