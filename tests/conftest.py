"""Shared pytest fixtures: fake time-series source, fixed clock, async test client."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from soilhealth.config import Settings
from soilhealth.main import app
from soilhealth.models.readings import Reading
from soilhealth.services.score_cache import InMemoryScoreCache
from soilhealth.services.soil_health_service import SoilHealthService

# 13:00 local time in Bangkok, 2026-03-10.
FIXED_NOW = datetime(2026, 3, 10, 6, 0, tzinfo=UTC)


class FakeSource:
	"""In-memory TimeSeriesSource that honours the query window and limit."""

	def __init__(self, readings: list[Reading] | None = None) -> None:
		self.readings: list[Reading] = list(readings or [])
		self.failures: dict[str, Exception] = {}
		self.calls: list[dict[str, Any]] = []

	def add(self, *readings: Reading) -> None:
		self.readings.extend(readings)

	async def query(
		self,
		device_ids: Sequence[str],
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int | None = None,
		location: str | None = None,
	) -> list[Reading]:
		self.calls.append(
			{"device_ids": list(device_ids), "start": start, "end": end, "limit": limit, "location": location}
		)
		for device_id in device_ids:
			if device_id in self.failures:
				raise self.failures[device_id]

		matched = [
			reading
			for reading in self.readings
			if reading.device in device_ids
			and (location is None or reading.location == location)
			and (start is None or reading.time >= start)
			and (end is None or reading.time <= end)
		]
		matched.sort(key=lambda reading: reading.time)
		if limit:
			matched = matched[-limit:]
		return matched


class FixedClock:
	def __init__(self, now: datetime = FIXED_NOW) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now


@pytest.fixture
def settings() -> Settings:
	return Settings(
		snapshot_timezone="Asia/Bangkok",
		cache_clear_enabled=False,
		query_timeout_seconds=1.0,
	)


@pytest.fixture
def clock() -> FixedClock:
	return FixedClock()


@pytest.fixture
def source() -> FakeSource:
	return FakeSource()


@pytest.fixture
def score_cache(clock: FixedClock) -> InMemoryScoreCache:
	return InMemoryScoreCache(ttl_seconds=60 * 60 * 24, clock=clock)


@pytest.fixture
def service(
	source: FakeSource,
	score_cache: InMemoryScoreCache,
	settings: Settings,
	clock: FixedClock,
) -> SoilHealthService:
	return SoilHealthService(source, score_cache, settings=settings, clock=clock)


@pytest.fixture
async def client(service: SoilHealthService) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and the service pre-wired."""
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan
	app.state.soil_health_service = service

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.state.soil_health_service = None
