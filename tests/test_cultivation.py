from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from soilhealth.models.crops import get_crop_profile
from soilhealth.models.enums import CultivationStatusEnum
from soilhealth.models.readings import Reading
from soilhealth.services.cultivation import (
	CultivationHistoryCalculator,
	nutrient_status,
	watering_status,
	weeks_since_planting,
)
from soilhealth.services.timeseries import (
	TimeSeriesError,
	TimeSeriesTimeoutError,
	TimeSeriesUnavailableError,
)

BANGKOK = ZoneInfo("Asia/Bangkok")
NOW = datetime(2026, 3, 10, 6, 0, tzinfo=UTC)
TODAY = date(2026, 3, 10)
RICE = get_crop_profile("rice")


def _readings(**values: float | None) -> list[Reading]:
	return [Reading(time=NOW, device="dev-1", **values)]


class RaisingSource:
	def __init__(self, exc: Exception) -> None:
		self.exc = exc

	async def query(self, device_ids: Sequence[str], **_: object) -> list[Reading]:
		raise self.exc


def test_waterlogged_week_is_critical() -> None:
	readings = [Reading(time=NOW, device="dev-1", moisture=value) for value in (54.0, 55.0, 56.0)]
	assert watering_status(readings, RICE) == CultivationStatusEnum.critical


@pytest.mark.parametrize(
	("moisture", "expected"),
	[
		(30.0, CultivationStatusEnum.appropriate),
		(45.0, CultivationStatusEnum.warning),
		(52.0, CultivationStatusEnum.warning),
		(20.0, CultivationStatusEnum.warning),
		(17.0, CultivationStatusEnum.critical),
	],
)
def test_watering_bands(moisture: float, expected: CultivationStatusEnum) -> None:
	assert watering_status(_readings(moisture=moisture), RICE) == expected


def test_watering_pending_without_moisture() -> None:
	assert watering_status([], RICE) == CultivationStatusEnum.pending
	assert watering_status(_readings(nitrogen=40.0), RICE) == CultivationStatusEnum.pending


def test_nutrient_bands() -> None:
	assert nutrient_status(_readings(nitrogen=40.0, phosphorus=20.0, potassium=150.0), RICE) == (
		CultivationStatusEnum.appropriate
	)
	assert nutrient_status(_readings(nitrogen=20.0, phosphorus=20.0, potassium=150.0), RICE) == (
		CultivationStatusEnum.warning
	)
	assert nutrient_status(_readings(nitrogen=10.0, phosphorus=20.0, potassium=150.0), RICE) == (
		CultivationStatusEnum.critical
	)
	assert nutrient_status(_readings(nitrogen=40.0, phosphorus=20.0, potassium=300.0), RICE) == (
		CultivationStatusEnum.critical
	)


def test_nutrient_pending_when_any_npk_missing() -> None:
	assert nutrient_status(_readings(nitrogen=40.0, phosphorus=20.0), RICE) == CultivationStatusEnum.pending


def test_weeks_since_planting() -> None:
	assert weeks_since_planting(TODAY, TODAY) == 1
	assert weeks_since_planting(TODAY - timedelta(days=6), TODAY) == 1
	assert weeks_since_planting(TODAY - timedelta(days=7), TODAY) == 2
	assert weeks_since_planting(TODAY - timedelta(days=66), TODAY) == 10
	assert weeks_since_planting(TODAY + timedelta(days=10), TODAY) <= 0


@pytest.mark.asyncio
async def test_history_shows_most_recent_weeks_and_has_more(source) -> None:
	planting = TODAY - timedelta(days=66)
	calculator = CultivationHistoryCalculator(source, BANGKOK)

	result = await calculator.calculate(["dev-1"], planting, RICE, now=NOW)

	assert result.success
	assert result.total_weeks == 10
	assert result.displayed_weeks == 8
	assert result.has_more is True
	assert [entry.week for entry in result.entries] == list(range(3, 11))
	assert all(entry.watering_status == CultivationStatusEnum.pending for entry in result.entries)
	assert all(not entry.has_data for entry in result.entries)
	assert len(source.calls) == 8
	assert all(call["limit"] == 50 for call in source.calls)


@pytest.mark.asyncio
async def test_history_uses_week_samples(source) -> None:
	planting = TODAY - timedelta(days=66)
	# Week 10 runs from planting + 63 days.
	sample_time = datetime.combine(planting + timedelta(days=64), datetime.min.time(), tzinfo=BANGKOK)
	source.add(
		Reading(time=sample_time, device="dev-1", moisture=55.0, nitrogen=40.0, phosphorus=20.0, potassium=150.0)
	)
	calculator = CultivationHistoryCalculator(source, BANGKOK)

	result = await calculator.calculate(["dev-1"], planting, RICE, now=NOW, max_weeks=2)

	assert [entry.week for entry in result.entries] == [9, 10]
	latest = result.entries[-1]
	assert latest.has_data
	assert latest.watering_status == CultivationStatusEnum.critical
	assert latest.nutrient_status == CultivationStatusEnum.appropriate
	assert latest.week_end == TODAY
	assert result.entries[0].watering_status == CultivationStatusEnum.pending


@pytest.mark.asyncio
async def test_history_without_devices_fails_softly(source) -> None:
	result = await CultivationHistoryCalculator(source, BANGKOK).calculate([], TODAY, RICE, now=NOW)

	assert result.success is False
	assert result.message == "No sensor devices assigned"
	assert source.calls == []


@pytest.mark.asyncio
async def test_history_for_future_planting_is_empty(source) -> None:
	result = await CultivationHistoryCalculator(source, BANGKOK).calculate(
		["dev-1"], TODAY + timedelta(days=10), RICE, now=NOW
	)

	assert result.success
	assert result.total_weeks == 0
	assert result.entries == []
	assert result.has_more is False


@pytest.mark.asyncio
async def test_history_treats_week_timeouts_as_pending() -> None:
	calculator = CultivationHistoryCalculator(RaisingSource(TimeSeriesTimeoutError("slow")), BANGKOK)

	result = await calculator.calculate(["dev-1"], TODAY - timedelta(days=14), RICE, now=NOW)

	assert result.total_weeks == 3
	assert all(not entry.has_data for entry in result.entries)
	assert all(entry.nutrient_status == CultivationStatusEnum.pending for entry in result.entries)


@pytest.mark.asyncio
async def test_history_propagates_unavailable_store() -> None:
	calculator = CultivationHistoryCalculator(RaisingSource(TimeSeriesUnavailableError("down")), BANGKOK)

	with pytest.raises(TimeSeriesUnavailableError):
		await calculator.calculate(["dev-1"], TODAY - timedelta(days=14), RICE, now=NOW)


@pytest.mark.asyncio
async def test_history_treats_rejected_week_queries_as_pending() -> None:
	calculator = CultivationHistoryCalculator(RaisingSource(TimeSeriesError("400 bad request")), BANGKOK)

	result = await calculator.calculate(["dev-1"], TODAY - timedelta(days=14), RICE, now=NOW)

	assert result.success
	assert result.total_weeks == 3
	assert all(not entry.has_data for entry in result.entries)
	assert all(entry.watering_status == CultivationStatusEnum.pending for entry in result.entries)


class FirstWeekDownSource:
	"""First query fails fast as unreachable; the rest are slow."""

	def __init__(self) -> None:
		self.started = 0
		self.completed = 0
		self.cancelled = 0

	async def query(self, device_ids: Sequence[str], **_: object) -> list[Reading]:
		self.started += 1
		if self.started == 1:
			raise TimeSeriesUnavailableError("down")
		try:
			await asyncio.sleep(0.2)
		except asyncio.CancelledError:
			self.cancelled += 1
			raise
		self.completed += 1
		return []


@pytest.mark.asyncio
async def test_unreachable_store_cancels_remaining_week_queries() -> None:
	source = FirstWeekDownSource()
	calculator = CultivationHistoryCalculator(source, BANGKOK)

	with pytest.raises(TimeSeriesUnavailableError):
		await calculator.calculate(["dev-1"], TODAY - timedelta(days=66), RICE, now=NOW)

	await asyncio.sleep(0.3)
	assert source.started == 8
	assert source.completed == 0
	assert source.cancelled == 7
