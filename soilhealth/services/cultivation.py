"""Week-by-week watering / nutrient timeline since planting."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import date, datetime, time, tzinfo

from soilhealth.models.crops import CropProfile, ParameterRange
from soilhealth.models.enums import CultivationStatusEnum
from soilhealth.models.readings import Reading
from soilhealth.schemas.soil_health import CultivationHistoryResponse, CultivationWeekEntry
from soilhealth.services.aggregation import WEEK_LENGTH_DAYS, mean, week_bounds
from soilhealth.services.timeseries import TimeSeriesError, TimeSeriesSource, TimeSeriesUnavailableError

_logger = logging.getLogger("soilhealth.cultivation")

DEFAULT_MAX_WEEKS = 8
DEFAULT_WEEK_SAMPLE_LIMIT = 50

WATERING_CRITICAL_LOW = 0.7
WATERING_CRITICAL_HIGH = 1.3
NUTRIENT_CRITICAL_LOW = 0.5
NUTRIENT_CRITICAL_HIGH = 1.5


def weeks_since_planting(planting_date: date, today: date) -> int:
	return (today - planting_date).days // WEEK_LENGTH_DAYS + 1


def _band_status(value: float, optimal: ParameterRange, low_factor: float, high_factor: float) -> CultivationStatusEnum:
	if optimal.contains(value):
		return CultivationStatusEnum.appropriate
	if value < optimal.optimal_min * low_factor or value > optimal.optimal_max * high_factor:
		return CultivationStatusEnum.critical
	return CultivationStatusEnum.warning


def watering_status(readings: Sequence[Reading], profile: CropProfile) -> CultivationStatusEnum:
	avg_moisture = mean(reading.moisture for reading in readings)
	if avg_moisture is None:
		return CultivationStatusEnum.pending
	return _band_status(avg_moisture, profile.range_for("moisture"), WATERING_CRITICAL_LOW, WATERING_CRITICAL_HIGH)


def nutrient_status(readings: Sequence[Reading], profile: CropProfile) -> CultivationStatusEnum:
	averages = {param: mean(reading.value(param) for reading in readings) for param in ("nitrogen", "phosphorus", "potassium")}
	if any(value is None for value in averages.values()):
		return CultivationStatusEnum.pending

	statuses = [
		_band_status(value, profile.range_for(param), NUTRIENT_CRITICAL_LOW, NUTRIENT_CRITICAL_HIGH)
		for param, value in averages.items()
	]
	if all(status is CultivationStatusEnum.appropriate for status in statuses):
		return CultivationStatusEnum.appropriate
	if any(status is CultivationStatusEnum.critical for status in statuses):
		return CultivationStatusEnum.critical
	return CultivationStatusEnum.warning


class CultivationHistoryCalculator:
	"""Builds the recent cultivation timeline from bounded per-week samples."""

	def __init__(
		self,
		source: TimeSeriesSource,
		timezone: tzinfo,
		*,
		sample_limit: int = DEFAULT_WEEK_SAMPLE_LIMIT,
		query_timeout_seconds: float | None = None,
	):
		self.source = source
		self.timezone = timezone
		self.sample_limit = sample_limit
		self.query_timeout_seconds = query_timeout_seconds

	async def calculate(
		self,
		device_ids: Sequence[str],
		planting_date: date,
		profile: CropProfile,
		now: datetime,
		max_weeks: int = DEFAULT_MAX_WEEKS,
	) -> CultivationHistoryResponse:
		if not device_ids:
			return CultivationHistoryResponse(success=False, message="No sensor devices assigned")

		local_now = now.astimezone(self.timezone)
		today = local_now.date()
		total_weeks = weeks_since_planting(planting_date, today)
		if total_weeks <= 0:
			return CultivationHistoryResponse(success=True, total_weeks=0)

		weeks_to_calculate = min(total_weeks, max_weeks)
		first_week = max(1, total_weeks - weeks_to_calculate + 1)
		week_numbers = list(range(first_week, total_weeks + 1))

		try:
			async with asyncio.TaskGroup() as group:
				tasks = [
					group.create_task(self._week_entry(device_ids, planting_date, week, profile, local_now))
					for week in week_numbers
				]
		except* TimeSeriesUnavailableError as failures:
			raise failures.exceptions[0] from None
		entries = [task.result() for task in tasks]
		return CultivationHistoryResponse(
			success=True,
			entries=entries,
			total_weeks=total_weeks,
			displayed_weeks=len(entries),
			has_more=total_weeks > max_weeks,
		)

	async def _week_entry(
		self,
		device_ids: Sequence[str],
		planting_date: date,
		week: int,
		profile: CropProfile,
		local_now: datetime,
	) -> CultivationWeekEntry:
		week_start, week_end = week_bounds(planting_date, week)
		start = datetime.combine(week_start, time.min, tzinfo=self.timezone)
		end = min(datetime.combine(week_end, time.max, tzinfo=self.timezone), local_now)

		query = self.source.query(device_ids, start=start, end=end, limit=self.sample_limit)
		if self.query_timeout_seconds is not None:
			query = asyncio.wait_for(query, timeout=self.query_timeout_seconds)
		try:
			readings = await query
		except TimeSeriesUnavailableError:
			raise
		except (TimeoutError, TimeSeriesError) as exc:
			_logger.warning("cultivation_week_query_failed", extra={"week": week, "error": str(exc) or type(exc).__name__})
			readings = []

		return CultivationWeekEntry(
			week=week,
			week_start=week_start,
			week_end=min(week_end, local_now.date()),
			watering_status=watering_status(readings, profile),
			nutrient_status=nutrient_status(readings, profile),
			has_data=bool(readings),
		)

