"""Daily / weekly aggregation of soil readings and multi-device reconciliation."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, timedelta, tzinfo
from zoneinfo import ZoneInfo

from soilhealth.models.readings import SOIL_PARAMETERS, DailyAverage, Reading, SoilValues, WeeklyAverage

WEEK_LENGTH_DAYS = 7
FARM_LEVEL_DEVICE = "*"


def mean(values: Iterable[float | None]) -> float | None:
	"""Arithmetic mean over non-null values; ``None`` when nothing contributes."""
	present = [value for value in values if value is not None]
	if not present:
		return None
	return sum(present) / len(present)


def mean_of_means(values: Iterable[float | None]) -> float | None:
	"""Cross-device combination rule: unweighted mean of per-device means."""
	return mean(values)


@dataclass
class _Accumulator:
	samples: dict[str, list[float]] = field(default_factory=lambda: defaultdict(list))

	def add(self, reading: SoilValues) -> None:
		for param in SOIL_PARAMETERS:
			value = reading.value(param)
			if value is not None:
				self.samples[param].append(value)

	def is_empty(self) -> bool:
		return not any(self.samples.values())


class DailyAggregator:
	"""Reduce raw readings to one record per (device, local calendar day).

	Readings taken during ``snapshot_hour`` (local time in ``timezone``) are
	preferred as the representative sample of the day.  For each parameter the
	snapshot samples are used when present, otherwise the mean over every
	reading of that day for that parameter.
	"""

	def __init__(self, snapshot_hour: int = 1, timezone: tzinfo | str = "UTC"):
		if not 0 <= snapshot_hour <= 23:
			raise ValueError("snapshot_hour must be within 0..23")
		self.snapshot_hour = snapshot_hour
		self.timezone = ZoneInfo(timezone) if isinstance(timezone, str) else timezone

	def local_date(self, reading: Reading) -> date:
		return reading.time.astimezone(self.timezone).date()

	def aggregate(self, readings: Iterable[Reading]) -> dict[str, list[DailyAverage]]:
		snapshot: dict[tuple[str, date], _Accumulator] = defaultdict(_Accumulator)
		all_day: dict[tuple[str, date], _Accumulator] = defaultdict(_Accumulator)

		for reading in readings:
			local_time = reading.time.astimezone(self.timezone)
			key = (reading.device, local_time.date())
			all_day[key].add(reading)
			if local_time.hour == self.snapshot_hour:
				snapshot[key].add(reading)

		per_device: dict[str, list[DailyAverage]] = defaultdict(list)
		for (device, day), fallback in all_day.items():
			preferred = snapshot.get((device, day))
			use_snapshot = preferred is not None and not preferred.is_empty()
			values: dict[str, float | None] = {}
			for param in SOIL_PARAMETERS:
				samples = preferred.samples.get(param) if use_snapshot else None
				if not samples:
					samples = fallback.samples.get(param)
				values[param] = mean(samples or [])
			per_device[device].append(DailyAverage(date=day, device=device, **values))

		return {device: sorted(days, key=lambda item: item.date) for device, days in sorted(per_device.items())}


def week_bounds(planting_date: date, week_number: int) -> tuple[date, date]:
	start = planting_date + timedelta(days=(week_number - 1) * WEEK_LENGTH_DAYS)
	return start, start + timedelta(days=WEEK_LENGTH_DAYS - 1)


def group_by_week(
	daily: Sequence[DailyAverage],
	planting_date: date,
	today: date,
) -> list[WeeklyAverage]:
	"""Partition a daily series into 7-day windows starting at ``planting_date``.

	Weeks are emitted contiguously (empty weeks carry nulls) until either the
	next week would start after ``today`` or an empty week starts after the
	last available daily record.
	"""
	if not daily:
		return []

	ordered = sorted(daily, key=lambda item: item.date)
	last_day = ordered[-1].date
	device_count = max(item.device_count for item in ordered)
	weeks: list[WeeklyAverage] = []
	week_number = 1

	while True:
		week_start, week_end = week_bounds(planting_date, week_number)
		week_days = [item for item in ordered if week_start <= item.date <= week_end]

		if not week_days and week_start > last_day:
			break

		values = {param: mean(item.value(param) for item in week_days) for param in SOIL_PARAMETERS}
		weeks.append(
			WeeklyAverage(
				week_number=week_number,
				start_date=week_start,
				end_date=week_end,
				data_points=len(week_days),
				device_count=device_count if week_days else 0,
				**values,
			)
		)

		week_number += 1
		if week_start + timedelta(days=WEEK_LENGTH_DAYS) > today:
			break

	return weeks


def reconcile_daily(per_device: Mapping[str, Sequence[DailyAverage]]) -> list[DailyAverage]:
	"""Combine per-device daily series into one farm-level series."""
	by_date: dict[date, list[DailyAverage]] = defaultdict(list)
	for days in per_device.values():
		for item in days:
			by_date[item.date].append(item)

	combined: list[DailyAverage] = []
	for day in sorted(by_date):
		items = by_date[day]
		values = {param: mean_of_means(item.value(param) for item in items) for param in SOIL_PARAMETERS}
		combined.append(DailyAverage(date=day, device=FARM_LEVEL_DEVICE, device_count=len(items), **values))
	return combined


def reconcile_weekly(per_device: Mapping[str, Sequence[WeeklyAverage]]) -> list[WeeklyAverage]:
	"""Combine per-device weekly series, keyed by (week number, start date)."""
	by_week: dict[tuple[int, date], list[WeeklyAverage]] = defaultdict(list)
	for weeks in per_device.values():
		for week in weeks:
			by_week[(week.week_number, week.start_date)].append(week)

	combined: list[WeeklyAverage] = []
	for (week_number, start_date) in sorted(by_week):
		items = by_week[(week_number, start_date)]
		values = {param: mean_of_means(item.value(param) for item in items) for param in SOIL_PARAMETERS}
		combined.append(
			WeeklyAverage(
				week_number=week_number,
				start_date=start_date,
				end_date=items[0].end_date,
				data_points=sum(item.data_points for item in items),
				device_count=sum(1 for item in items if item.data_points > 0),
				**values,
			)
		)
	return combined


def reconcile_values(records: Sequence[SoilValues]) -> dict[str, float | None]:
	"""Per-parameter cross-device mean for point-in-time records."""
	return {param: mean_of_means(record.value(param) for record in records) for param in SOIL_PARAMETERS}
