from __future__ import annotations

from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from soilhealth.models.readings import DailyAverage, Reading, WeeklyAverage
from soilhealth.services.aggregation import (
	FARM_LEVEL_DEVICE,
	DailyAggregator,
	group_by_week,
	mean,
	reconcile_daily,
	reconcile_values,
	reconcile_weekly,
	week_bounds,
)

BANGKOK = ZoneInfo("Asia/Bangkok")


def _at(day: date, hour: int, minute: int = 0) -> datetime:
	return datetime(day.year, day.month, day.day, hour, minute, tzinfo=BANGKOK)


def _daily(day: date, device: str = "dev-a", **values: float | None) -> DailyAverage:
	return DailyAverage(date=day, device=device, **values)


def test_snapshot_hour_reading_represents_the_day() -> None:
	day = date(2026, 1, 1)
	readings = [
		Reading(time=_at(day, 1, 5), device="D", moisture=25.0),
		Reading(time=_at(day, 14), device="D", moisture=35.0),
		Reading(time=_at(day, 22), device="D", moisture=38.0),
	]

	result = DailyAggregator(snapshot_hour=1, timezone=BANGKOK).aggregate(readings)

	assert list(result) == ["D"]
	assert result["D"][0].date == day
	assert result["D"][0].moisture == 25.0


def test_parameter_without_snapshot_sample_falls_back_to_all_day_mean() -> None:
	day = date(2026, 1, 1)
	readings = [
		Reading(time=_at(day, 1), device="D", moisture=25.0),
		Reading(time=_at(day, 9), device="D", moisture=40.0, nitrogen=30.0),
		Reading(time=_at(day, 17), device="D", nitrogen=40.0),
	]

	daily = DailyAggregator(timezone=BANGKOK).aggregate(readings)["D"][0]

	assert daily.moisture == 25.0
	assert daily.nitrogen == pytest.approx(35.0)
	assert daily.ph is None


def test_local_date_and_hour_follow_configured_timezone() -> None:
	# 18:30 UTC on Jan 1 is 01:30 on Jan 2 in Bangkok.
	readings = [
		Reading(time=datetime(2026, 1, 1, 18, 30, tzinfo=UTC), device="D", moisture=20.0),
		Reading(time=datetime(2026, 1, 2, 5, 0, tzinfo=UTC), device="D", moisture=30.0),
	]

	daily = DailyAggregator(snapshot_hour=1, timezone="Asia/Bangkok").aggregate(readings)["D"]

	assert [item.date for item in daily] == [date(2026, 1, 2)]
	assert daily[0].moisture == 20.0


def test_zero_is_a_value_not_missing_data() -> None:
	day = date(2026, 2, 1)
	readings = [
		Reading(time=_at(day, 10), device="D", moisture=0.0),
		Reading(time=_at(day, 11), device="D", moisture=None),
	]

	daily = DailyAggregator(timezone=BANGKOK).aggregate(readings)["D"][0]

	assert daily.moisture == 0.0
	assert daily.temperature is None


def test_empty_input_gives_empty_output() -> None:
	assert DailyAggregator(timezone=BANGKOK).aggregate([]) == {}
	assert group_by_week([], date(2026, 1, 1), date(2026, 2, 1)) == []
	assert reconcile_daily({}) == []


def test_invalid_snapshot_hour_is_rejected() -> None:
	with pytest.raises(ValueError):
		DailyAggregator(snapshot_hour=24)


def test_aggregation_is_idempotent() -> None:
	day = date(2026, 1, 3)
	readings = [
		Reading(time=_at(day, 1), device="A", moisture=21.0, ph=6.1),
		Reading(time=_at(day, 13), device="B", moisture=33.0),
		Reading(time=_at(day + timedelta(days=1), 8), device="A", moisture=19.0),
	]
	aggregator = DailyAggregator(timezone=BANGKOK)

	assert aggregator.aggregate(readings) == aggregator.aggregate(list(reversed(readings)))


def test_two_devices_reconcile_to_mean_of_means() -> None:
	day = date(2026, 1, 5)
	readings = [
		Reading(time=_at(day, 9), device="A", moisture=18.0),
		Reading(time=_at(day, 15), device="A", moisture=22.0),
		Reading(time=_at(day, 15), device="B", moisture=30.0),
	]

	per_device = DailyAggregator(timezone=BANGKOK).aggregate(readings)
	assert per_device["A"][0].moisture == pytest.approx(20.0)
	assert per_device["B"][0].moisture == pytest.approx(30.0)

	farm = reconcile_daily(per_device)
	assert len(farm) == 1
	assert farm[0].device == FARM_LEVEL_DEVICE
	assert farm[0].device_count == 2
	assert farm[0].moisture == pytest.approx(25.0)


def test_reconcile_ignores_devices_without_the_parameter() -> None:
	day = date(2026, 1, 5)
	farm = reconcile_daily(
		{
			"A": [_daily(day, "A", moisture=20.0, nitrogen=None)],
			"B": [_daily(day, "B", moisture=None, nitrogen=40.0)],
		}
	)

	assert farm[0].moisture == 20.0
	assert farm[0].nitrogen == 40.0
	assert farm[0].ph is None


def test_week_bounds_are_anchored_at_planting() -> None:
	planting = date(2026, 1, 1)
	assert week_bounds(planting, 1) == (date(2026, 1, 1), date(2026, 1, 7))
	assert week_bounds(planting, 3) == (date(2026, 1, 15), date(2026, 1, 21))


def test_weeks_are_contiguous_and_include_empty_gap_weeks() -> None:
	planting = date(2026, 1, 1)
	daily = [
		_daily(date(2026, 1, 1), moisture=20.0),
		_daily(date(2026, 1, 2), moisture=30.0),
		_daily(date(2026, 1, 16), moisture=10.0),
	]

	weeks = group_by_week(daily, planting, today=date(2026, 1, 30))

	assert [week.week_number for week in weeks] == [1, 2, 3]
	assert [week.start_date - planting for week in weeks] == [timedelta(days=7 * i) for i in range(3)]
	assert weeks[0].moisture == pytest.approx(25.0)
	assert weeks[0].data_points == 2
	assert weeks[1].data_points == 0
	assert weeks[1].moisture is None
	assert weeks[2].moisture == 10.0


def test_weeks_stop_after_last_data_when_trailing_weeks_are_empty() -> None:
	planting = date(2026, 1, 1)
	daily = [_daily(date(2026, 1, 1), moisture=20.0), _daily(date(2026, 1, 10), moisture=22.0)]

	weeks = group_by_week(daily, planting, today=date(2026, 3, 1))

	assert len(weeks) == 2
	assert weeks[-1].end_date == date(2026, 1, 14)


def test_weeks_never_start_after_today() -> None:
	planting = date(2026, 1, 1)
	daily = [_daily(date(2026, 1, 1) + timedelta(days=offset), moisture=20.0) for offset in range(20)]

	weeks = group_by_week(daily, planting, today=date(2026, 1, 10))

	assert len(weeks) == 2
	assert all(week.start_date <= date(2026, 1, 10) for week in weeks)


def test_reconcile_weekly_sums_data_points_and_counts_devices() -> None:
	start = date(2026, 1, 1)
	end = date(2026, 1, 7)
	per_device = {
		"A": [WeeklyAverage(week_number=1, start_date=start, end_date=end, data_points=5, moisture=20.0)],
		"B": [
			WeeklyAverage(week_number=1, start_date=start, end_date=end, data_points=7, moisture=30.0),
			WeeklyAverage(
				week_number=2,
				start_date=date(2026, 1, 8),
				end_date=date(2026, 1, 14),
				data_points=3,
				moisture=40.0,
			),
		],
	}

	combined = reconcile_weekly(per_device)

	assert [week.week_number for week in combined] == [1, 2]
	assert combined[0].data_points == 12
	assert combined[0].device_count == 2
	assert combined[0].moisture == pytest.approx(25.0)
	assert combined[1].device_count == 1
	assert combined[1].moisture == 40.0


def test_reconcile_values_and_mean_skip_nulls() -> None:
	assert mean([None, None]) is None
	assert mean([1.0, None, 3.0]) == 2.0
	values = reconcile_values(
		[
			Reading(time=datetime(2026, 1, 1, tzinfo=UTC), device="A", ph=6.0),
			Reading(time=datetime(2026, 1, 1, tzinfo=UTC), device="B", ph=7.0, ec=1.2),
		]
	)
	assert values["ph"] == pytest.approx(6.5)
	assert values["ec"] == 1.2
	assert values["salinity"] is None


def test_device_count_only_counts_devices_with_data_that_week() -> None:
	planting = date(2026, 1, 1)
	today = date(2026, 1, 30)
	per_device = {
		"A": group_by_week(
			[_daily(date(2026, 1, 2), "A", moisture=20.0), _daily(date(2026, 1, 16), "A", moisture=22.0)],
			planting,
			today,
		),
		"B": group_by_week(
			[_daily(date(2026, 1, 3), "B", moisture=30.0), _daily(date(2026, 1, 10), "B", moisture=26.0)],
			planting,
			today,
		),
	}

	assert [week.device_count for week in per_device["A"]] == [1, 0, 1]

	combined = reconcile_weekly(per_device)

	assert [week.week_number for week in combined] == [1, 2, 3]
	assert [week.device_count for week in combined] == [2, 1, 1]
	assert combined[1].moisture == 26.0
	assert combined[1].data_points == 1
