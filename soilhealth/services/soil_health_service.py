"""Soil health orchestration: fans out device queries and assembles API payloads."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from soilhealth.config import Settings, get_settings
from soilhealth.models.crops import CropCatalog, get_crop_catalog
from soilhealth.models.readings import Reading, SoilValues, WeeklyAverage
from soilhealth.schemas.soil_health import (
	CacheClearResponse,
	CropSafetyResponse,
	CropSafetyWeek,
	CropTypesResponse,
	CultivationHistoryResponse,
	CurrentCropSafetyResponse,
	CurrentHealthResponse,
	HealthRangesResponse,
	SoilAverages,
	WeeklySummaryResponse,
	WeeklySummaryWeek,
)
from soilhealth.services import health_analysis
from soilhealth.services.aggregation import DailyAggregator, group_by_week, reconcile_values, reconcile_weekly
from soilhealth.services.cultivation import CultivationHistoryCalculator
from soilhealth.services.score_cache import CacheKey, ScoreCache, get_or_compute
from soilhealth.services.scoring import round1, score_crop_safety
from soilhealth.services.timeseries import TimeSeriesSource, TimeSeriesUnavailableError

_logger = logging.getLogger("soilhealth.service")

NO_DATA_MESSAGE = "No sensor data available for the specified period"
NO_CURRENT_DATA_MESSAGE = "No recent sensor data available from any device"
NO_SAFETY_DATA_MESSAGE = "No data available for crop safety calculation"


@dataclass
class DeviceFanOut:
	"""Outcome of one concurrent per-device query round."""

	readings: dict[str, list[Reading]] = field(default_factory=dict)
	failed: dict[str, str] = field(default_factory=dict)

	@property
	def succeeded(self) -> list[str]:
		return list(self.readings)


class SoilHealthService:
	def __init__(
		self,
		source: TimeSeriesSource,
		cache: ScoreCache,
		settings: Settings | None = None,
		catalog: CropCatalog | None = None,
		clock: Callable[[], datetime] | None = None,
	):
		self.source = source
		self.cache = cache
		self.settings = settings or get_settings()
		self.catalog = catalog or get_crop_catalog()
		self.clock = clock or (lambda: datetime.now(UTC))
		self.timezone = ZoneInfo(self.settings.snapshot_timezone)
		self.daily_aggregator = DailyAggregator(self.settings.snapshot_hour, self.timezone)
		self.cultivation = CultivationHistoryCalculator(
			source,
			self.timezone,
			sample_limit=self.settings.cultivation_week_sample_limit,
			query_timeout_seconds=self.settings.query_timeout_seconds,
		)

	def today(self) -> date:
		return self.clock().astimezone(self.timezone).date()

	def _start_of_day(self, day: date) -> datetime:
		return datetime.combine(day, time.min, tzinfo=self.timezone)

	async def fan_out(
		self,
		device_ids: Sequence[str],
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int | None = None,
		location: str | None = None,
	) -> DeviceFanOut:
		"""Query every device concurrently; one device failing never aborts the rest."""
		unique_devices = list(dict.fromkeys(device_ids))

		async def _one(device_id: str) -> list[Reading]:
			return await asyncio.wait_for(
				self.source.query([device_id], start=start, end=end, limit=limit, location=location),
				timeout=self.settings.query_timeout_seconds,
			)

		results = await asyncio.gather(*(_one(device_id) for device_id in unique_devices), return_exceptions=True)

		outcome = DeviceFanOut()
		unavailable: list[BaseException] = []
		for device_id, result in zip(unique_devices, results, strict=True):
			if isinstance(result, BaseException):
				if not isinstance(result, Exception):
					raise result
				outcome.failed[device_id] = str(result) or type(result).__name__
				if isinstance(result, TimeSeriesUnavailableError):
					unavailable.append(result)
				_logger.warning(
					"device_query_failed",
					extra={"device_id": device_id, "error": outcome.failed[device_id]},
				)
				continue
			outcome.readings[device_id] = result

		if unavailable and len(unavailable) == len(unique_devices):
			raise TimeSeriesUnavailableError("time-series store unreachable for every device") from unavailable[0]
		return outcome

	# ── Weekly summary ──────────────────────────────────────────────────────

	def _summary_window(
		self,
		planting_date: date,
		harvest_date: date | None,
		recent_only: bool,
	) -> tuple[datetime, datetime]:
		now = self.clock()
		start_day = planting_date
		if recent_only:
			start_day = max(planting_date, self.today() - timedelta(days=self.settings.crop_safety_lookback_days))
		end = now
		if harvest_date is not None:
			harvest_end = datetime.combine(harvest_date, time.max, tzinfo=self.timezone)
			end = min(harvest_end, now)
		return self._start_of_day(start_day), end

	async def weekly_averages(
		self,
		device_ids: Sequence[str],
		planting_date: date,
		harvest_date: date | None = None,
		location: str | None = None,
		recent_only: bool = False,
	) -> list[WeeklyAverage]:
		start, end = self._summary_window(planting_date, harvest_date, recent_only)
		fan_out = await self.fan_out(device_ids, start=start, end=end, location=location)
		readings = [reading for device_readings in fan_out.readings.values() for reading in device_readings]
		if not readings:
			return []

		today = self.today()
		per_device_daily = self.daily_aggregator.aggregate(readings)
		per_device_weekly = {
			device: group_by_week(days, planting_date, today) for device, days in per_device_daily.items()
		}
		if len(per_device_weekly) == 1:
			return next(iter(per_device_weekly.values()))
		return reconcile_weekly(per_device_weekly)

	async def compute_weekly_summary(
		self,
		farmer_id: str | None,
		device_ids: Sequence[str],
		planting_date: date,
		harvest_date: date | None = None,
		location: str | None = None,
		recent_only: bool = False,
	) -> WeeklySummaryResponse:
		weeks = await self.weekly_averages(device_ids, planting_date, harvest_date, location, recent_only)
		if not weeks:
			return WeeklySummaryResponse(
				success=False,
				message=NO_DATA_MESSAGE,
				farmer_id=farmer_id,
				planting_date=planting_date,
				harvest_date=harvest_date,
				sensor_device_count=len(device_ids),
			)

		summaries = [
			WeeklySummaryWeek(
				week=week.week_number,
				period=f"{week.start_date.isoformat()} to {week.end_date.isoformat()}",
				start_date=week.start_date,
				end_date=week.end_date,
				data_points=week.data_points,
				device_count=week.device_count,
				averages=_rounded_averages(week),
				analysis=health_analysis.analyze_week(week, self.catalog),
			)
			for week in weeks
		]
		return WeeklySummaryResponse(
			success=True,
			farmer_id=farmer_id,
			planting_date=planting_date,
			harvest_date=harvest_date,
			total_weeks=len(summaries),
			sensor_device_count=len(device_ids),
			weeks=summaries,
		)

	# ── Current health ──────────────────────────────────────────────────────

	async def _current_snapshot(
		self,
		device_ids: Sequence[str],
		location: str | None,
	) -> tuple[SoilValues, datetime, int] | None:
		fan_out = await self.fan_out(device_ids, limit=1, location=location)
		latest = [readings[-1] for readings in fan_out.readings.values() if readings]
		if not latest:
			return None
		values = SoilValues(**reconcile_values(latest))
		timestamp = max(reading.time for reading in latest)
		return values, timestamp, len(latest)

	async def compute_current_health(
		self,
		device_ids: Sequence[str],
		location: str | None = None,
	) -> CurrentHealthResponse:
		snapshot = await self._current_snapshot(device_ids, location)
		if snapshot is None:
			return CurrentHealthResponse(success=False, message=NO_CURRENT_DATA_MESSAGE)

		values, timestamp, device_count = snapshot
		issues = health_analysis.find_issues(values, self.catalog)
		return CurrentHealthResponse(
			success=True,
			timestamp=timestamp,
			values=SoilAverages(**values.as_dict()),
			status_label=health_analysis.current_status(issues),
			device_count=device_count,
			issues=[issue.issue for issue in issues],
			flagged_parameters=issues,
		)

	async def compute_current_crop_safety(
		self,
		device_ids: Sequence[str],
		crop_type: str | None = None,
		location: str | None = None,
	) -> CurrentCropSafetyResponse:
		profile = self.catalog.get_profile(crop_type)
		snapshot = await self._current_snapshot(device_ids, location)
		if snapshot is None:
			return CurrentCropSafetyResponse(success=False, message=NO_CURRENT_DATA_MESSAGE, crop_type=profile.name)

		values, timestamp, device_count = snapshot
		return CurrentCropSafetyResponse(
			success=True,
			timestamp=timestamp,
			crop_type=profile.name,
			device_count=device_count,
			safety=score_crop_safety(values, profile),
		)

	# ── Crop safety timeline (cached) ───────────────────────────────────────

	async def compute_crop_safety(
		self,
		farmer_id: str | None,
		device_ids: Sequence[str],
		planting_date: date,
		harvest_date: date | None = None,
		crop_type: str | None = None,
		location: str | None = None,
	) -> CropSafetyResponse:
		profile = self.catalog.get_profile(crop_type)
		key = CacheKey.build(farmer_id, profile.name, device_ids)

		async def _compute() -> CropSafetyResponse:
			return await self._crop_safety_timeline(farmer_id, device_ids, planting_date, harvest_date, profile.name, location)

		result, hit = await get_or_compute(self.cache, key, _compute, store_if=lambda value: value.success)
		if hit:
			return result.model_copy(update={"cached": True})
		return result

	async def _crop_safety_timeline(
		self,
		farmer_id: str | None,
		device_ids: Sequence[str],
		planting_date: date,
		harvest_date: date | None,
		crop_type: str,
		location: str | None,
	) -> CropSafetyResponse:
		weeks = await self.weekly_averages(device_ids, planting_date, harvest_date, location, recent_only=True)
		if not weeks:
			return CropSafetyResponse(
				success=False,
				message=NO_SAFETY_DATA_MESSAGE,
				farmer_id=farmer_id,
				crop_type=crop_type,
				planting_date=planting_date,
				harvest_date=harvest_date,
			)

		profile = self.catalog.get_profile(crop_type)
		timeline = [
			CropSafetyWeek(
				week=week.week_number,
				period=f"{week.start_date.isoformat()} to {week.end_date.isoformat()}",
				start_date=week.start_date,
				end_date=week.end_date,
				data_points=week.data_points,
				safety=score_crop_safety(week, profile),
			)
			for week in weeks
		]
		scores = [entry.safety.score for entry in timeline if entry.safety.score is not None]
		return CropSafetyResponse(
			success=True,
			farmer_id=farmer_id,
			crop_type=crop_type,
			planting_date=planting_date,
			harvest_date=harvest_date,
			average_safety_score=round1(sum(scores) / len(scores)) if scores else None,
			total_weeks=len(timeline),
			weeks=timeline,
			generated_at=self.clock(),
		)

	# ── Cultivation history ─────────────────────────────────────────────────

	async def compute_cultivation_history(
		self,
		device_ids: Sequence[str],
		planting_date: date,
		crop_type: str | None = None,
		max_weeks: int | None = None,
	) -> CultivationHistoryResponse:
		return await self.cultivation.calculate(
			device_ids,
			planting_date,
			self.catalog.get_profile(crop_type),
			now=self.clock(),
			max_weeks=max_weeks or self.settings.cultivation_max_weeks,
		)

	# ── Reference data & cache maintenance ──────────────────────────────────

	def list_crop_types(self) -> CropTypesResponse:
		crop_types = self.catalog.crop_types()
		return CropTypesResponse(crop_types=crop_types, count=len(crop_types))

	def health_ranges(self) -> HealthRangesResponse:
		return HealthRangesResponse(
			ranges={param: reference.model_dump() for param, reference in self.catalog.reference_ranges.items()},
			issues={param: issue.model_dump() for param, issue in self.catalog.reference_issues.items()},
		)

	async def clear_cache(self) -> CacheClearResponse:
		cleared = await self.cache.clear_all()
		return CacheClearResponse(cleared_count=cleared, cleared_at=self.clock())


def _rounded_averages(values: SoilValues) -> SoilAverages:
	return SoilAverages(
		**{param: (round(value, 2) if value is not None else None) for param, value in values.as_dict().items()}
	)
