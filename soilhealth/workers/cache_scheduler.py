"""Daily crop safety cache wipe, run as a background task inside the API process."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime, time, timedelta
from zoneinfo import ZoneInfo

from soilhealth.config import Settings

_logger = logging.getLogger("soilhealth.cache_scheduler")


def parse_clock_time(value: str) -> time:
	"""Parse ``HH:MM`` into a :class:`datetime.time`."""
	hour_text, _, minute_text = value.strip().partition(":")
	try:
		hour = int(hour_text)
		minute = int(minute_text or 0)
	except ValueError as exc:
		raise ValueError(f"invalid clock time {value!r}, expected HH:MM") from exc
	if not (0 <= hour < 24 and 0 <= minute < 60):
		raise ValueError(f"invalid clock time {value!r}, expected HH:MM")
	return time(hour, minute)


def next_run_at(now: datetime, at: time, timezone: ZoneInfo) -> datetime:
	local_now = now.astimezone(timezone)
	candidate = datetime.combine(local_now.date(), at, tzinfo=timezone)
	if candidate <= local_now:
		candidate = datetime.combine(local_now.date() + timedelta(days=1), at, tzinfo=timezone)
	return candidate


def seconds_until_next_run(now: datetime, at: str, timezone: ZoneInfo) -> float:
	target = next_run_at(now, parse_clock_time(at), timezone)
	return max(0.0, (target - now).total_seconds())


async def run_daily_cache_clear(
	clear: Callable[[], Awaitable[object]],
	settings: Settings,
	*,
	clock: Callable[[], datetime] = lambda: datetime.now(UTC),
	sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
	"""Sleep until the configured local time, clear, repeat until cancelled."""
	timezone = ZoneInfo(settings.cache_clear_timezone)
	while True:
		delay = seconds_until_next_run(clock(), settings.cache_clear_time, timezone)
		_logger.info("cache_clear_scheduled", extra={"in_seconds": round(delay, 1), "at": settings.cache_clear_time})
		await sleep(delay)
		try:
			result = await clear()
		except asyncio.CancelledError:
			raise
		except Exception as exc:
			_logger.exception("cache_clear_failed", extra={"error": str(exc)})
			continue
		_logger.info("cache_clear_completed", extra={"result": getattr(result, "cleared_count", result)})
