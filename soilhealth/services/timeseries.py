"""Read-only access to the soil sensor time-series store (InfluxDB 3 SQL API)."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

import httpx

from soilhealth.config import Settings, get_settings
from soilhealth.models.readings import SOIL_PARAMETERS, Reading

_logger = logging.getLogger("soilhealth.timeseries")

UNKNOWN_DEVICE = "unknown"


class TimeSeriesError(RuntimeError):
	"""Raised when a time-series query fails."""


class TimeSeriesTimeoutError(TimeSeriesError):
	"""A single query exceeded its time budget."""


class TimeSeriesUnavailableError(TimeSeriesError):
	"""The time-series store could not be reached at all."""


class TimeSeriesSource(Protocol):
	async def query(
		self,
		device_ids: Sequence[str],
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int | None = None,
		location: str | None = None,
	) -> list[Reading]: ...


def safe_value(value: Any) -> float | None:
	"""Coerce a raw column value into a float, or ``None`` when unusable."""
	if value is None or isinstance(value, bool):
		return None
	if isinstance(value, (int, float)):
		number = float(value)
	elif isinstance(value, str):
		try:
			number = float(value)
		except ValueError:
			return None
	else:
		return None
	if math.isnan(number) or math.isinf(number):
		return None
	return number


def parse_timestamp(value: Any) -> datetime | None:
	if value is None:
		return None
	if isinstance(value, datetime):
		parsed = value
	elif isinstance(value, (int, float)):
		# Influx epoch timestamps are nanoseconds.
		parsed = datetime.fromtimestamp(value / 1_000_000_000, tz=UTC)
	elif isinstance(value, str):
		token = value.strip()
		if token.endswith("Z"):
			token = token[:-1] + "+00:00"
		try:
			parsed = datetime.fromisoformat(token)
		except ValueError:
			return None
	else:
		return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=UTC)
	return parsed


def row_to_reading(row: Mapping[str, Any]) -> Reading | None:
	timestamp = parse_timestamp(row.get("time"))
	if timestamp is None:
		return None
	values = {param: safe_value(row.get(param)) for param in SOIL_PARAMETERS}
	if values["ph"] is None:
		values["ph"] = safe_value(row.get("pH"))
	location = row.get("location")
	return Reading(
		time=timestamp,
		device=str(row.get("device") or UNKNOWN_DEVICE),
		location=str(location) if location is not None else None,
		**values,
	)


def _quote(value: str) -> str:
	return "'" + str(value).replace("'", "''") + "'"


def _format_time(value: datetime) -> str:
	if value.tzinfo is None:
		value = value.replace(tzinfo=UTC)
	return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def build_query(
	measurement: str,
	device_ids: Sequence[str] | None = None,
	start: datetime | None = None,
	end: datetime | None = None,
	limit: int | None = None,
	location: str | None = None,
) -> str:
	filters: list[str] = []
	if device_ids:
		filters.append(f"device IN ({', '.join(_quote(d) for d in device_ids)})")
	if location:
		filters.append(f"location = {_quote(location)}")
	if start is not None:
		filters.append(f"time >= {_quote(_format_time(start))}")
	if end is not None:
		filters.append(f"time <= {_quote(_format_time(end))}")

	where = f" WHERE {' AND '.join(filters)}" if filters else ""
	limit_clause = f" LIMIT {int(limit)}" if limit else ""
	table = '"' + measurement.replace('"', '""') + '"'
	return (
		"SELECT time, temperature, moisture, ec, \"pH\" AS ph, nitrogen, phosphorus, "
		f"potassium, salinity, device, location FROM {table}{where} ORDER BY time DESC{limit_clause}"
	)


class InfluxSqlSource:
	"""TimeSeriesSource backed by the InfluxDB 3 ``/api/v3/query_sql`` endpoint."""

	def __init__(self, client: httpx.AsyncClient, settings: Settings | None = None):
		self.client = client
		self.settings = settings or get_settings()

	@classmethod
	def from_settings(cls, settings: Settings | None = None) -> "InfluxSqlSource":
		settings = settings or get_settings()
		headers = {"content-type": "application/json"}
		if settings.influxdb_token:
			headers["authorization"] = f"Bearer {settings.influxdb_token}"
		client = httpx.AsyncClient(
			base_url=settings.influxdb_url,
			headers=headers,
			timeout=settings.query_timeout_seconds,
		)
		return cls(client, settings)

	async def aclose(self) -> None:
		await self.client.aclose()

	async def query(
		self,
		device_ids: Sequence[str],
		start: datetime | None = None,
		end: datetime | None = None,
		limit: int | None = None,
		location: str | None = None,
	) -> list[Reading]:
		sql = build_query(
			self.settings.influxdb_measurement,
			device_ids,
			start=start,
			end=end,
			limit=limit,
			location=location,
		)
		rows = await self._execute(sql)
		readings = [reading for reading in (row_to_reading(row) for row in rows) if reading is not None]
		# Rows arrive newest first; callers always see chronological order.
		readings.reverse()
		return readings

	async def _execute(self, sql: str) -> list[dict[str, Any]]:
		start = time.perf_counter()
		body = {"db": self.settings.influxdb_database, "q": sql, "format": "json"}
		try:
			response = await self.client.post("/api/v3/query_sql", json=body)
			response.raise_for_status()
			payload = response.json()
		except httpx.TimeoutException as exc:
			self._timing(start, False, str(exc))
			raise TimeSeriesTimeoutError(f"time-series query timed out: {exc}") from exc
		except (httpx.ConnectError, httpx.NetworkError) as exc:
			self._timing(start, False, str(exc))
			raise TimeSeriesUnavailableError(f"time-series store unreachable: {exc}") from exc
		except httpx.HTTPStatusError as exc:
			self._timing(start, False, str(exc))
			if exc.response.status_code >= 500:
				raise TimeSeriesUnavailableError(f"time-series store error: {exc.response.status_code}") from exc
			raise TimeSeriesError(f"time-series query rejected: {exc.response.status_code}") from exc
		except ValueError as exc:
			self._timing(start, False, str(exc))
			raise TimeSeriesError(f"time-series response is not JSON: {exc}") from exc

		self._timing(start, True)
		if isinstance(payload, list):
			return [dict(row) for row in payload if isinstance(row, Mapping)]
		if isinstance(payload, Mapping):
			for key in ("rows", "data"):
				if isinstance(payload.get(key), list):
					return [dict(row) for row in payload[key] if isinstance(row, Mapping)]
		return []

	@staticmethod
	def _timing(start: float, ok: bool, error: str | None = None) -> None:
		extra = {
			"operation": "query_sql",
			"duration_ms": round((time.perf_counter() - start) * 1000.0, 2),
			"ok": ok,
			"error": error,
		}
		if ok:
			_logger.info("timeseries_query", extra=extra)
		else:
			_logger.error("timeseries_query_failed", extra=extra)
