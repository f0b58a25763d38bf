"""Crop safety result cache: keyed by farmer, crop and device set, 24h TTL."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from redis.asyncio import Redis

from soilhealth.schemas.soil_health import CropSafetyResponse

DEFAULT_TTL_SECONDS = 60 * 60 * 24
REDIS_KEY_PREFIX = "soilhealth:crop-safety:"

_logger = logging.getLogger("soilhealth.score_cache")

Clock = Callable[[], datetime]


def utc_now() -> datetime:
	return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class CacheKey:
	farmer_id: str
	crop_type: str
	device_ids: tuple[str, ...]

	@classmethod
	def build(cls, farmer_id: str | None, crop_type: str, device_ids: Iterable[str]) -> "CacheKey":
		return cls(
			farmer_id=str(farmer_id) if farmer_id is not None else "",
			crop_type=crop_type.strip().lower(),
			device_ids=tuple(sorted(set(device_ids))),
		)

	def serialize(self) -> str:
		return json.dumps([self.farmer_id, self.crop_type, list(self.device_ids)], separators=(",", ":"))


@dataclass(frozen=True, slots=True)
class CacheEntry:
	value: CropSafetyResponse
	created_at: datetime


class ScoreCache(Protocol):
	async def get(self, key: CacheKey) -> CropSafetyResponse | None: ...

	async def put(self, key: CacheKey, value: CropSafetyResponse) -> None: ...

	async def clear_all(self) -> int: ...


async def get_or_compute(
	cache: ScoreCache,
	key: CacheKey,
	compute: Callable[[], Awaitable[CropSafetyResponse]],
	*,
	store_if: Callable[[CropSafetyResponse], bool] = lambda _value: True,
) -> tuple[CropSafetyResponse, bool]:
	"""Return ``(value, cache_hit)``; computes and stores on a miss."""
	cached = await cache.get(key)
	if cached is not None:
		_logger.info("score_cache_hit", extra={"farmer_id": key.farmer_id, "crop_type": key.crop_type})
		return cached, True

	_logger.info("score_cache_miss", extra={"farmer_id": key.farmer_id, "crop_type": key.crop_type})
	value = await compute()
	if store_if(value):
		await cache.put(key, value)
	return value, False


class InMemoryScoreCache:
	"""Process-local cache; every map operation runs under one asyncio lock."""

	def __init__(self, ttl_seconds: int = DEFAULT_TTL_SECONDS, clock: Clock = utc_now):
		self.ttl = timedelta(seconds=ttl_seconds)
		self.clock = clock
		self._entries: dict[CacheKey, CacheEntry] = {}
		self._lock = asyncio.Lock()

	async def get(self, key: CacheKey) -> CropSafetyResponse | None:
		async with self._lock:
			entry = self._entries.get(key)
			if entry is None:
				return None
			if self.clock() - entry.created_at >= self.ttl:
				del self._entries[key]
				return None
			return entry.value

	async def put(self, key: CacheKey, value: CropSafetyResponse) -> None:
		async with self._lock:
			self._entries[key] = CacheEntry(value=value, created_at=self.clock())

	async def clear_all(self) -> int:
		async with self._lock:
			count = len(self._entries)
			self._entries = {}
		_logger.info("score_cache_cleared", extra={"cleared": count, "backend": "memory"})
		return count

	def __len__(self) -> int:
		return len(self._entries)


class RedisScoreCache:
	"""Shared cache across API workers; Redis enforces the TTL via SETEX."""

	def __init__(self, redis_client: Redis, ttl_seconds: int = DEFAULT_TTL_SECONDS, prefix: str = REDIS_KEY_PREFIX):
		self.redis_client = redis_client
		self.ttl_seconds = ttl_seconds
		self.prefix = prefix

	def _redis_key(self, key: CacheKey) -> str:
		return f"{self.prefix}{key.serialize()}"

	async def get(self, key: CacheKey) -> CropSafetyResponse | None:
		value = await self.redis_client.get(self._redis_key(key))
		if value is None:
			return None
		return CropSafetyResponse.model_validate_json(value)

	async def put(self, key: CacheKey, value: CropSafetyResponse) -> None:
		await self.redis_client.setex(self._redis_key(key), self.ttl_seconds, value.model_dump_json())

	async def clear_all(self) -> int:
		keys = [key async for key in self.redis_client.scan_iter(match=f"{self.prefix}*")]
		count = 0
		if keys:
			# One DEL removes the whole snapshot of keys atomically.
			count = int(await self.redis_client.delete(*keys))
		_logger.info("score_cache_cleared", extra={"cleared": count, "backend": "redis"})
		return count
