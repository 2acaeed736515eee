"""Weather snapshot cache: synthetic per-location forecasts with a freshness window.

Forecasts are generated deterministically from the coordinates, so two
cache misses for the same location produce the same figures.  The database
row is the cache of record; Redis, when configured, is a read-through
accelerator in front of it. Redis is only populated once the request's
transaction has committed, so it never serves a snapshot the database lost.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from functools import partial

import structlog
from redis.asyncio import Redis

from etsafe.config import get_settings
from etsafe.models.enums import RiskLevelEnum
from etsafe.schemas.weather import DailyForecast, WeatherSnapshot, WeatherSummary
from etsafe.services.storage import Storage

SNAPSHOT_CACHE_PREFIX = "weather:snapshot"
HEAVY_RAIN_DAY_MM = 15.0

logger = structlog.get_logger("etsafe.weather")


def location_seed(latitude: float, longitude: float) -> int:
	return math.floor((latitude + longitude) * 1000) % 1000


def classify_drought_risk(avg_rainfall: float) -> RiskLevelEnum:
	if avg_rainfall < 5:
		return RiskLevelEnum.HIGH
	if avg_rainfall < 10:
		return RiskLevelEnum.MEDIUM
	return RiskLevelEnum.LOW


def classify_flood_risk(forecasts: Sequence[DailyForecast]) -> RiskLevelEnum:
	heavy_days = sum(1 for day in forecasts if day.rainfall_mm > HEAVY_RAIN_DAY_MM)
	if heavy_days > 3:
		return RiskLevelEnum.HIGH
	if heavy_days > 1:
		return RiskLevelEnum.MEDIUM
	return RiskLevelEnum.LOW


def summarize(forecasts: Sequence[DailyForecast]) -> WeatherSummary:
	if not forecasts:
		raise ValueError("cannot summarize an empty forecast")
	avg_rainfall = sum(day.rainfall_mm for day in forecasts) / len(forecasts)
	return WeatherSummary(
		avg_rainfall=avg_rainfall,
		max_temp=max(day.temp_max for day in forecasts),
		min_temp=min(day.temp_min for day in forecasts),
		drought_risk=classify_drought_risk(avg_rainfall),
		flood_risk=classify_flood_risk(forecasts),
	)


def generate_forecast(
	location_key: str,
	latitude: float,
	longitude: float,
	*,
	days: int = 14,
	now: datetime | None = None,
) -> WeatherSnapshot:
	"""Synthesize a ``days``-long forecast whose values depend only on the coordinates."""
	if days < 1:
		raise ValueError("days must be >= 1")
	now = now or datetime.now(UTC)
	seed = location_seed(latitude, longitude)
	midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)

	forecasts: list[DailyForecast] = []
	for index in range(days):
		day_seed = (seed + index * 7) % 100
		rainfall_prob = max(0, min(100, 30 + day_seed % 40))
		rainfall_mm = day_seed % 20 if rainfall_prob > 50 else 0
		temp_max = 25 + day_seed % 10
		day_start = midnight + timedelta(days=index)
		forecasts.append(
			DailyForecast(
				period_start=day_start,
				period_end=day_start + timedelta(days=1),
				rainfall_prob=rainfall_prob,
				rainfall_mm=rainfall_mm,
				temp_max=temp_max,
				temp_min=temp_max - 8 - day_seed % 5,
				humidity=50 + day_seed % 30,
			)
		)

	return WeatherSnapshot(
		location_key=location_key,
		period_start=now,
		period_end=now + timedelta(days=days),
		forecasts=tuple(forecasts),
		summary=summarize(forecasts),
	)


class WeatherService:
	"""``get_snapshot`` returns the live snapshot for a location, creating one on a miss."""

	def __init__(
		self,
		storage: Storage,
		redis_client: Redis | None = None,
		*,
		ttl_seconds: int | None = None,
		forecast_days: int | None = None,
		clock: Callable[[], datetime] | None = None,
	):
		settings = get_settings()
		self.storage = storage
		self.redis_client = redis_client
		self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.weather_snapshot_ttl_seconds
		self.forecast_days = forecast_days if forecast_days is not None else settings.forecast_days
		self._clock = clock or (lambda: datetime.now(UTC))

	async def get_snapshot(self, location_key: str, latitude: float, longitude: float) -> WeatherSnapshot:
		now = self._clock()

		cached = await self._read_cached(location_key)
		if cached is not None:
			return cached

		existing = await self.storage.get_latest_snapshot(location_key, now - timedelta(seconds=self.ttl_seconds))
		if existing is not None:
			logger.debug("weather_snapshot_hit", location_key=location_key)
			self._cache_after_commit(existing, now)
			return existing

		snapshot = generate_forecast(
			location_key,
			latitude,
			longitude,
			days=self.forecast_days,
			now=now,
		)
		await self.storage.save_snapshot(snapshot, latitude, longitude)
		logger.info(
			"weather_snapshot_created",
			location_key=location_key,
			drought_risk=snapshot.summary.drought_risk.value,
			flood_risk=snapshot.summary.flood_risk.value,
		)
		self._cache_after_commit(snapshot, now)
		return snapshot

	@staticmethod
	def _cache_key(location_key: str) -> str:
		return f"{SNAPSHOT_CACHE_PREFIX}:{location_key}"

	async def _read_cached(self, location_key: str) -> WeatherSnapshot | None:
		if self.redis_client is None:
			return None
		value = await self.redis_client.get(self._cache_key(location_key))
		if value is None:
			return None
		return WeatherSnapshot.model_validate_json(value)

	def _cache_after_commit(self, snapshot: WeatherSnapshot, now: datetime) -> None:
		if self.redis_client is not None:
			self.storage.after_commit(partial(self._write_cached, snapshot, now))

	async def _write_cached(self, snapshot: WeatherSnapshot, now: datetime) -> None:
		if self.redis_client is None:
			return
		# Expire together with the database freshness window, not a fresh full TTL.
		age = (now - snapshot.period_start).total_seconds()
		remaining = int(self.ttl_seconds - age)
		if remaining <= 0:
			return
		await self.redis_client.setex(self._cache_key(snapshot.location_key), remaining, snapshot.model_dump_json())
