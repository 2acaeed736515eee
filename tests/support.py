"""Test doubles and factories shared by the test modules; fixtures live in conftest."""

from __future__ import annotations

import copy
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from etsafe.models.enums import AlertStatusEnum, FarmTypeEnum, WaterAccessEnum
from etsafe.schemas.advisory import AdvisoryResult
from etsafe.schemas.alerts import AlertRecord, NewAlert
from etsafe.schemas.farmer import FarmerProfile
from etsafe.schemas.weather import DailyForecast, WeatherSnapshot
from etsafe.services.sms_provider import SmsMessage, SmsResult
from etsafe.services.weather_service import summarize

FIXED_NOW = datetime(2024, 6, 1, 9, 30, tzinfo=UTC)


class NestedTransaction:
	def __init__(self) -> None:
		self.entered = 0
		self.rolled_back = 0

	async def __aenter__(self) -> None:
		self.entered += 1

	async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
		if exc_type is not None:
			self.rolled_back += 1
		return False


class FakeAsyncSession:
	def __init__(self) -> None:
		self.commit = AsyncMock()
		self.rollback = AsyncMock()
		self.close = AsyncMock()
		self.execute = AsyncMock()
		self.add = MagicMock()
		self.flush = AsyncMock()
		self.info: dict[str, Any] = {}
		self.nested = NestedTransaction()

	def begin_nested(self) -> NestedTransaction:
		return self.nested


class MutableClock:
	def __init__(self, now: datetime = FIXED_NOW) -> None:
		self.now = now

	def __call__(self) -> datetime:
		return self.now

	def advance(self, **delta: float) -> None:
		self.now = self.now + timedelta(**delta)


class InMemoryStorage:
	"""Dict-backed ``Storage`` with the same contract as ``SqlStorage``.

	``isolated()`` restores the written state on error like a savepoint, and
	``after_commit`` callbacks only run from ``commit()``. Alert ``created_at``
	strictly increases per insert, matching ``clock_timestamp()``.
	"""

	def __init__(self, clock: Callable[[], datetime]) -> None:
		self._clock = clock
		self.farmers: dict[uuid.UUID, FarmerProfile] = {}
		self.active_subscriptions: set[uuid.UUID] = set()
		self.snapshots: list[tuple[WeatherSnapshot, datetime]] = []
		self.advisories: dict[uuid.UUID, dict[str, Any]] = {}
		self.alerts: dict[uuid.UUID, dict[str, Any]] = {}
		self.snapshot_writes = 0
		self.broken_farmers: set[uuid.UUID] = set()
		self.pending_callbacks: list[Callable[[], Awaitable[None]]] = []
		self._last_alert_created: datetime | None = None

	def add_farmer(self, farmer: FarmerProfile, *, subscribed: bool = True) -> FarmerProfile:
		self.farmers[farmer.id] = farmer
		if subscribed:
			self.active_subscriptions.add(farmer.id)
		return farmer

	@asynccontextmanager
	async def isolated(self) -> AsyncIterator[None]:
		saved = copy.deepcopy((self.snapshots, self.advisories, self.alerts, self.snapshot_writes))
		mark = len(self.pending_callbacks)
		try:
			yield
		except Exception:
			self.snapshots, self.advisories, self.alerts, self.snapshot_writes = saved
			del self.pending_callbacks[mark:]
			raise

	def after_commit(self, callback: Callable[[], Awaitable[None]]) -> None:
		self.pending_callbacks.append(callback)

	async def commit(self) -> None:
		callbacks, self.pending_callbacks = self.pending_callbacks, []
		for callback in callbacks:
			await callback()

	def rollback(self) -> None:
		self.pending_callbacks = []

	async def get_farmer(self, farmer_id: uuid.UUID) -> FarmerProfile | None:
		if farmer_id in self.broken_farmers:
			raise RuntimeError(f"storage failure for farmer {farmer_id}")
		return self.farmers.get(farmer_id)

	async def has_active_subscription(self, farmer_id: uuid.UUID) -> bool:
		return farmer_id in self.active_subscriptions

	async def list_active_farmer_ids(self) -> list[uuid.UUID]:
		return [
			farmer_id
			for farmer_id, farmer in self.farmers.items()
			if farmer.consent and farmer_id in self.active_subscriptions
		]

	async def get_latest_snapshot(self, location_key: str, since: datetime) -> WeatherSnapshot | None:
		candidates = [
			(created_at, snapshot)
			for snapshot, created_at in self.snapshots
			if snapshot.location_key == location_key and created_at >= since
		]
		if not candidates:
			return None
		return max(candidates, key=lambda item: item[0])[1]

	async def save_snapshot(self, snapshot: WeatherSnapshot, latitude: float, longitude: float) -> None:
		self.snapshot_writes += 1
		self.snapshots.append((snapshot, self._clock()))

	async def create_advisory(
		self,
		farmer_id: uuid.UUID,
		result: AdvisoryResult,
		rendered_text: str,
		language: str,
	) -> uuid.UUID:
		advisory_id = uuid.uuid4()
		self.advisories[advisory_id] = {
			"farmer_id": farmer_id,
			"result": result,
			"rendered_text": rendered_text,
			"language": language,
		}
		return advisory_id

	def _next_alert_created_at(self) -> datetime:
		created_at = self._clock()
		if self._last_alert_created is not None and created_at <= self._last_alert_created:
			created_at = self._last_alert_created + timedelta(microseconds=1)
		self._last_alert_created = created_at
		return created_at

	async def create_alert(self, alert: NewAlert) -> uuid.UUID:
		alert_id = uuid.uuid4()
		self.alerts[alert_id] = {
			**alert.model_dump(),
			"id": alert_id,
			"status": AlertStatusEnum.QUEUED,
			"attempts": 0,
			"provider_message_id": None,
			"last_attempt_at": None,
			"created_at": self._next_alert_created_at(),
		}
		return alert_id

	async def get_alert(self, alert_id: uuid.UUID) -> AlertRecord | None:
		row = self.alerts.get(alert_id)
		return AlertRecord.model_validate(row) if row is not None else None

	async def list_due_alerts(self, now: datetime, limit: int) -> list[AlertRecord]:
		due = [
			row
			for row in self.alerts.values()
			if row["status"] == AlertStatusEnum.QUEUED and row["schedule_time"] <= now
		]
		due.sort(key=lambda row: (row["created_at"], row["id"]))
		return [AlertRecord.model_validate(row) for row in due[:limit]]

	async def transition_alert(
		self,
		alert_id: uuid.UUID,
		expected_status: AlertStatusEnum,
		expected_attempts: int,
		changes: Mapping[str, Any],
	) -> bool:
		row = self.alerts.get(alert_id)
		if row is None or row["status"] != expected_status or row["attempts"] != expected_attempts:
			return False
		row.update(changes)
		return True


class FakeRedis:
	def __init__(self) -> None:
		self.store: dict[str, str] = {}
		self.ttls: dict[str, int] = {}
		self.get = AsyncMock(side_effect=self._get)
		self.setex = AsyncMock(side_effect=self._setex)

	async def _get(self, key: str) -> str | None:
		return self.store.get(key)

	async def _setex(self, key: str, ttl: int, value: str) -> bool:
		self.store[key] = value
		self.ttls[key] = ttl
		return True


class RecordingSmsProvider:
	"""Replays scripted results and records every message it was asked to send."""

	def __init__(self, results: Sequence[SmsResult | Exception] | None = None) -> None:
		self.results = list(results or [])
		self.sent: list[SmsMessage] = []

	async def send(self, message: SmsMessage) -> SmsResult:
		self.sent.append(message)
		if not self.results:
			return SmsResult(success=True, message_id=f"msg-{len(self.sent)}")
		result = self.results.pop(0)
		if isinstance(result, Exception):
			raise result
		return result


def make_farmer(**overrides: Any) -> FarmerProfile:
	values: dict[str, Any] = {
		"id": uuid.uuid4(),
		"full_name": "Abebe Kebede",
		"phone": "+251911000000",
		"kebele_id": uuid.uuid4(),
		"farm_type": FarmTypeEnum.CROP,
		"crop_type": "MAIZE",
		"soil_type": "LOAM",
		"water_access": WaterAccessEnum.RAIN_FED,
		"farm_size_ha": 1.5,
		"latitude": 9.03,
		"longitude": 38.74,
		"location": "Kebele 01, Bahir Dar Zuria, West Gojjam",
		"consent": True,
		"language": "am",
	}
	values.update(overrides)
	return FarmerProfile(**values)


def make_snapshot(
	*,
	rainfall_mm: float | Sequence[float] = 0.0,
	temp_max: float = 28.0,
	rainfall_prob: float = 40.0,
	days: int = 14,
	location_key: str | None = None,
	start: datetime = FIXED_NOW,
) -> WeatherSnapshot:
	"""Hand-built snapshot; ``rainfall_mm`` is either one value for every day or one per day."""
	daily_mm = [float(rainfall_mm)] * days if isinstance(rainfall_mm, (int, float)) else list(rainfall_mm)
	midnight = start.replace(hour=0, minute=0, second=0, microsecond=0)
	forecasts = [
		DailyForecast(
			period_start=midnight + timedelta(days=index),
			period_end=midnight + timedelta(days=index + 1),
			rainfall_prob=rainfall_prob,
			rainfall_mm=mm,
			temp_max=temp_max,
			temp_min=temp_max - 10,
			humidity=60,
		)
		for index, mm in enumerate(daily_mm)
	]
	return WeatherSnapshot(
		location_key=location_key or str(uuid.uuid4()),
		period_start=start,
		period_end=start + timedelta(days=len(forecasts)),
		forecasts=tuple(forecasts),
		summary=summarize(forecasts),
	)
