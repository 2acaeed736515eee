"""Storage collaborator: the only code in the pipeline that talks SQL.

Services depend on the ``Storage`` protocol; ``SqlStorage`` is the
SQLAlchemy implementation bound to a request- or job-scoped ``AsyncSession``.
SQLAlchemy errors are never caught here: every persistence failure is fatal
to the calling operation. Batch callers wrap each entity in ``isolated()`` so a
failed entity rolls back to its savepoint without aborting the outer transaction.
"""

from __future__ import annotations

import uuid
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from etsafe.database import AFTER_COMMIT_KEY
from etsafe.models.advisory import Advisory, Alert
from etsafe.models.enums import AlertStatusEnum, SubscriptionStatusEnum
from etsafe.models.farmer import Farmer, Subscription
from etsafe.models.weather import WeatherSnapshotRecord
from etsafe.schemas.advisory import AdvisoryResult
from etsafe.schemas.alerts import AlertRecord, NewAlert
from etsafe.schemas.farmer import FarmerProfile
from etsafe.schemas.weather import WeatherSnapshot


AfterCommitCallback = Callable[[], Awaitable[None]]


class Storage(Protocol):
	def isolated(self) -> AbstractAsyncContextManager[None]: ...

	def after_commit(self, callback: AfterCommitCallback) -> None: ...

	async def get_farmer(self, farmer_id: uuid.UUID) -> FarmerProfile | None: ...

	async def has_active_subscription(self, farmer_id: uuid.UUID) -> bool: ...

	async def list_active_farmer_ids(self) -> list[uuid.UUID]: ...

	async def get_latest_snapshot(self, location_key: str, since: datetime) -> WeatherSnapshot | None: ...

	async def save_snapshot(self, snapshot: WeatherSnapshot, latitude: float, longitude: float) -> None: ...

	async def create_advisory(
		self,
		farmer_id: uuid.UUID,
		result: AdvisoryResult,
		rendered_text: str,
		language: str,
	) -> uuid.UUID: ...

	async def create_alert(self, alert: NewAlert) -> uuid.UUID: ...

	async def get_alert(self, alert_id: uuid.UUID) -> AlertRecord | None: ...

	async def list_due_alerts(self, now: datetime, limit: int) -> list[AlertRecord]: ...

	async def transition_alert(
		self,
		alert_id: uuid.UUID,
		expected_status: AlertStatusEnum,
		expected_attempts: int,
		changes: Mapping[str, Any],
	) -> bool: ...


class SqlStorage:
	def __init__(self, db: AsyncSession):
		self.db = db

	@asynccontextmanager
	async def isolated(self) -> AsyncIterator[None]:
		"""Run the block inside a SAVEPOINT; on error only the block's writes and callbacks are dropped."""
		callbacks = self.db.info.setdefault(AFTER_COMMIT_KEY, [])
		mark = len(callbacks)
		try:
			async with self.db.begin_nested():
				yield
		except Exception:
			del callbacks[mark:]
			raise

	def after_commit(self, callback: AfterCommitCallback) -> None:
		self.db.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)

	async def get_farmer(self, farmer_id: uuid.UUID) -> FarmerProfile | None:
		row = await self.db.execute(select(Farmer).where(Farmer.id == farmer_id))
		farmer = row.scalar_one_or_none()
		if farmer is None:
			return None
		return self._to_profile(farmer)

	async def has_active_subscription(self, farmer_id: uuid.UUID) -> bool:
		stmt = (
			select(Subscription.id)
			.where(
				Subscription.farmer_id == farmer_id,
				Subscription.status == SubscriptionStatusEnum.ACTIVE,
			)
			.limit(1)
		)
		row = await self.db.execute(stmt)
		return row.scalar_one_or_none() is not None

	async def list_active_farmer_ids(self) -> list[uuid.UUID]:
		active_subscription = exists(
			select(Subscription.id).where(
				Subscription.farmer_id == Farmer.id,
				Subscription.status == SubscriptionStatusEnum.ACTIVE,
			)
		)
		stmt = (
			select(Farmer.id)
			.where(Farmer.consent.is_(True), active_subscription)
			.order_by(Farmer.created_at.asc())
		)
		rows = await self.db.execute(stmt)
		return list(rows.scalars().all())

	async def get_latest_snapshot(self, location_key: str, since: datetime) -> WeatherSnapshot | None:
		stmt = (
			select(WeatherSnapshotRecord)
			.where(
				WeatherSnapshotRecord.kebele_id == uuid.UUID(location_key),
				WeatherSnapshotRecord.created_at >= since,
			)
			.order_by(WeatherSnapshotRecord.created_at.desc())
			.limit(1)
		)
		row = await self.db.execute(stmt)
		record = row.scalar_one_or_none()
		if record is None:
			return None
		return WeatherSnapshot(
			location_key=location_key,
			period_start=record.period_start,
			period_end=record.period_end,
			forecasts=record.raw_json["forecasts"],
			summary=record.raw_json["summary"],
		)

	async def save_snapshot(self, snapshot: WeatherSnapshot, latitude: float, longitude: float) -> None:
		record = WeatherSnapshotRecord(
			kebele_id=uuid.UUID(snapshot.location_key),
			latitude=latitude,
			longitude=longitude,
			period_start=snapshot.period_start,
			period_end=snapshot.period_end,
			raw_json=snapshot.to_raw_json(),
		)
		self.db.add(record)
		await self.db.flush()

	async def create_advisory(
		self,
		farmer_id: uuid.UUID,
		result: AdvisoryResult,
		rendered_text: str,
		language: str,
	) -> uuid.UUID:
		payload = result.model_dump(mode="json")
		advisory = Advisory(
			farmer_id=farmer_id,
			risk_summary_json=payload["risk_summary"],
			recommendations_json=payload["recommendations"],
			explanation_json={
				"triggered_rules": payload["triggered_rules"],
				"weather_summary": payload["weather_summary"],
			},
			rendered_text=rendered_text,
			language=language,
		)
		self.db.add(advisory)
		await self.db.flush()
		return advisory.id

	async def create_alert(self, alert: NewAlert) -> uuid.UUID:
		row = Alert(
			farmer_id=alert.farmer_id,
			type=alert.type,
			severity=alert.severity,
			message_text=alert.message_text,
			schedule_time=alert.schedule_time,
			status=AlertStatusEnum.QUEUED,
			attempts=0,
		)
		self.db.add(row)
		await self.db.flush()
		return row.id

	async def get_alert(self, alert_id: uuid.UUID) -> AlertRecord | None:
		stmt = select(Alert).where(Alert.id == alert_id).execution_options(populate_existing=True)
		row = await self.db.execute(stmt)
		alert = row.scalar_one_or_none()
		if alert is None:
			return None
		return AlertRecord.model_validate(alert)

	async def list_due_alerts(self, now: datetime, limit: int) -> list[AlertRecord]:
		stmt = (
			select(Alert)
			.where(Alert.status == AlertStatusEnum.QUEUED, Alert.schedule_time <= now)
			.order_by(Alert.created_at.asc(), Alert.id.asc())
			.limit(limit)
			.execution_options(populate_existing=True)
		)
		rows = await self.db.execute(stmt)
		return [AlertRecord.model_validate(alert) for alert in rows.scalars().all()]

	async def transition_alert(
		self,
		alert_id: uuid.UUID,
		expected_status: AlertStatusEnum,
		expected_attempts: int,
		changes: Mapping[str, Any],
	) -> bool:
		stmt = (
			update(Alert)
			.where(
				Alert.id == alert_id,
				Alert.status == expected_status,
				Alert.attempts == expected_attempts,
			)
			.values(**changes)
			.execution_options(synchronize_session=False)
		)
		result = await self.db.execute(stmt)
		return result.rowcount == 1

	@staticmethod
	def _to_profile(farmer: Farmer) -> FarmerProfile:
		kebele = farmer.kebele
		return FarmerProfile(
			id=farmer.id,
			full_name=farmer.full_name,
			phone=farmer.phone,
			kebele_id=farmer.kebele_id,
			farm_type=farmer.farm_type,
			crop_type=farmer.crop_type,
			soil_type=farmer.soil_type,
			water_access=farmer.water_access,
			farm_size_ha=farmer.farm_size_ha,
			latitude=farmer.latitude,
			longitude=farmer.longitude,
			kebele_latitude=kebele.latitude if kebele is not None else None,
			kebele_longitude=kebele.longitude if kebele is not None else None,
			location=kebele.display_location() if kebele is not None else "Ethiopia",
			consent=farmer.consent,
			language=farmer.language,
		)
