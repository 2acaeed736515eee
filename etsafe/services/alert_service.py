"""Threshold-based alert generation from a farmer's current advisory."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from etsafe.middleware.logging import bind_batch_context
from etsafe.models.enums import AlertSeverityEnum, AlertTypeEnum, RiskLevelEnum
from etsafe.schemas.advisory import AdvisoryResult
from etsafe.schemas.alerts import GenerationSummary, NewAlert
from etsafe.services.advisory_service import AdvisoryService
from etsafe.services.alert_templates import render_alert
from etsafe.services.storage import Storage

HEAVY_RAINFALL_THRESHOLD_MM = 20.0
DROUGHT_OUTLOOK_DAYS = 14

logger = structlog.get_logger("etsafe.alerts")


def plan_alerts(
	result: AdvisoryResult,
	farmer_name: str | None = None,
) -> list[tuple[AlertTypeEnum, AlertSeverityEnum, str]]:
	"""Apply the fixed alert thresholds; each one is checked independently."""
	risks = result.risk_summary
	weather = result.weather_summary
	planned: list[tuple[AlertTypeEnum, AlertSeverityEnum, str]] = []

	if risks.drought_risk == RiskLevelEnum.HIGH:
		severity, message = render_alert(
			AlertTypeEnum.DROUGHT,
			days=DROUGHT_OUTLOOK_DAYS,
			farmer_name=farmer_name,
		)
		planned.append((AlertTypeEnum.DROUGHT, severity, message))

	rainfall_mm = weather.next_7_days.rainfall_mm
	if risks.flood_risk in (RiskLevelEnum.HIGH, RiskLevelEnum.MEDIUM) and rainfall_mm > HEAVY_RAINFALL_THRESHOLD_MM:
		severity, message = render_alert(
			AlertTypeEnum.HEAVY_RAINFALL,
			rainfall_mm=rainfall_mm,
			farmer_name=farmer_name,
		)
		planned.append((AlertTypeEnum.HEAVY_RAINFALL, severity, message))

	if risks.heat_risk == RiskLevelEnum.HIGH:
		severity, message = render_alert(
			AlertTypeEnum.TEMPERATURE_EXTREME,
			temp=weather.max_temp,
			is_hot=True,
			farmer_name=farmer_name,
		)
		planned.append((AlertTypeEnum.TEMPERATURE_EXTREME, severity, message))

	return planned


class AlertService:
	def __init__(
		self,
		storage: Storage,
		advisory_service: AdvisoryService,
		*,
		clock: Callable[[], datetime] | None = None,
	):
		self.storage = storage
		self.advisory_service = advisory_service
		self._clock = clock or (lambda: datetime.now(UTC))

	async def generate_for_farmer(self, farmer_id: uuid.UUID) -> list[uuid.UUID]:
		farmer = await self.advisory_service.require_farmer(farmer_id)
		if not farmer.consent:
			logger.debug("alerts_skipped_no_consent", farmer_id=str(farmer_id))
			return []
		if not await self.storage.has_active_subscription(farmer_id):
			logger.debug("alerts_skipped_no_subscription", farmer_id=str(farmer_id))
			return []

		result = await self.advisory_service.compose_for(farmer)
		now = self._clock()
		alert_ids: list[uuid.UUID] = []
		for alert_type, severity, message in plan_alerts(result, farmer.full_name):
			alert_id = await self.storage.create_alert(
				NewAlert(
					farmer_id=farmer.id,
					type=alert_type,
					severity=severity,
					message_text=message,
					schedule_time=now,
				)
			)
			alert_ids.append(alert_id)

		if alert_ids:
			logger.info("alerts_queued", farmer_id=str(farmer_id), count=len(alert_ids))
		return alert_ids

	async def generate_for_all_active_farmers(self) -> GenerationSummary:
		bind_batch_context("generate_alerts_for_all_active_farmers")
		farmer_ids = await self.storage.list_active_farmer_ids()
		summary = GenerationSummary()
		failures = 0
		for farmer_id in farmer_ids:
			try:
				async with self.storage.isolated():
					alert_ids = await self.generate_for_farmer(farmer_id)
			except Exception:
				failures += 1
				logger.exception("alert_generation_failed", farmer_id=str(farmer_id))
				continue
			summary.generated += len(alert_ids)

		logger.info("alert_generation_completed", farmers=len(farmer_ids), generated=summary.generated, failures=failures)
		return summary
