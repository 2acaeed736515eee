"""Advisory composition: weather cache + rule engine + text rendering + persistence."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, date, datetime
from typing import Any

import structlog

from etsafe.config import get_settings
from etsafe.models.enums import AlertSeverityEnum, AlertTypeEnum, RiskLevelEnum
from etsafe.schemas.advisory import AdvisoryOutcome, AdvisoryResult
from etsafe.schemas.alerts import NewAlert
from etsafe.schemas.farmer import FarmerProfile
from etsafe.services.alert_dispatcher import AlertDispatcher
from etsafe.services.alert_templates import render_alert
from etsafe.services.rule_engine import RuleEngine
from etsafe.services.storage import Storage
from etsafe.services.text_generation import (
	InvalidCredentialsError,
	QuotaExceededError,
	TextGenerationError,
	TextGenerator,
)
from etsafe.services.weather_service import WeatherService

logger = structlog.get_logger("etsafe.advisory")

_SEVERITY_FOR_RISK: dict[RiskLevelEnum, AlertSeverityEnum] = {
	RiskLevelEnum.HIGH: AlertSeverityEnum.HIGH,
	RiskLevelEnum.MEDIUM: AlertSeverityEnum.MEDIUM,
	RiskLevelEnum.LOW: AlertSeverityEnum.LOW,
}


def resolve_coordinates(farmer: FarmerProfile, default: tuple[float, float]) -> tuple[float, float]:
	"""Farmer GPS fix, else the kebele's default point, else ``default``."""
	if farmer.latitude is not None and farmer.longitude is not None:
		return farmer.latitude, farmer.longitude
	if farmer.kebele_latitude is not None and farmer.kebele_longitude is not None:
		return farmer.kebele_latitude, farmer.kebele_longitude
	return default


def build_weather_context(result: AdvisoryResult) -> dict[str, Any]:
	weather = result.weather_summary.model_dump(mode="json")
	risks = result.risk_summary
	weather.update(
		drought_risk=risks.drought_risk.value,
		flood_risk=risks.flood_risk.value,
		heat_risk=risks.heat_risk.value,
	)
	return weather


def render_fallback(result: AdvisoryResult, today: date) -> str:
	"""Plain-text advisory used whenever generated text is unavailable."""
	risks = result.risk_summary
	weather = result.weather_summary
	lines = [
		f"Weather Advisory - {today.isoformat()}",
		"",
		f"Overall Risk: {risks.overall_risk.value}",
		f"Drought Risk: {risks.drought_risk.value}",
		f"Flood Risk: {risks.flood_risk.value}",
		f"Heat Risk: {risks.heat_risk.value}",
		"",
		"Weather Summary:",
		f"- Average Rainfall: {weather.avg_rainfall:.1f}mm",
		f"- Temperature Range: {weather.min_temp:g}°C - {weather.max_temp:g}°C",
		f"- Next 7 Days Rainfall: {weather.next_7_days.rainfall_mm:.1f}mm expected",
		"",
		"Recommendations:",
	]
	if not result.recommendations:
		lines.append("No specific actions required.")
	for index, rec in enumerate(result.recommendations, start=1):
		lines.append(f"{index}. {rec.rule_name}")
		lines.extend(f"   - {action}" for action in rec.actions)
		lines.append(f"   Reason: {rec.explanation}")
		lines.append("")
	return "\n".join(lines)


class AdvisoryService:
	def __init__(
		self,
		storage: Storage,
		weather_service: WeatherService,
		rule_engine: RuleEngine,
		text_generator: TextGenerator | None = None,
		dispatcher: AlertDispatcher | None = None,
		*,
		clock: Callable[[], datetime] | None = None,
	):
		settings = get_settings()
		self.storage = storage
		self.weather_service = weather_service
		self.rule_engine = rule_engine
		self.text_generator = text_generator
		self.dispatcher = dispatcher
		self.default_coordinates = (settings.default_latitude, settings.default_longitude)
		self._clock = clock or (lambda: datetime.now(UTC))

	async def compose(self, farmer_id: uuid.UUID) -> AdvisoryResult:
		farmer = await self.require_farmer(farmer_id)
		return await self.compose_for(farmer)

	async def compose_for(self, farmer: FarmerProfile) -> AdvisoryResult:
		latitude, longitude = resolve_coordinates(farmer, self.default_coordinates)
		weather = await self.weather_service.get_snapshot(str(farmer.kebele_id), latitude, longitude)
		return self.rule_engine.assess(weather, farmer)

	async def require_farmer(self, farmer_id: uuid.UUID) -> FarmerProfile:
		farmer = await self.storage.get_farmer(farmer_id)
		if farmer is None:
			raise LookupError(f"Farmer {farmer_id} not found")
		return farmer

	async def render(self, result: AdvisoryResult, language: str, farmer: FarmerProfile | None = None) -> str:
		if self.text_generator is not None and farmer is not None:
			try:
				return await self.text_generator.generate_advisory_text(
					farmer,
					build_weather_context(result),
					result.recommendations,
					result.risk_summary.overall_risk,
					language,
				)
			except TextGenerationError as exc:
				logger.warning(
					"advisory_text_fallback",
					farmer_id=str(farmer.id),
					language=language,
					error_type=type(exc).__name__,
					error=str(exc),
				)
		return render_fallback(result, self._clock().date())

	async def persist(
		self,
		farmer_id: uuid.UUID,
		result: AdvisoryResult,
		text: str,
		language: str,
	) -> uuid.UUID:
		return await self.storage.create_advisory(farmer_id, result, text, language)

	async def compose_and_persist(self, farmer_id: uuid.UUID, language: str | None = None) -> AdvisoryOutcome:
		farmer = await self.require_farmer(farmer_id)
		target_language = language or farmer.language

		result = await self.compose_for(farmer)
		text = await self.render(result, target_language, farmer)
		advisory_id = await self.persist(farmer.id, result, text, target_language)
		logger.info(
			"advisory_generated",
			farmer_id=str(farmer.id),
			advisory_id=str(advisory_id),
			language=target_language,
			overall_risk=result.risk_summary.overall_risk.value,
			triggered_rules=list(result.triggered_rules),
		)

		sms_alert_id, warning = await self._send_sms_advisory(farmer, result, target_language)
		return AdvisoryOutcome(
			advisory_id=advisory_id,
			language=target_language,
			result=result,
			rendered_text=text,
			sms_alert_id=sms_alert_id,
			warning=warning,
		)

	async def _send_sms_advisory(
		self,
		farmer: FarmerProfile,
		result: AdvisoryResult,
		language: str,
	) -> tuple[uuid.UUID | None, str | None]:
		if not farmer.consent or not farmer.phone:
			return None, None
		if self.text_generator is None or self.dispatcher is None:
			return None, None

		try:
			sms_text = await self.text_generator.generate_sms_text(
				farmer,
				build_weather_context(result),
				result.recommendations,
				result.risk_summary.overall_risk,
				language,
			)
		except (InvalidCredentialsError, QuotaExceededError) as exc:
			logger.error("sms_advisory_skipped", farmer_id=str(farmer.id), error_type=type(exc).__name__, error=str(exc))
			return None, f"Advisory generated successfully, but the SMS could not be sent: {exc}"
		except TextGenerationError as exc:
			logger.warning("sms_advisory_failed", farmer_id=str(farmer.id), error=str(exc))
			return None, None

		_, message = render_alert(AlertTypeEnum.CUSTOM, text=sms_text, farmer_name=farmer.full_name)
		alert_id = await self.storage.create_alert(
			NewAlert(
				farmer_id=farmer.id,
				type=AlertTypeEnum.CUSTOM,
				severity=_SEVERITY_FOR_RISK[result.risk_summary.overall_risk],
				message_text=message,
				schedule_time=self._clock(),
			)
		)
		alert = await self.storage.get_alert(alert_id)
		if alert is None:
			raise LookupError(f"Alert {alert_id} not found after insert")
		outcome = await self.dispatcher.deliver(alert, farmer)
		logger.info("sms_advisory_dispatched", farmer_id=str(farmer.id), alert_id=str(alert_id), outcome=outcome.value)
		return alert_id, None
