"""Assembles the advisory pipeline for one database session."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession

from etsafe.config import get_settings
from etsafe.services.advisory_service import AdvisoryService
from etsafe.services.alert_dispatcher import AlertDispatcher
from etsafe.services.alert_service import AlertService
from etsafe.services.rule_engine import RuleEngine
from etsafe.services.sms_provider import SmsProvider, get_sms_provider
from etsafe.services.storage import SqlStorage, Storage
from etsafe.services.text_generation import TextGenerator, build_text_generator
from etsafe.services.weather_service import WeatherService


@dataclass(slots=True)
class Pipeline:
	advisories: AdvisoryService
	alerts: AlertService
	dispatcher: AlertDispatcher


def build_pipeline(
	storage: Storage,
	*,
	rule_engine: RuleEngine,
	sms_provider: SmsProvider,
	text_generator: TextGenerator | None = None,
	redis_client: Redis | None = None,
) -> Pipeline:
	weather = WeatherService(storage, redis_client)
	dispatcher = AlertDispatcher(storage, sms_provider)
	advisories = AdvisoryService(storage, weather, rule_engine, text_generator, dispatcher)
	alerts = AlertService(storage, advisories)
	return Pipeline(advisories=advisories, alerts=alerts, dispatcher=dispatcher)


def pipeline_for_request(db: AsyncSession, app_state: Any) -> Pipeline:
	"""Build from collaborators created at start-up, falling back to settings when absent."""
	settings = get_settings()
	rule_engine = getattr(app_state, "rule_engine", None)
	if rule_engine is None:
		rule_engine = RuleEngine.from_path(settings.rules_path)
		app_state.rule_engine = rule_engine
	sms_provider = getattr(app_state, "sms_provider", None)
	if sms_provider is None:
		sms_provider = get_sms_provider(settings)
		app_state.sms_provider = sms_provider
	if not hasattr(app_state, "text_generator"):
		app_state.text_generator = build_text_generator(settings)

	return build_pipeline(
		SqlStorage(db),
		rule_engine=rule_engine,
		sms_provider=sms_provider,
		text_generator=app_state.text_generator,
		redis_client=getattr(app_state, "redis", None),
	)
