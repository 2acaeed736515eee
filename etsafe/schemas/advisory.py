"""Pydantic schemas for advisory results and the advisory endpoint."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field

from etsafe.models.enums import RiskLevelEnum


class RiskSummary(BaseModel):
	model_config = ConfigDict(frozen=True)

	overall_risk: RiskLevelEnum
	drought_risk: RiskLevelEnum
	flood_risk: RiskLevelEnum
	heat_risk: RiskLevelEnum


class Recommendation(BaseModel):
	model_config = ConfigDict(frozen=True)

	rule_id: str
	rule_name: str
	priority: int = Field(ge=1, le=3)
	actions: tuple[str, ...] = ()
	explanation: str = ""


class RainfallOutlook(BaseModel):
	model_config = ConfigDict(frozen=True)

	rainfall_prob: float
	rainfall_mm: float


class WeatherSummaryExcerpt(BaseModel):
	model_config = ConfigDict(frozen=True)

	avg_rainfall: float
	max_temp: float
	min_temp: float
	next_7_days: RainfallOutlook


class AdvisoryResult(BaseModel):
	model_config = ConfigDict(frozen=True)

	risk_summary: RiskSummary
	recommendations: tuple[Recommendation, ...] = ()
	triggered_rules: tuple[str, ...] = ()
	weather_summary: WeatherSummaryExcerpt


class AdvisoryOutcome(BaseModel):
	"""What ``compose_and_persist`` hands back to the HTTP layer."""

	advisory_id: uuid.UUID
	language: str
	result: AdvisoryResult
	rendered_text: str
	sms_alert_id: uuid.UUID | None = None
	warning: str | None = None


class AdvisoryResponse(BaseModel):
	id: uuid.UUID
	risk_summary: RiskSummary
	recommendations: list[Recommendation] = Field(default_factory=list)
	language: str
	text_preview: str
	warning: str | None = None
