"""Pydantic schemas for synthetic forecasts and cached weather snapshots."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator

from etsafe.models.enums import RiskLevelEnum


class DailyForecast(BaseModel):
	model_config = ConfigDict(frozen=True)

	period_start: datetime
	period_end: datetime
	rainfall_prob: float = Field(ge=0, le=100)
	rainfall_mm: float = Field(ge=0)
	temp_max: float
	temp_min: float
	humidity: float | None = None

	@model_validator(mode="after")
	def _validate_temperature_order(self) -> "DailyForecast":
		if self.temp_min > self.temp_max:
			raise ValueError("temp_min must not exceed temp_max")
		return self


class WeatherSummary(BaseModel):
	model_config = ConfigDict(frozen=True)

	avg_rainfall: float
	max_temp: float
	min_temp: float
	drought_risk: RiskLevelEnum
	flood_risk: RiskLevelEnum


class WeatherSnapshot(BaseModel):
	"""A forecast window for one location key, valid over ``[period_start, period_end)``."""

	model_config = ConfigDict(frozen=True)

	location_key: str
	period_start: datetime
	period_end: datetime
	forecasts: tuple[DailyForecast, ...]
	summary: WeatherSummary

	def to_raw_json(self) -> dict:
		return {
			"forecasts": [item.model_dump(mode="json") for item in self.forecasts],
			"summary": self.summary.model_dump(mode="json"),
		}
