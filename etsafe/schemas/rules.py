"""Schema of the declarative advisory rule document.

The document is versioned JSON::

    {
        "version": "2024.1",
        "rules": [
            {
                "id": "drought-rainfed",
                "name": "Drought risk for rain-fed farms",
                "condition": {
                    "weather": {"droughtRisk": ["MEDIUM", "HIGH"]},
                    "farmer": {"waterAccess": "RAIN_FED"}
                },
                "risk": "HIGH",
                "recommendations": ["Delay planting until rains establish"],
                "explanation": "Rain-fed plots depend entirely on rainfall."
            }
        ]
    }

Condition blocks reject unknown keys, so a typo in a rule file fails at load
time instead of silently turning into a wildcard.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from etsafe.models.enums import FarmTypeEnum, RiskLevelEnum, WaterAccessEnum


class _RuleModel(BaseModel):
	model_config = ConfigDict(
		frozen=True,
		extra="forbid",
		alias_generator=to_camel,
		populate_by_name=True,
	)


class TemperatureRange(_RuleModel):
	gte: float | None = None
	lte: float | None = None

	@model_validator(mode="after")
	def _validate_bounds(self) -> "TemperatureRange":
		if self.gte is not None and self.lte is not None and self.gte > self.lte:
			raise ValueError("maxTemp.gte must not exceed maxTemp.lte")
		return self


class WeatherCondition(_RuleModel):
	drought_risk: RiskLevelEnum | tuple[RiskLevelEnum, ...] | None = None
	flood_risk: RiskLevelEnum | tuple[RiskLevelEnum, ...] | None = None
	max_temp: TemperatureRange | None = None


class FarmerCondition(_RuleModel):
	water_access: WaterAccessEnum | None = None
	soil_type: str | None = None
	crop_type: str | None = None
	farm_type: FarmTypeEnum | None = None


class RuleCondition(_RuleModel):
	weather: WeatherCondition | None = None
	farmer: FarmerCondition | None = None


class Rule(_RuleModel):
	id: str = Field(min_length=1)
	name: str = Field(min_length=1)
	condition: RuleCondition = Field(default_factory=RuleCondition)
	risk: RiskLevelEnum
	recommendations: tuple[str, ...] = ()
	explanation: str = ""


class RuleSet(_RuleModel):
	version: str = Field(min_length=1)
	rules: tuple[Rule, ...] = ()

	@model_validator(mode="after")
	def _validate_unique_ids(self) -> "RuleSet":
		seen: set[str] = set()
		for rule in self.rules:
			if rule.id in seen:
				raise ValueError(f"duplicate rule id {rule.id!r}")
			seen.add(rule.id)
		return self
