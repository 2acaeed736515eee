"""Deterministic advisory rule engine.

Every rule whose condition matches is kept (no first-match-wins), so a
farmer can receive several recommendations at once.  Nothing in this module
performs I/O or reads the clock: identical inputs give identical output.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path

from etsafe.models.enums import RiskLevelEnum
from etsafe.schemas.advisory import (
	AdvisoryResult,
	RainfallOutlook,
	Recommendation,
	RiskSummary,
	WeatherSummaryExcerpt,
)
from etsafe.schemas.farmer import FarmerProfile
from etsafe.schemas.rules import FarmerCondition, Rule, RuleSet, TemperatureRange, WeatherCondition
from etsafe.schemas.weather import DailyForecast, WeatherSnapshot, WeatherSummary

_PRIORITY: dict[RiskLevelEnum, int] = {
	RiskLevelEnum.HIGH: 1,
	RiskLevelEnum.MEDIUM: 2,
	RiskLevelEnum.LOW: 3,
}

OUTLOOK_DAYS = 7


def load_rule_set(path: str | Path) -> RuleSet:
	"""Parse and validate a rule document; raises ``pydantic.ValidationError`` on bad shape."""
	return RuleSet.model_validate_json(Path(path).read_text(encoding="utf-8"))


def _level_matches(
	expected: RiskLevelEnum | tuple[RiskLevelEnum, ...] | None,
	actual: RiskLevelEnum,
) -> bool:
	if expected is None:
		return True
	if isinstance(expected, tuple):
		return actual in expected
	return expected == actual


def _range_matches(bounds: TemperatureRange | None, value: float) -> bool:
	if bounds is None:
		return True
	if bounds.gte is not None and value < bounds.gte:
		return False
	if bounds.lte is not None and value > bounds.lte:
		return False
	return True


def _weather_matches(condition: WeatherCondition | None, summary: WeatherSummary) -> bool:
	if condition is None:
		return True
	return (
		_level_matches(condition.drought_risk, summary.drought_risk)
		and _level_matches(condition.flood_risk, summary.flood_risk)
		and _range_matches(condition.max_temp, summary.max_temp)
	)


def _farmer_matches(condition: FarmerCondition | None, farmer: FarmerProfile) -> bool:
	if condition is None:
		return True
	if condition.water_access is not None and condition.water_access != farmer.water_access:
		return False
	if condition.soil_type is not None and condition.soil_type != farmer.soil_type:
		return False
	if condition.crop_type is not None and condition.crop_type != farmer.crop_type:
		return False
	if condition.farm_type is not None and condition.farm_type != farmer.farm_type:
		return False
	return True


def matches(rule: Rule, weather: WeatherSnapshot, farmer: FarmerProfile) -> bool:
	return _weather_matches(rule.condition.weather, weather.summary) and _farmer_matches(
		rule.condition.farmer, farmer
	)


def evaluate(rules: Iterable[Rule], weather: WeatherSnapshot, farmer: FarmerProfile) -> list[Rule]:
	"""Return every matching rule, in document order."""
	return [rule for rule in rules if matches(rule, weather, farmer)]


def priority_for(risk: RiskLevelEnum) -> int:
	return _PRIORITY[risk]


def build_recommendations(triggered: Sequence[Rule]) -> list[Recommendation]:
	recommendations = [
		Recommendation(
			rule_id=rule.id,
			rule_name=rule.name,
			priority=priority_for(rule.risk),
			actions=rule.recommendations,
			explanation=rule.explanation,
		)
		for rule in triggered
	]
	# sorted() is stable, so equal priorities keep rule order.
	return sorted(recommendations, key=lambda item: item.priority)


def overall_risk(triggered: Sequence[Rule]) -> RiskLevelEnum:
	levels = {rule.risk for rule in triggered}
	if RiskLevelEnum.HIGH in levels:
		return RiskLevelEnum.HIGH
	if RiskLevelEnum.MEDIUM in levels:
		return RiskLevelEnum.MEDIUM
	return RiskLevelEnum.LOW


def classify_heat_risk(max_temp: float) -> RiskLevelEnum:
	if max_temp > 35:
		return RiskLevelEnum.HIGH
	if max_temp > 30:
		return RiskLevelEnum.MEDIUM
	return RiskLevelEnum.LOW


def rainfall_outlook(forecasts: Sequence[DailyForecast], days: int = OUTLOOK_DAYS) -> RainfallOutlook:
	window = forecasts[:days]
	if not window:
		return RainfallOutlook(rainfall_prob=0.0, rainfall_mm=0.0)
	return RainfallOutlook(
		rainfall_prob=sum(day.rainfall_prob for day in window) / len(window),
		rainfall_mm=sum(day.rainfall_mm for day in window),
	)


class RuleEngine:
	"""Holds one immutable, already-validated rule set for the life of the process."""

	def __init__(self, rule_set: RuleSet):
		self._rule_set = rule_set

	@classmethod
	def from_path(cls, path: str | Path) -> RuleEngine:
		return cls(load_rule_set(path))

	@property
	def version(self) -> str:
		return self._rule_set.version

	@property
	def rules(self) -> tuple[Rule, ...]:
		return self._rule_set.rules

	def evaluate(self, weather: WeatherSnapshot, farmer: FarmerProfile) -> list[Rule]:
		return evaluate(self._rule_set.rules, weather, farmer)

	def assess(self, weather: WeatherSnapshot, farmer: FarmerProfile) -> AdvisoryResult:
		triggered = self.evaluate(weather, farmer)
		summary = weather.summary
		return AdvisoryResult(
			risk_summary=RiskSummary(
				overall_risk=overall_risk(triggered),
				drought_risk=summary.drought_risk,
				flood_risk=summary.flood_risk,
				heat_risk=classify_heat_risk(summary.max_temp),
			),
			recommendations=tuple(build_recommendations(triggered)),
			triggered_rules=tuple(rule.id for rule in triggered),
			weather_summary=WeatherSummaryExcerpt(
				avg_rainfall=summary.avg_rainfall,
				max_temp=summary.max_temp,
				min_temp=summary.min_temp,
				next_7_days=rainfall_outlook(weather.forecasts),
			),
		)
