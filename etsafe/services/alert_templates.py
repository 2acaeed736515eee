"""SMS message templates, one pure function per alert type."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from etsafe.models.enums import AlertSeverityEnum, AlertTypeEnum

SIGNATURE = " - ET-SAFE"


def _greeting(farmer_name: str | None) -> str:
	return f"{farmer_name}, " if farmer_name else ""


def drought_message(*, days: int, farmer_name: str | None = None) -> str:
	return (
		f"{_greeting(farmer_name)}Drought Alert: No significant rainfall expected for next {days} days. "
		f"Consider water-saving measures and delay planting if possible.{SIGNATURE}"
	)


def heavy_rainfall_message(*, rainfall_mm: float, farmer_name: str | None = None) -> str:
	return (
		f"{_greeting(farmer_name)}Heavy Rain Alert: {rainfall_mm:.1f}mm expected in the next 7 days. "
		f"Prepare drainage and avoid fertilizer application.{SIGNATURE}"
	)


def temperature_extreme_message(*, temp: float, is_hot: bool = True, farmer_name: str | None = None) -> str:
	kind = "Heat" if is_hot else "Cold"
	return (
		f"{_greeting(farmer_name)}{kind} Alert: Extreme temperature {temp:g}°C expected. "
		f"Take protective measures for crops and livestock.{SIGNATURE}"
	)


def planting_reminder_message(*, crop_type: str, farmer_name: str | None = None) -> str:
	return (
		f"{_greeting(farmer_name)}Planting Reminder: Optimal planting window for {crop_type} is approaching. "
		f"Prepare fields and seeds.{SIGNATURE}"
	)


def market_price_message(*, crop_type: str, price: float, farmer_name: str | None = None) -> str:
	return f"{_greeting(farmer_name)}Market Update: {crop_type} price is {price:g} ETB/kg at local market.{SIGNATURE}"


def custom_message(*, text: str, farmer_name: str | None = None) -> str:
	return text


@dataclass(frozen=True, slots=True)
class AlertTemplate:
	type: AlertTypeEnum
	severity: AlertSeverityEnum
	render: Callable[..., str]


TEMPLATES = MappingProxyType(
	{
		AlertTypeEnum.DROUGHT: AlertTemplate(AlertTypeEnum.DROUGHT, AlertSeverityEnum.HIGH, drought_message),
		AlertTypeEnum.HEAVY_RAINFALL: AlertTemplate(
			AlertTypeEnum.HEAVY_RAINFALL, AlertSeverityEnum.MEDIUM, heavy_rainfall_message
		),
		AlertTypeEnum.TEMPERATURE_EXTREME: AlertTemplate(
			AlertTypeEnum.TEMPERATURE_EXTREME, AlertSeverityEnum.MEDIUM, temperature_extreme_message
		),
		AlertTypeEnum.PLANTING_REMINDER: AlertTemplate(
			AlertTypeEnum.PLANTING_REMINDER, AlertSeverityEnum.LOW, planting_reminder_message
		),
		AlertTypeEnum.MARKET_PRICE: AlertTemplate(
			AlertTypeEnum.MARKET_PRICE, AlertSeverityEnum.LOW, market_price_message
		),
		AlertTypeEnum.CUSTOM: AlertTemplate(AlertTypeEnum.CUSTOM, AlertSeverityEnum.LOW, custom_message),
	}
)


def render_alert(alert_type: AlertTypeEnum, **context: Any) -> tuple[AlertSeverityEnum, str]:
	"""Return the template's default severity and the rendered message."""
	template = TEMPLATES[alert_type]
	return template.severity, template.render(**context)
