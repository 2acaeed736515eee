"""Advisory text generation through the Anthropic Messages API.

Callers only rely on the ``TextGenerator`` protocol and on the error classes
below; prompt wording and model choice are implementation details.  Errors
are split so callers can tell a broken configuration (credentials, quota)
from a transient condition (rate limit) or an unavailable model.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, TypeVar

import httpx
import structlog

from etsafe.config import Settings, get_settings
from etsafe.models.enums import RiskLevelEnum
from etsafe.schemas.advisory import Recommendation
from etsafe.schemas.farmer import FarmerProfile

T = TypeVar("T")

SMS_MAX_CHARS = 160
SMS_SIGNATURE = "ET-SAFE"

LANGUAGE_NAMES: dict[str, str] = {
	"am": "Amharic",
	"or": "Afaan Oromo",
	"ti": "Tigrigna",
	"en": "English",
}

_LANGUAGE_INSTRUCTIONS: dict[str, str] = {
	"am": "Write entirely in Amharic using Ge'ez script.",
	"or": "Write entirely in Afaan Oromo using Latin script.",
	"ti": "Write entirely in Tigrigna using Ge'ez script.",
	"en": "Write in English.",
}

logger = structlog.get_logger("etsafe.text_generation")


class TextGenerationError(RuntimeError):
	"""Base class for every text-generation failure."""


class TextGenerationUnavailableError(TextGenerationError):
	"""No API key is configured."""


class InvalidCredentialsError(TextGenerationError):
	pass


class QuotaExceededError(TextGenerationError):
	pass


class RateLimitedError(TextGenerationError):
	pass


class ModelUnavailableError(TextGenerationError):
	pass


class TextGenerator(Protocol):
	async def generate_advisory_text(
		self,
		farmer: FarmerProfile,
		weather: dict[str, Any],
		recommendations: Sequence[Recommendation],
		overall_risk: RiskLevelEnum,
		language: str,
	) -> str: ...

	async def generate_sms_text(
		self,
		farmer: FarmerProfile,
		weather: dict[str, Any],
		recommendations: Sequence[Recommendation],
		overall_risk: RiskLevelEnum,
		language: str,
	) -> str: ...


async def call_with_backoff(
	operation: Callable[[], Awaitable[T]],
	*,
	max_retries: int = 4,
	initial_delay: float = 2.0,
	max_delay: float = 30.0,
	sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> T:
	"""Run ``operation``, retrying only rate-limit errors with exponential backoff.

	Credential and quota errors are raised immediately; so is anything that is
	not a ``RateLimitedError``.  With the defaults the waits are 2s, 4s, 8s,
	16s before the fifth and final attempt.
	"""
	attempt = 0
	delay = initial_delay
	while True:
		try:
			return await operation()
		except RateLimitedError:
			attempt += 1
			if attempt > max_retries:
				raise
			logger.warning("text_generation_rate_limited", attempt=attempt, max_retries=max_retries, delay_s=delay)
			await sleep(delay)
			delay = min(delay * 2, max_delay)


def language_name(code: str) -> str:
	return LANGUAGE_NAMES.get(code, code)


def truncate_sms(text: str, limit: int = SMS_MAX_CHARS) -> str:
	text = text.strip()
	if len(text) <= limit:
		return text
	return text[: limit - 3] + "..."


def _recommendation_lines(recommendations: Sequence[Recommendation]) -> str:
	blocks: list[str] = []
	for index, rec in enumerate(sorted(recommendations, key=lambda item: item.priority), start=1):
		actions = "\n".join(f"- {action}" for action in rec.actions)
		blocks.append(f"{index}. {rec.rule_name}\n{actions}\nReason: {rec.explanation}")
	return "\n\n".join(blocks)


def build_advisory_prompt(
	farmer: FarmerProfile,
	weather: dict[str, Any],
	recommendations: Sequence[Recommendation],
	overall_risk: RiskLevelEnum,
	language: str,
) -> str:
	name = language_name(language)
	instruction = _LANGUAGE_INSTRUCTIONS.get(language, _LANGUAGE_INSTRUCTIONS["en"])
	outlook = weather.get("next_7_days", {})
	return "\n".join(
		[
			"You are an agricultural advisor for smallholder farmers in Ethiopia.",
			"",
			f"Language: {instruction} The whole message must be in {name}; do not mix languages.",
			"",
			"Farmer:",
			f"- Name: {farmer.full_name}",
			f"- Location: {farmer.location}",
			f"- Crop: {farmer.crop_type or 'Not specified'}",
			f"- Farm type: {farmer.farm_type.value}",
			f"- Soil: {farmer.soil_type or 'Not specified'}",
			f"- Water access: {farmer.water_access.value}",
			f"- Size: {f'{farmer.farm_size_ha} hectares' if farmer.farm_size_ha else 'Not specified'}",
			"",
			"Weather:",
			f"- Average rainfall: {weather['avg_rainfall']:.1f}mm",
			f"- Temperature: {weather['min_temp']}°C - {weather['max_temp']}°C",
			f"- Next 7 days: {outlook.get('rainfall_mm', 0):.1f}mm ({outlook.get('rainfall_prob', 0):.0f}% average chance)",
			f"- Drought risk: {weather['drought_risk']}",
			f"- Flood risk: {weather['flood_risk']}",
			f"- Heat risk: {weather['heat_risk']}",
			"",
			f"Overall risk: {overall_risk.value}",
			"",
			"Recommendations:",
			_recommendation_lines(recommendations) or "None",
			"",
			"Write 200 to 300 words of simple, practical advice. Put urgent items first, greet the farmer",
			f"by name and end with encouragement. Output only {name} text.",
		]
	)


def build_sms_prompt(
	farmer: FarmerProfile,
	weather: dict[str, Any],
	recommendations: Sequence[Recommendation],
	overall_risk: RiskLevelEnum,
	language: str,
) -> str:
	name = language_name(language)
	instruction = _LANGUAGE_INSTRUCTIONS.get(language, _LANGUAGE_INSTRUCTIONS["en"])
	top_actions = [
		rec.actions[0] if rec.actions else rec.rule_name
		for rec in sorted(recommendations, key=lambda item: item.priority)[:2]
	]
	outlook = weather.get("next_7_days", {})
	return "\n".join(
		[
			"Write exactly one SMS.",
			f"Language: {instruction} Write only in {name}.",
			f"Hard limit: {SMS_MAX_CHARS} characters in total.",
			f"Include a greeting, the farmer name {farmer.full_name}, one or two short actions,",
			f"and end exactly with: {SMS_SIGNATURE}",
			"",
			f"Risk: {overall_risk.value}",
			f"Weather next 7 days: {outlook.get('rainfall_mm', 0):.0f}mm, {weather['min_temp']}-{weather['max_temp']}C",
			f"Actions: {' / '.join(top_actions) or 'Continue regular field operations'}",
			"",
			"Return only the SMS text.",
		]
	)


def classify_http_error(status_code: int, body: str) -> TextGenerationError:
	"""Map an Anthropic error response to the matching ``TextGenerationError`` subclass."""
	message = body
	try:
		payload = json.loads(body)
		message = str(payload.get("error", {}).get("message") or body)
	except (json.JSONDecodeError, AttributeError):
		pass
	lowered = message.lower()
	detail = f"HTTP {status_code}: {message}"

	if status_code in (401, 403):
		return InvalidCredentialsError(detail)
	if "quota" in lowered or "credit balance" in lowered:
		return QuotaExceededError(detail)
	if status_code == 429:
		return RateLimitedError(detail)
	if status_code in (404, 503, 529):
		return ModelUnavailableError(detail)
	return TextGenerationError(detail)


class AnthropicTextGenerator:
	def __init__(
		self,
		settings: Settings | None = None,
		*,
		transport: httpx.AsyncBaseTransport | None = None,
		sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
	):
		self.settings = settings or get_settings()
		self._transport = transport
		self._sleep = sleep

	async def generate_advisory_text(
		self,
		farmer: FarmerProfile,
		weather: dict[str, Any],
		recommendations: Sequence[Recommendation],
		overall_risk: RiskLevelEnum,
		language: str,
	) -> str:
		prompt = build_advisory_prompt(farmer, weather, recommendations, overall_risk, language)
		text = await self._generate(prompt, max_tokens=900)
		return text.strip()

	async def generate_sms_text(
		self,
		farmer: FarmerProfile,
		weather: dict[str, Any],
		recommendations: Sequence[Recommendation],
		overall_risk: RiskLevelEnum,
		language: str,
	) -> str:
		prompt = build_sms_prompt(farmer, weather, recommendations, overall_risk, language)
		text = await self._generate(prompt, max_tokens=200, max_retries=3)
		return truncate_sms(text)

	async def _generate(self, prompt: str, *, max_tokens: int, max_retries: int = 4) -> str:
		model = self.settings.anthropic_model
		try:
			return await call_with_backoff(
				lambda: self._complete(prompt, model=model, max_tokens=max_tokens),
				max_retries=max_retries,
				sleep=self._sleep,
			)
		except ModelUnavailableError:
			fallback = self.settings.anthropic_fallback_model
			if not fallback or fallback == model:
				raise
			logger.warning("text_generation_model_fallback", model=model, fallback=fallback)
			return await call_with_backoff(
				lambda: self._complete(prompt, model=fallback, max_tokens=max_tokens),
				max_retries=max_retries,
				sleep=self._sleep,
			)

	async def _complete(self, prompt: str, *, model: str, max_tokens: int) -> str:
		if not self.settings.anthropic_api_key:
			raise TextGenerationUnavailableError("anthropic_api_key is not configured")

		headers = {
			"x-api-key": self.settings.anthropic_api_key,
			"anthropic-version": "2023-06-01",
			"content-type": "application/json",
		}
		body = {
			"model": model,
			"max_tokens": max_tokens,
			"messages": [{"role": "user", "content": prompt}],
		}

		try:
			async with httpx.AsyncClient(
				timeout=self.settings.anthropic_timeout_seconds,
				transport=self._transport,
			) as client:
				response = await client.post(self.settings.anthropic_base_url, headers=headers, json=body)
		except httpx.HTTPError as exc:
			raise TextGenerationError(f"transport failure: {exc}") from exc

		if response.status_code >= 400:
			raise classify_http_error(response.status_code, response.text)

		content = response.json().get("content")
		if not isinstance(content, list) or not content:
			raise TextGenerationError("empty completion")
		text = str(content[0].get("text") or "").strip()
		if not text:
			raise TextGenerationError("empty completion")
		return text


def build_text_generator(settings: Settings | None = None) -> TextGenerator | None:
	settings = settings or get_settings()
	if not settings.anthropic_api_key:
		logger.warning("text_generation_disabled", reason="anthropic_api_key not set")
		return None
	return AnthropicTextGenerator(settings)
