"""SMS delivery providers.

Providers only transmit and report.  They never touch the alert row: the
dispatcher applies the resulting state transition, which keeps "success
updates the alert exactly once" in a single place.
"""

from __future__ import annotations

import random
import string
import time
import uuid
from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from etsafe.config import Settings, SmsProviderName, get_settings

logger = structlog.get_logger("etsafe.sms")


@dataclass(frozen=True, slots=True)
class SmsMessage:
	to: str
	message: str
	alert_id: uuid.UUID | None = None


@dataclass(frozen=True, slots=True)
class SmsResult:
	success: bool
	message_id: str | None = None
	error: str | None = None


class SmsProvider(Protocol):
	async def send(self, message: SmsMessage) -> SmsResult: ...


class MockSmsProvider:
	"""Development provider that logs instead of sending and fails at ``failure_rate``."""

	def __init__(self, failure_rate: float = 0.05, rng: random.Random | None = None):
		if not 0.0 <= failure_rate <= 1.0:
			raise ValueError("failure_rate must be between 0 and 1")
		self.failure_rate = failure_rate
		self._rng = rng or random.Random()

	async def send(self, message: SmsMessage) -> SmsResult:
		if self._rng.random() < self.failure_rate:
			logger.error("mock_sms_failed", to=message.to, alert_id=str(message.alert_id))
			return SmsResult(success=False, error="Simulated provider failure")

		suffix = "".join(self._rng.choices(string.ascii_lowercase + string.digits, k=9))
		message_id = f"mock_{int(time.time() * 1000)}_{suffix}"
		logger.info(
			"mock_sms_sent",
			to=message.to,
			preview=message.message[:50],
			message_id=message_id,
			alert_id=str(message.alert_id),
		)
		return SmsResult(success=True, message_id=message_id)


class EthioTelecomProvider:
	def __init__(
		self,
		api_key: str,
		api_url: str,
		*,
		timeout_seconds: float = 10.0,
		transport: httpx.AsyncBaseTransport | None = None,
	):
		self.api_key = api_key
		self.api_url = api_url
		self.timeout_seconds = timeout_seconds
		self._transport = transport

	async def send(self, message: SmsMessage) -> SmsResult:
		headers = {
			"authorization": f"Bearer {self.api_key}",
			"content-type": "application/json",
		}
		body = {"to": message.to, "message": message.message}
		try:
			async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
				response = await client.post(self.api_url, headers=headers, json=body)
				response.raise_for_status()
				payload = response.json()
		except (httpx.HTTPError, ValueError) as exc:
			logger.warning("sms_gateway_error", to=message.to, alert_id=str(message.alert_id), error=str(exc))
			return SmsResult(success=False, error=str(exc))

		message_id = payload.get("messageId") or payload.get("message_id")
		return SmsResult(success=True, message_id=str(message_id) if message_id is not None else None)


def get_sms_provider(settings: Settings | None = None) -> SmsProvider:
	settings = settings or get_settings()
	if settings.sms_provider == SmsProviderName.ethiotelecom:
		if not settings.ethio_telecom_api_key or not settings.ethio_telecom_api_url:
			raise ValueError("EthioTelecom API credentials not configured")
		return EthioTelecomProvider(
			settings.ethio_telecom_api_key,
			settings.ethio_telecom_api_url,
			timeout_seconds=settings.sms_timeout_seconds,
		)
	return MockSmsProvider(failure_rate=settings.mock_sms_failure_rate)
