"""Queue processor that delivers due alerts and advances their delivery state.

State machine (every transition is a compare-and-set on status + attempts)::

    QUEUED --success----------------> SENT
    QUEUED --consent withdrawn------> CANCELLED
    QUEUED --failure, attempts < N--> QUEUED
    QUEUED --failure, attempts >= N-> FAILED

Failed alerts are not retried in-process; the next scheduled batch run picks
them up again while they are still QUEUED. Each alert runs in its own
savepoint, so a storage error on one alert leaves the others' updates intact.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import structlog

from etsafe.config import get_settings
from etsafe.middleware.logging import bind_batch_context
from etsafe.models.enums import AlertStatusEnum
from etsafe.schemas.alerts import AlertRecord, DispatchSummary
from etsafe.schemas.farmer import FarmerProfile
from etsafe.services.sms_provider import SmsMessage, SmsProvider, SmsResult
from etsafe.services.storage import Storage

logger = structlog.get_logger("etsafe.dispatcher")


class DeliveryOutcome(StrEnum):
	sent = "sent"
	failed = "failed"
	cancelled = "cancelled"
	conflict = "conflict"


class AlertDispatcher:
	def __init__(
		self,
		storage: Storage,
		provider: SmsProvider,
		*,
		max_attempts: int | None = None,
		clock: Callable[[], datetime] | None = None,
	):
		settings = get_settings()
		self.storage = storage
		self.provider = provider
		self.max_attempts = max_attempts if max_attempts is not None else settings.max_delivery_attempts
		self.default_limit = settings.alert_batch_limit
		self._clock = clock or (lambda: datetime.now(UTC))

	async def process_queued(self, limit: int | None = None) -> DispatchSummary:
		"""Attempt up to ``limit`` due QUEUED alerts, oldest first, one at a time."""
		limit = limit if limit is not None else self.default_limit
		if limit < 1:
			raise ValueError("limit must be >= 1")
		bind_batch_context("process_queued_alerts", limit=limit)

		due = await self.storage.list_due_alerts(self._clock(), limit)
		summary = DispatchSummary()
		for alert in due:
			try:
				async with self.storage.isolated():
					outcome = await self._process_one(alert)
			except Exception:
				logger.exception("alert_processing_failed", alert_id=str(alert.id))
				continue
			if outcome == DeliveryOutcome.sent:
				summary.sent += 1
			elif outcome == DeliveryOutcome.failed:
				summary.failed += 1

		logger.info("alert_queue_processed", due=len(due), sent=summary.sent, failed=summary.failed)
		return summary

	async def deliver(self, alert: AlertRecord, farmer: FarmerProfile) -> DeliveryOutcome:
		"""Send one QUEUED alert and record the attempt."""
		if not farmer.phone:
			result = SmsResult(success=False, error="farmer has no phone number")
		else:
			message = SmsMessage(to=farmer.phone, message=alert.message_text, alert_id=alert.id)
			try:
				result = await self.provider.send(message)
			except Exception as exc:
				logger.warning("sms_provider_error", alert_id=str(alert.id), error=str(exc))
				result = SmsResult(success=False, error=str(exc))

		attempts = alert.attempts + 1
		changes: dict[str, Any] = {"attempts": attempts, "last_attempt_at": self._clock()}
		if result.success:
			changes["status"] = AlertStatusEnum.SENT
			changes["provider_message_id"] = result.message_id
			outcome = DeliveryOutcome.sent
		else:
			changes["status"] = AlertStatusEnum.FAILED if attempts >= self.max_attempts else AlertStatusEnum.QUEUED
			outcome = DeliveryOutcome.failed

		if not await self._transition(alert, changes):
			return DeliveryOutcome.conflict

		if outcome == DeliveryOutcome.failed:
			logger.warning(
				"alert_delivery_failed",
				alert_id=str(alert.id),
				attempts=attempts,
				status=changes["status"].value,
				error=result.error,
			)
		return outcome

	async def _process_one(self, alert: AlertRecord) -> DeliveryOutcome:
		farmer = await self.storage.get_farmer(alert.farmer_id)
		if farmer is None:
			raise LookupError(f"Farmer {alert.farmer_id} not found for alert {alert.id}")

		if not farmer.consent:
			if not await self._transition(alert, {"status": AlertStatusEnum.CANCELLED}):
				return DeliveryOutcome.conflict
			logger.info("alert_cancelled_no_consent", alert_id=str(alert.id), farmer_id=str(farmer.id))
			return DeliveryOutcome.cancelled

		return await self.deliver(alert, farmer)

	async def _transition(self, alert: AlertRecord, changes: dict[str, Any]) -> bool:
		changed = await self.storage.transition_alert(alert.id, AlertStatusEnum.QUEUED, alert.attempts, changes)
		if not changed:
			logger.warning("alert_transition_conflict", alert_id=str(alert.id), expected_attempts=alert.attempts)
		return changed
