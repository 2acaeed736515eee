from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from etsafe.models.enums import AlertSeverityEnum, AlertStatusEnum, AlertTypeEnum
from etsafe.schemas.alerts import NewAlert
from etsafe.services.alert_dispatcher import AlertDispatcher, DeliveryOutcome
from etsafe.services.sms_provider import SmsMessage, SmsResult

from support import InMemoryStorage, MutableClock, RecordingSmsProvider, make_farmer

FAILURE = SmsResult(success=False, error="gateway rejected message")


async def _queue(storage: InMemoryStorage, farmer_id: uuid.UUID, schedule_time, text: str = "Alert") -> uuid.UUID:
	return await storage.create_alert(
		NewAlert(
			farmer_id=farmer_id,
			type=AlertTypeEnum.DROUGHT,
			severity=AlertSeverityEnum.HIGH,
			message_text=text,
			schedule_time=schedule_time,
		)
	)


def _dispatcher(storage: InMemoryStorage, clock: MutableClock, provider: RecordingSmsProvider) -> AlertDispatcher:
	return AlertDispatcher(storage, provider, max_attempts=3, clock=clock)


@pytest.mark.asyncio
async def test_due_alert_is_sent_once(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now)
	provider = RecordingSmsProvider([SmsResult(success=True, message_id="gw-42")])

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert (summary.sent, summary.failed) == (1, 0)
	row = storage.alerts[alert_id]
	assert row["status"] == AlertStatusEnum.SENT
	assert row["attempts"] == 1
	assert row["provider_message_id"] == "gw-42"
	assert row["last_attempt_at"] == clock.now
	assert provider.sent == [SmsMessage(to=farmer.phone, message="Alert", alert_id=alert_id)]

	again = await _dispatcher(storage, clock, provider).process_queued(10)
	assert (again.sent, again.failed) == (0, 0)
	assert len(provider.sent) == 1


@pytest.mark.asyncio
async def test_future_alerts_are_not_due(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now + timedelta(minutes=5))
	provider = RecordingSmsProvider()

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert (summary.sent, summary.failed) == (0, 0)
	assert storage.alerts[alert_id]["status"] == AlertStatusEnum.QUEUED
	assert provider.sent == []


@pytest.mark.asyncio
async def test_limit_takes_oldest_first(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	first = await _queue(storage, farmer.id, clock.now, "first")
	clock.advance(seconds=1)
	second = await _queue(storage, farmer.id, clock.now, "second")
	provider = RecordingSmsProvider()

	summary = await _dispatcher(storage, clock, provider).process_queued(1)

	assert summary.sent == 1
	assert storage.alerts[first]["status"] == AlertStatusEnum.SENT
	assert storage.alerts[second]["status"] == AlertStatusEnum.QUEUED
	assert [message.message for message in provider.sent] == ["first"]


@pytest.mark.asyncio
async def test_limit_must_be_positive(storage: InMemoryStorage, clock: MutableClock) -> None:
	with pytest.raises(ValueError):
		await _dispatcher(storage, clock, RecordingSmsProvider()).process_queued(0)


@pytest.mark.asyncio
async def test_failed_delivery_retries_until_third_attempt(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now)
	dispatcher = _dispatcher(storage, clock, RecordingSmsProvider([FAILURE] * 3))

	observed = []
	for _ in range(3):
		clock.advance(minutes=10)
		summary = await dispatcher.process_queued(10)
		row = storage.alerts[alert_id]
		observed.append((summary.failed, row["attempts"], row["status"]))

	assert observed == [
		(1, 1, AlertStatusEnum.QUEUED),
		(1, 2, AlertStatusEnum.QUEUED),
		(1, 3, AlertStatusEnum.FAILED),
	]
	assert storage.alerts[alert_id]["last_attempt_at"] == clock.now

	final = await dispatcher.process_queued(10)
	assert (final.sent, final.failed) == (0, 0)


@pytest.mark.asyncio
async def test_provider_exception_counts_as_failure(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now)
	provider = RecordingSmsProvider([ConnectionError("gateway unreachable")])

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert (summary.sent, summary.failed) == (0, 1)
	assert storage.alerts[alert_id]["attempts"] == 1
	assert storage.alerts[alert_id]["status"] == AlertStatusEnum.QUEUED


@pytest.mark.asyncio
async def test_missing_phone_is_a_failed_attempt(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer(phone=None))
	alert_id = await _queue(storage, farmer.id, clock.now)
	provider = RecordingSmsProvider()

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert summary.failed == 1
	assert provider.sent == []
	assert storage.alerts[alert_id]["attempts"] == 1


@pytest.mark.asyncio
async def test_withdrawn_consent_cancels_without_attempt(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer(consent=False))
	alert_id = await _queue(storage, farmer.id, clock.now)
	provider = RecordingSmsProvider()

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert (summary.sent, summary.failed) == (0, 0)
	assert storage.alerts[alert_id]["status"] == AlertStatusEnum.CANCELLED
	assert storage.alerts[alert_id]["attempts"] == 0
	assert provider.sent == []


@pytest.mark.asyncio
async def test_lost_race_is_counted_in_neither_bucket(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now)

	class ConcurrentWinner(RecordingSmsProvider):
		async def send(self, message: SmsMessage) -> SmsResult:
			# Another dispatcher finishes this alert while our send is in flight.
			storage.alerts[alert_id].update(status=AlertStatusEnum.SENT, attempts=1, provider_message_id="other")
			return await super().send(message)

	dispatcher = _dispatcher(storage, clock, ConcurrentWinner())
	summary = await dispatcher.process_queued(10)

	assert (summary.sent, summary.failed) == (0, 0)
	assert storage.alerts[alert_id]["provider_message_id"] == "other"
	assert storage.alerts[alert_id]["attempts"] == 1


@pytest.mark.asyncio
async def test_deliver_reports_conflict_on_stale_record(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	alert_id = await _queue(storage, farmer.id, clock.now)
	stale = await storage.get_alert(alert_id)
	storage.alerts[alert_id]["attempts"] = 2

	outcome = await _dispatcher(storage, clock, RecordingSmsProvider()).deliver(stale, farmer)  # type: ignore[arg-type]

	assert outcome == DeliveryOutcome.conflict
	assert storage.alerts[alert_id]["status"] == AlertStatusEnum.QUEUED


@pytest.mark.asyncio
async def test_bad_alert_does_not_abort_batch(storage: InMemoryStorage, clock: MutableClock) -> None:
	orphan = await _queue(storage, uuid.uuid4(), clock.now, "orphan")
	clock.advance(seconds=1)
	farmer = storage.add_farmer(make_farmer())
	healthy = await _queue(storage, farmer.id, clock.now, "healthy")

	summary = await _dispatcher(storage, clock, RecordingSmsProvider()).process_queued(10)

	assert (summary.sent, summary.failed) == (1, 0)
	assert storage.alerts[orphan]["status"] == AlertStatusEnum.QUEUED
	assert storage.alerts[healthy]["status"] == AlertStatusEnum.SENT


@pytest.mark.asyncio
async def test_storage_error_mid_batch_rolls_back_only_that_alert(storage: InMemoryStorage, clock: MutableClock) -> None:
	farmer = storage.add_farmer(make_farmer())
	first = await _queue(storage, farmer.id, clock.now, "first")
	middle = await _queue(storage, farmer.id, clock.now, "middle")
	last = await _queue(storage, farmer.id, clock.now, "last")
	transition = storage.transition_alert

	async def failing_after_write(alert_id, expected_status, expected_attempts, changes):  # type: ignore[no-untyped-def]
		changed = await transition(alert_id, expected_status, expected_attempts, changes)
		if alert_id == middle:
			raise RuntimeError("connection reset during update")
		return changed

	storage.transition_alert = failing_after_write  # type: ignore[method-assign]
	provider = RecordingSmsProvider()

	summary = await _dispatcher(storage, clock, provider).process_queued(10)

	assert (summary.sent, summary.failed) == (2, 0)
	assert [message.message for message in provider.sent] == ["first", "middle", "last"]
	assert storage.alerts[first]["status"] == AlertStatusEnum.SENT
	assert storage.alerts[last]["status"] == AlertStatusEnum.SENT
	assert storage.alerts[middle]["status"] == AlertStatusEnum.QUEUED
	assert storage.alerts[middle]["attempts"] == 0
