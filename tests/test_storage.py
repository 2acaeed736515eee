from __future__ import annotations

import uuid
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest
from sqlalchemy.dialects import postgresql

from etsafe import database
from etsafe.models.advisory import Alert
from etsafe.models.enums import AlertStatusEnum, FarmTypeEnum, WaterAccessEnum
from etsafe.models.weather import WeatherSnapshotRecord
from etsafe.services.storage import SqlStorage

from support import FIXED_NOW, FakeAsyncSession, make_snapshot


def _farmer_row(kebele: SimpleNamespace | None) -> SimpleNamespace:
	return SimpleNamespace(
		id=uuid.uuid4(),
		full_name="Almaz Tesfaye",
		phone="+251922000000",
		kebele_id=uuid.uuid4(),
		farm_type=FarmTypeEnum.MIXED,
		crop_type="TEFF",
		soil_type="CLAY",
		water_access=WaterAccessEnum.IRRIGATION,
		farm_size_ha=2.0,
		latitude=None,
		longitude=None,
		consent=True,
		language="ti",
		kebele=kebele,
	)


def _scalar(value: object) -> SimpleNamespace:
	return SimpleNamespace(scalar_one_or_none=lambda: value)


@pytest.mark.asyncio
async def test_get_farmer_maps_kebele_context(fake_db_session: FakeAsyncSession) -> None:
	kebele = SimpleNamespace(latitude=13.5, longitude=39.47, display_location=lambda: "Adi Haki, Mekelle")
	row = _farmer_row(kebele)
	fake_db_session.execute.return_value = _scalar(row)

	profile = await SqlStorage(fake_db_session).get_farmer(row.id)  # type: ignore[arg-type]

	assert profile is not None
	assert profile.id == row.id
	assert (profile.kebele_latitude, profile.kebele_longitude) == (13.5, 39.47)
	assert profile.location == "Adi Haki, Mekelle"
	assert profile.language == "ti"


@pytest.mark.asyncio
async def test_get_farmer_returns_none_when_missing(fake_db_session: FakeAsyncSession) -> None:
	fake_db_session.execute.return_value = _scalar(None)

	assert await SqlStorage(fake_db_session).get_farmer(uuid.uuid4()) is None  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_save_snapshot_adds_row_with_raw_json(fake_db_session: FakeAsyncSession) -> None:
	kebele_id = uuid.uuid4()
	snapshot = make_snapshot(rainfall_mm=4.0, location_key=str(kebele_id))

	await SqlStorage(fake_db_session).save_snapshot(snapshot, 9.0, 38.5)  # type: ignore[arg-type]

	record = fake_db_session.add.call_args.args[0]
	assert isinstance(record, WeatherSnapshotRecord)
	assert record.kebele_id == kebele_id
	assert record.period_start == FIXED_NOW
	assert len(record.raw_json["forecasts"]) == 14
	assert record.raw_json["summary"]["drought_risk"] == "HIGH"
	fake_db_session.flush.assert_awaited_once()


@pytest.mark.asyncio
async def test_get_latest_snapshot_rebuilds_from_raw_json(fake_db_session: FakeAsyncSession) -> None:
	kebele_id = uuid.uuid4()
	original = make_snapshot(rainfall_mm=12.0, location_key=str(kebele_id))
	record = SimpleNamespace(
		period_start=original.period_start,
		period_end=original.period_end,
		raw_json=original.to_raw_json(),
	)
	fake_db_session.execute.return_value = _scalar(record)

	snapshot = await SqlStorage(fake_db_session).get_latest_snapshot(  # type: ignore[arg-type]
		str(kebele_id),
		datetime(2024, 6, 1, 3, 30, tzinfo=UTC),
	)

	assert snapshot == original


@pytest.mark.asyncio
async def test_transition_alert_is_conditional_update(fake_db_session: FakeAsyncSession) -> None:
	fake_db_session.execute.return_value = SimpleNamespace(rowcount=1)
	storage = SqlStorage(fake_db_session)  # type: ignore[arg-type]

	changed = await storage.transition_alert(
		uuid.uuid4(),
		AlertStatusEnum.QUEUED,
		2,
		{"status": AlertStatusEnum.FAILED, "attempts": 3},
	)

	assert changed is True
	stmt = fake_db_session.execute.call_args.args[0]
	where = str(stmt.whereclause)
	assert "alerts.id" in where
	assert "alerts.status" in where
	assert "alerts.attempts" in where


@pytest.mark.asyncio
async def test_transition_alert_reports_lost_race(fake_db_session: FakeAsyncSession) -> None:
	fake_db_session.execute.return_value = SimpleNamespace(rowcount=0)

	changed = await SqlStorage(fake_db_session).transition_alert(  # type: ignore[arg-type]
		uuid.uuid4(),
		AlertStatusEnum.QUEUED,
		0,
		{"status": AlertStatusEnum.SENT},
	)

	assert changed is False


@pytest.mark.asyncio
async def test_due_alerts_order_by_creation_with_unique_tiebreak(fake_db_session: FakeAsyncSession) -> None:
	fake_db_session.execute.return_value = SimpleNamespace(scalars=lambda: SimpleNamespace(all=lambda: []))

	assert await SqlStorage(fake_db_session).list_due_alerts(FIXED_NOW, 5) == []  # type: ignore[arg-type]

	stmt = fake_db_session.execute.call_args.args[0]
	sql = str(stmt.compile(dialect=postgresql.dialect()))
	assert "ORDER BY alerts.created_at ASC, alerts.id ASC" in sql


def test_alert_created_at_advances_within_a_transaction() -> None:
	assert Alert.__table__.c.created_at.server_default.arg.text == "clock_timestamp()"


@pytest.mark.asyncio
async def test_isolated_uses_savepoint_and_drops_its_callbacks(fake_db_session: FakeAsyncSession) -> None:
	storage = SqlStorage(fake_db_session)  # type: ignore[arg-type]

	async def kept() -> None:
		return None

	async def dropped() -> None:
		return None

	storage.after_commit(kept)
	with pytest.raises(RuntimeError):
		async with storage.isolated():
			storage.after_commit(dropped)
			raise RuntimeError("update failed")

	assert fake_db_session.nested.entered == 1
	assert fake_db_session.nested.rolled_back == 1
	assert fake_db_session.info[database.AFTER_COMMIT_KEY] == [kept]


class _SessionContext:
	def __init__(self, session: FakeAsyncSession) -> None:
		self.session = session

	async def __aenter__(self) -> FakeAsyncSession:
		return self.session

	async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
		return False


@pytest.mark.asyncio
async def test_get_db_runs_callbacks_only_after_commit(
	fake_db_session: FakeAsyncSession,
	monkeypatch: pytest.MonkeyPatch,
) -> None:
	monkeypatch.setattr(database, "async_session_factory", lambda: _SessionContext(fake_db_session))
	calls: list[str] = []

	async def write_cache() -> None:
		calls.append("cache")
		fake_db_session.commit.assert_awaited_once()

	sessions = database.get_db()
	session = await anext(sessions)
	SqlStorage(session).after_commit(write_cache)  # type: ignore[arg-type]
	with pytest.raises(StopAsyncIteration):
		await anext(sessions)

	assert calls == ["cache"]
	assert database.AFTER_COMMIT_KEY not in fake_db_session.info


@pytest.mark.asyncio
async def test_get_db_discards_callbacks_on_rollback(
	fake_db_session: FakeAsyncSession,
	monkeypatch: pytest.MonkeyPatch,
) -> None:
	monkeypatch.setattr(database, "async_session_factory", lambda: _SessionContext(fake_db_session))
	calls: list[str] = []

	async def write_cache() -> None:
		calls.append("cache")

	sessions = database.get_db()
	session = await anext(sessions)
	SqlStorage(session).after_commit(write_cache)  # type: ignore[arg-type]
	with pytest.raises(RuntimeError):
		await sessions.athrow(RuntimeError("request failed"))

	assert calls == []
	fake_db_session.rollback.assert_awaited_once()
	fake_db_session.commit.assert_not_awaited()
