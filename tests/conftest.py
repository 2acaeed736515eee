"""Shared pytest fixtures: async test client, in-memory storage, fake Redis, rule engine."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from etsafe.config import get_settings
from etsafe.database import get_db
from etsafe.main import app
from etsafe.services.rule_engine import RuleEngine
from support import FakeAsyncSession, FakeRedis, InMemoryStorage, MutableClock


@pytest.fixture
def clock() -> MutableClock:
	return MutableClock()


@pytest.fixture
def storage(clock: MutableClock) -> InMemoryStorage:
	return InMemoryStorage(clock)


@pytest.fixture
def fake_redis() -> FakeRedis:
	return FakeRedis()


@pytest.fixture
def rule_engine() -> RuleEngine:
	"""The packaged rule document, loaded the same way the lifespan does."""
	return RuleEngine.from_path(get_settings().rules_path)


@pytest.fixture
def fake_db_session() -> FakeAsyncSession:
	"""A lightweight async-session stub for dependency overrides in API tests."""
	return FakeAsyncSession()


@pytest.fixture
async def client(fake_db_session: FakeAsyncSession) -> AsyncGenerator[AsyncClient, None]:
	"""HTTPX async client with lifespan disabled and DB dependency mocked."""

	async def override_get_db() -> AsyncGenerator[Any, None]:
		yield fake_db_session

	app.dependency_overrides[get_db] = override_get_db
	original_lifespan = app.router.lifespan_context

	@asynccontextmanager
	async def noop_lifespan(_: Any) -> AsyncGenerator[None, None]:
		yield

	app.router.lifespan_context = noop_lifespan

	transport = ASGITransport(app=app)
	async with AsyncClient(transport=transport, base_url="http://test") as test_client:
		yield test_client

	app.router.lifespan_context = original_lifespan
	app.dependency_overrides.clear()
