"""Async SQLAlchemy engine, session factory and the request-scoped session dependency."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import structlog
from redis.exceptions import RedisError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from etsafe.config import get_settings

# Session.info key holding callbacks that must only run once the transaction is durable.
AFTER_COMMIT_KEY = "etsafe.after_commit"

logger = structlog.get_logger("etsafe.database")

engine = create_async_engine(get_settings().database_url, pool_pre_ping=True)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def run_after_commit(session: AsyncSession) -> None:
	for callback in session.info.pop(AFTER_COMMIT_KEY, []):
		try:
			await callback()
		except RedisError as exc:
			logger.warning("after_commit_cache_write_failed", error=str(exc))


async def get_db() -> AsyncGenerator[AsyncSession, None]:
	"""Yield a session that commits on success and rolls back on any error.

	Callbacks registered through ``SqlStorage.after_commit`` run after a
	successful commit and are discarded on rollback.
	"""
	async with async_session_factory() as session:
		try:
			yield session
			await session.commit()
		except Exception:
			session.info.pop(AFTER_COMMIT_KEY, None)
			await session.rollback()
			raise
		await run_after_commit(session)
