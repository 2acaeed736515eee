"""WeatherSnapshot ORM model: the persisted half of the weather cache.

``raw_json`` holds the full generated forecast plus its derived summary::

    {
        "forecasts": [
            {"period_start": "...", "period_end": "...", "rainfall_prob": 42,
             "rainfall_mm": 0, "temp_max": 31, "temp_min": 20, "humidity": 62},
            ...
        ],
        "summary": {"avg_rainfall": 6.4, "max_temp": 34, "min_temp": 17,
                    "drought_risk": "MEDIUM", "flood_risk": "LOW"}
    }
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from etsafe.models.base import Base, CreatedAtMixin, UUIDPrimaryKeyMixin


class WeatherSnapshotRecord(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """One generated forecast window for a kebele; rows are never updated."""

    __tablename__ = "weather_snapshots"
    __table_args__ = (
        Index("ix_weather_snapshots_kebele_created", "kebele_id", "created_at"),
    )

    kebele_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("kebeles.id", ondelete="CASCADE"),
        nullable=False,
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    raw_json: Mapped[dict] = mapped_column(JSONB, nullable=False)

    def __repr__(self) -> str:
        return (
            f"<WeatherSnapshotRecord id={self.id} kebele={self.kebele_id} "
            f"created={self.created_at}>"
        )
