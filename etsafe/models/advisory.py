"""Advisory and Alert ORM models: the outputs of the advisory pipeline."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from etsafe.models.base import Base, CreatedAtMixin, TimestampMixin, UUIDPrimaryKeyMixin
from etsafe.models.enums import AlertSeverityEnum, AlertStatusEnum, AlertTypeEnum


class Advisory(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Immutable, timestamped advisory; a new row is appended per generation.

    ``explanation_json`` carries ``{"triggered_rules": [...],
    "weather_summary": {...}}`` so an advisory can be audited later without
    the weather snapshot it was computed from.
    """

    __tablename__ = "advisories"
    __table_args__ = (Index("ix_advisories_farmer_created", "farmer_id", "created_at"),)

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("farmers.id", ondelete="CASCADE"),
        nullable=False,
    )
    risk_summary_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    recommendations_json: Mapped[list] = mapped_column(JSONB, nullable=False)
    explanation_json: Mapped[dict] = mapped_column(JSONB, nullable=False)
    rendered_text: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(8), nullable=False)

    def __repr__(self) -> str:
        return f"<Advisory id={self.id} farmer={self.farmer_id} language={self.language}>"


class Alert(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """One outbound SMS and its delivery ledger entry.

    Only ``status``, ``attempts``, ``provider_message_id`` and
    ``last_attempt_at`` change after insert, and only through the
    dispatcher's compare-and-set update.

    ``created_at`` uses ``clock_timestamp()`` rather than ``now()``: alerts
    queued in one transaction must still sort in insertion order.
    """

    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_status_schedule", "status", "schedule_time"),
        Index("ix_alerts_status_created", "status", "created_at", "id"),
        Index("ix_alerts_farmer_id", "farmer_id"),
    )

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("farmers.id", ondelete="CASCADE"),
        nullable=False,
    )
    type: Mapped[AlertTypeEnum] = mapped_column(
        Enum(
            AlertTypeEnum,
            name="alert_type",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    severity: Mapped[AlertSeverityEnum] = mapped_column(
        Enum(
            AlertSeverityEnum,
            name="alert_severity",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=text("clock_timestamp()"),
        nullable=False,
    )
    message_text: Mapped[str] = mapped_column(Text, nullable=False)
    schedule_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[AlertStatusEnum] = mapped_column(
        Enum(
            AlertStatusEnum,
            name="alert_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=AlertStatusEnum.QUEUED,
        server_default=AlertStatusEnum.QUEUED.value,
    )
    attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
    )
    provider_message_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_attempt_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Alert id={self.id} type={self.type} status={self.status} "
            f"attempts={self.attempts}>"
        )
