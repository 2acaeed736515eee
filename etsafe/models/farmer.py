"""Kebele, Farmer and Subscription ORM models.

Rows here are owned by the registration side of the portal; the advisory
pipeline only reads them.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Boolean, Enum, Float, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from etsafe.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from etsafe.models.enums import (
    FarmTypeEnum,
    SubscriptionPlanEnum,
    SubscriptionStatusEnum,
    WaterAccessEnum,
)


class Kebele(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Lowest administrative unit; its id is the weather location key.

    ``latitude`` / ``longitude`` are the default coordinates used for
    farmers registered without their own GPS fix.
    """

    __tablename__ = "kebeles"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    woreda_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    zone_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    farmers: Mapped[list[Farmer]] = relationship(back_populates="kebele")

    def display_location(self) -> str:
        parts = [self.name, self.woreda_name, self.zone_name]
        return ", ".join(part for part in parts if part)

    def __repr__(self) -> str:
        return f"<Kebele id={self.id} name={self.name!r}>"


class Farmer(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "farmers"
    __table_args__ = (Index("ix_farmers_kebele_id", "kebele_id"),)

    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    kebele_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("kebeles.id", ondelete="RESTRICT"),
        nullable=False,
    )
    farm_type: Mapped[FarmTypeEnum] = mapped_column(
        Enum(
            FarmTypeEnum,
            name="farm_type",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    crop_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    soil_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    water_access: Mapped[WaterAccessEnum] = mapped_column(
        Enum(
            WaterAccessEnum,
            name="water_access",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
    )
    farm_size_ha: Mapped[float | None] = mapped_column(Float, nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    consent: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )
    language: Mapped[str] = mapped_column(
        String(8),
        nullable=False,
        default="am",
        server_default=text("'am'"),
    )

    # ── Relationships ────────────────────────────────────────────────────
    kebele: Mapped[Kebele] = relationship(back_populates="farmers", lazy="joined")
    subscriptions: Mapped[list[Subscription]] = relationship(
        back_populates="farmer",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Farmer id={self.id} name={self.full_name!r} consent={self.consent}>"


class Subscription(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "subscriptions"
    __table_args__ = (Index("ix_subscriptions_farmer_status", "farmer_id", "status"),)

    farmer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("farmers.id", ondelete="CASCADE"),
        nullable=False,
    )
    plan: Mapped[SubscriptionPlanEnum] = mapped_column(
        Enum(
            SubscriptionPlanEnum,
            name="subscription_plan",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=SubscriptionPlanEnum.FREE,
    )
    status: Mapped[SubscriptionStatusEnum] = mapped_column(
        Enum(
            SubscriptionStatusEnum,
            name="subscription_status",
            create_constraint=False,
            native_enum=True,
        ),
        nullable=False,
        default=SubscriptionStatusEnum.ACTIVE,
    )

    farmer: Mapped[Farmer] = relationship(back_populates="subscriptions")

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} farmer={self.farmer_id} status={self.status}>"
