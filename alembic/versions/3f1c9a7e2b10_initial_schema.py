"""initial_schema

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2024-06-01 00:00:00.000000

Creates the kebele / farmer / subscription tables owned by registration and
the weather snapshot, advisory and alert tables written by the advisory
pipeline.  Requires the uuid-ossp extension.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7e2b10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

# ── Enum type names (PostgreSQL CREATE TYPE) ────────────────────────────────
ENUM_FARM_TYPE = postgresql.ENUM("CROP", "LIVESTOCK", "MIXED", name="farm_type", create_type=False)
ENUM_WATER_ACCESS = postgresql.ENUM("RAIN_FED", "IRRIGATION", "MIXED", name="water_access", create_type=False)
ENUM_SUBSCRIPTION_PLAN = postgresql.ENUM("FREE", "PREMIUM", name="subscription_plan", create_type=False)
ENUM_SUBSCRIPTION_STATUS = postgresql.ENUM(
    "ACTIVE", "PAUSED", "CANCELLED", name="subscription_status", create_type=False
)
ENUM_ALERT_TYPE = postgresql.ENUM(
    "DROUGHT",
    "HEAVY_RAINFALL",
    "TEMPERATURE_EXTREME",
    "PLANTING_REMINDER",
    "MARKET_PRICE",
    "CUSTOM",
    name="alert_type",
    create_type=False,
)
ENUM_ALERT_SEVERITY = postgresql.ENUM("LOW", "MEDIUM", "HIGH", name="alert_severity", create_type=False)
ENUM_ALERT_STATUS = postgresql.ENUM(
    "QUEUED", "SENT", "FAILED", "CANCELLED", name="alert_status", create_type=False
)

ALL_ENUMS = (
    ENUM_FARM_TYPE,
    ENUM_WATER_ACCESS,
    ENUM_SUBSCRIPTION_PLAN,
    ENUM_SUBSCRIPTION_STATUS,
    ENUM_ALERT_TYPE,
    ENUM_ALERT_SEVERITY,
    ENUM_ALERT_STATUS,
)


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        server_default=sa.text("uuid_generate_v4()"),
        nullable=False,
    )


def _created_at(default: str = "now()") -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.text(default),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    bind = op.get_bind()
    for enum in ALL_ENUMS:
        enum.create(bind, checkfirst=True)

    # ── kebeles ──────────────────────────────────────────────────────────
    op.create_table(
        "kebeles",
        _uuid_pk(),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("woreda_name", sa.String(length=255), nullable=True),
        sa.Column("zone_name", sa.String(length=255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        _created_at(),
        _updated_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    # ── farmers ──────────────────────────────────────────────────────────
    op.create_table(
        "farmers",
        _uuid_pk(),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("kebele_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("farm_type", ENUM_FARM_TYPE, nullable=False),
        sa.Column("crop_type", sa.String(length=100), nullable=True),
        sa.Column("soil_type", sa.String(length=100), nullable=True),
        sa.Column("water_access", ENUM_WATER_ACCESS, nullable=False),
        sa.Column("farm_size_ha", sa.Float(), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("consent", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("language", sa.String(length=8), server_default=sa.text("'am'"), nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["kebele_id"], ["kebeles.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_farmers_kebele_id", "farmers", ["kebele_id"])

    # ── subscriptions ────────────────────────────────────────────────────
    op.create_table(
        "subscriptions",
        _uuid_pk(),
        sa.Column("farmer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("plan", ENUM_SUBSCRIPTION_PLAN, nullable=False),
        sa.Column("status", ENUM_SUBSCRIPTION_STATUS, nullable=False),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_subscriptions_farmer_status", "subscriptions", ["farmer_id", "status"])

    # ── weather_snapshots ────────────────────────────────────────────────
    op.create_table(
        "weather_snapshots",
        _uuid_pk(),
        sa.Column("kebele_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("period_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("period_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("raw_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["kebele_id"], ["kebeles.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_weather_snapshots_kebele_created",
        "weather_snapshots",
        ["kebele_id", "created_at"],
    )

    # ── advisories ───────────────────────────────────────────────────────
    op.create_table(
        "advisories",
        _uuid_pk(),
        sa.Column("farmer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("risk_summary_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("recommendations_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("explanation_json", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("rendered_text", sa.Text(), nullable=False),
        sa.Column("language", sa.String(length=8), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_advisories_farmer_created", "advisories", ["farmer_id", "created_at"])

    # ── alerts ───────────────────────────────────────────────────────────
    op.create_table(
        "alerts",
        _uuid_pk(),
        sa.Column("farmer_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("type", ENUM_ALERT_TYPE, nullable=False),
        sa.Column("severity", ENUM_ALERT_SEVERITY, nullable=False),
        sa.Column("message_text", sa.Text(), nullable=False),
        sa.Column("schedule_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", ENUM_ALERT_STATUS, server_default=sa.text("'QUEUED'"), nullable=False),
        sa.Column("attempts", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        _created_at("clock_timestamp()"),
        _updated_at(),
        sa.ForeignKeyConstraint(["farmer_id"], ["farmers.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alerts_status_schedule", "alerts", ["status", "schedule_time"])
    op.create_index("ix_alerts_status_created", "alerts", ["status", "created_at", "id"])
    op.create_index("ix_alerts_farmer_id", "alerts", ["farmer_id"])


def downgrade() -> None:
    op.drop_index("ix_alerts_farmer_id", table_name="alerts")
    op.drop_index("ix_alerts_status_created", table_name="alerts")
    op.drop_index("ix_alerts_status_schedule", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_advisories_farmer_created", table_name="advisories")
    op.drop_table("advisories")
    op.drop_index("ix_weather_snapshots_kebele_created", table_name="weather_snapshots")
    op.drop_table("weather_snapshots")
    op.drop_index("ix_subscriptions_farmer_status", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_index("ix_farmers_kebele_id", table_name="farmers")
    op.drop_table("farmers")
    op.drop_table("kebeles")

    bind = op.get_bind()
    for enum in reversed(ALL_ENUMS):
        enum.drop(bind, checkfirst=True)
