"""PostgreSQL-backed enum types for all ORM models.

Each StrEnum maps 1:1 to a PostgreSQL CREATE TYPE ... AS ENUM.  Values are
upper-case because they are also the wire format of the rule documents and
the JSON stored on advisories.
"""

from enum import StrEnum

# ── Farmer profile enums ────────────────────────────────────────────────────


class FarmTypeEnum(StrEnum):
    """What the farmer produces."""

    CROP = "CROP"
    LIVESTOCK = "LIVESTOCK"
    MIXED = "MIXED"


class WaterAccessEnum(StrEnum):
    """How the farm is watered."""

    RAIN_FED = "RAIN_FED"
    IRRIGATION = "IRRIGATION"
    MIXED = "MIXED"


class SubscriptionPlanEnum(StrEnum):
    FREE = "FREE"
    PREMIUM = "PREMIUM"


class SubscriptionStatusEnum(StrEnum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"


# ── Risk enums ──────────────────────────────────────────────────────────────


class RiskLevelEnum(StrEnum):
    """Three-level risk scale shared by weather summaries, rules and advisories."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


# ── Alert enums ─────────────────────────────────────────────────────────────


class AlertTypeEnum(StrEnum):
    DROUGHT = "DROUGHT"
    HEAVY_RAINFALL = "HEAVY_RAINFALL"
    TEMPERATURE_EXTREME = "TEMPERATURE_EXTREME"
    PLANTING_REMINDER = "PLANTING_REMINDER"
    MARKET_PRICE = "MARKET_PRICE"
    CUSTOM = "CUSTOM"


class AlertSeverityEnum(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class AlertStatusEnum(StrEnum):
    """Delivery lifecycle: QUEUED is the only non-terminal state."""

    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
