"""ORM model registry: importing this module registers every table on Base.metadata.

Alembic ``env.py`` imports ``Base`` from here (not from ``base.py``) so that
autogenerate sees all tables.  Application code can also do::

    from etsafe.models import Farmer, Alert, ...
"""

# ── Base & Mixins ───────────────────────────────────────────────────────────
from etsafe.models.base import (
    Base,
    CreatedAtMixin,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

# ── Enums ───────────────────────────────────────────────────────────────────
from etsafe.models.enums import (
    AlertSeverityEnum,
    AlertStatusEnum,
    AlertTypeEnum,
    FarmTypeEnum,
    RiskLevelEnum,
    SubscriptionPlanEnum,
    SubscriptionStatusEnum,
    WaterAccessEnum,
)

# ── Registration-owned models ───────────────────────────────────────────────
from etsafe.models.farmer import Farmer, Kebele, Subscription

# ── Pipeline outputs ────────────────────────────────────────────────────────
from etsafe.models.advisory import Advisory, Alert
from etsafe.models.weather import WeatherSnapshotRecord

__all__ = [
    "Advisory",
    "Alert",
    "AlertSeverityEnum",
    "AlertStatusEnum",
    "AlertTypeEnum",
    # Base & mixins
    "Base",
    "CreatedAtMixin",
    "FarmTypeEnum",
    "Farmer",
    "Kebele",
    "RiskLevelEnum",
    "Subscription",
    "SubscriptionPlanEnum",
    "SubscriptionStatusEnum",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "WaterAccessEnum",
    "WeatherSnapshotRecord",
]
