"""Read-only farmer view consumed by the advisory pipeline."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict

from etsafe.models.enums import FarmTypeEnum, WaterAccessEnum


class FarmerProfile(BaseModel):
	model_config = ConfigDict(frozen=True)

	id: uuid.UUID
	full_name: str
	phone: str | None = None
	kebele_id: uuid.UUID
	farm_type: FarmTypeEnum
	crop_type: str | None = None
	soil_type: str | None = None
	water_access: WaterAccessEnum
	farm_size_ha: float | None = None
	latitude: float | None = None
	longitude: float | None = None
	kebele_latitude: float | None = None
	kebele_longitude: float | None = None
	location: str = "Ethiopia"
	consent: bool = False
	language: str = "am"
