"""Pydantic schemas for alert rows and the alert endpoints."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from etsafe.models.enums import AlertSeverityEnum, AlertStatusEnum, AlertTypeEnum


class NewAlert(BaseModel):
	farmer_id: uuid.UUID
	type: AlertTypeEnum
	severity: AlertSeverityEnum
	message_text: str = Field(min_length=1)
	schedule_time: datetime


class AlertRecord(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: uuid.UUID
	farmer_id: uuid.UUID
	type: AlertTypeEnum
	severity: AlertSeverityEnum
	message_text: str
	schedule_time: datetime
	status: AlertStatusEnum
	attempts: int = 0
	provider_message_id: str | None = None
	last_attempt_at: datetime | None = None
	created_at: datetime


class DispatchSummary(BaseModel):
	sent: int = 0
	failed: int = 0


class GenerationSummary(BaseModel):
	generated: int = 0


class FarmerAlertsResponse(BaseModel):
	farmer_id: uuid.UUID
	alert_ids: list[uuid.UUID] = Field(default_factory=list)
