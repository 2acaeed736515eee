"""Alert generation and queue processing routes (manual or scheduler-triggered)."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from etsafe.database import get_db
from etsafe.schemas.alerts import DispatchSummary, FarmerAlertsResponse, GenerationSummary
from etsafe.services.pipeline import pipeline_for_request

router = APIRouter(prefix="/alerts", tags=["alerts"])


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="alert failure")


@router.post("/farmers/{farmer_id}", response_model=FarmerAlertsResponse)
async def generate_alerts_for_farmer(
	farmer_id: uuid.UUID,
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> FarmerAlertsResponse:
	pipeline = pipeline_for_request(db, request.app.state)
	try:
		alert_ids = await pipeline.alerts.generate_for_farmer(farmer_id)
	except Exception as exc:
		raise _map_error(exc) from exc
	return FarmerAlertsResponse(farmer_id=farmer_id, alert_ids=alert_ids)


@router.post("/generate", response_model=GenerationSummary)
async def generate_alerts_for_all(
	request: Request,
	db: AsyncSession = Depends(get_db),
) -> GenerationSummary:
	pipeline = pipeline_for_request(db, request.app.state)
	try:
		return await pipeline.alerts.generate_for_all_active_farmers()
	except Exception as exc:
		raise _map_error(exc) from exc


@router.post("/process", response_model=DispatchSummary)
async def process_queued_alerts(
	request: Request,
	limit: int = Query(default=100, ge=1, le=1000),
	db: AsyncSession = Depends(get_db),
) -> DispatchSummary:
	pipeline = pipeline_for_request(db, request.app.state)
	try:
		return await pipeline.dispatcher.process_queued(limit)
	except Exception as exc:
		raise _map_error(exc) from exc
