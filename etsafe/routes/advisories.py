"""Advisory generation route."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from etsafe.database import get_db
from etsafe.schemas.advisory import AdvisoryResponse
from etsafe.services.pipeline import pipeline_for_request

router = APIRouter(prefix="/advisories", tags=["advisories"])

TEXT_PREVIEW_CHARS = 200


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, LookupError):
		return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
	if isinstance(exc, ValueError):
		return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
	return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="advisory failure")


def _preview(text: str) -> str:
	if len(text) <= TEXT_PREVIEW_CHARS:
		return text
	return text[:TEXT_PREVIEW_CHARS] + "..."


@router.post("/{farmer_id}", response_model=AdvisoryResponse, status_code=status.HTTP_201_CREATED)
async def generate_advisory(
	farmer_id: uuid.UUID,
	request: Request,
	language: str | None = Query(default=None, min_length=2, max_length=8),
	db: AsyncSession = Depends(get_db),
) -> AdvisoryResponse:
	pipeline = pipeline_for_request(db, request.app.state)
	try:
		outcome = await pipeline.advisories.compose_and_persist(farmer_id, language)
	except Exception as exc:
		raise _map_error(exc) from exc

	return AdvisoryResponse(
		id=outcome.advisory_id,
		risk_summary=outcome.result.risk_summary,
		recommendations=list(outcome.result.recommendations),
		language=outcome.language,
		text_preview=_preview(outcome.rendered_text),
		warning=outcome.warning,
	)
