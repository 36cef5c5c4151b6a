"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from app.schemas import RangeResponse, ReadingOut, ReadingPayload, WriteResponse
from models.errors import InvalidQueryParameter, StoreUnavailable
from services.ingestion import IngestionService, build_default_ingestion
from services.query import QueryService, build_default_query_service

router = APIRouter()

CSV_FILENAME = "sensor-data.csv"


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_query_service() -> QueryService:
    return build_default_query_service()


@router.post(
    "/api/sensors",
    response_model=WriteResponse,
    summary="Store one reading posted directly by the device.",
)
async def create_reading(
    payload: ReadingPayload,
    ingestion: IngestionService = Depends(get_ingestion),
) -> WriteResponse:
    try:
        ingestion.record(payload)
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    return WriteResponse(message="Data saved to database")


@router.get(
    "/api/sensors/range",
    response_model=RangeResponse,
    summary="Readings within an optional time range, newest first.",
)
async def get_range(
    start: Optional[str] = Query(None, description="Inclusive ISO-8601 lower bound."),
    end: Optional[str] = Query(None, description="Inclusive ISO-8601 upper bound."),
    limit: Optional[str] = Query(None, description="Maximum rows (default 200, max 5000)."),
    queries: QueryService = Depends(get_query_service),
) -> RangeResponse:
    try:
        readings = queries.range(start=start, end=end, limit=limit)
    except InvalidQueryParameter as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to fetch data",
        ) from exc
    data = [ReadingOut.from_reading(reading) for reading in readings]
    return RangeResponse(data=data, count=len(data))


@router.get(
    "/api/sensors/csv",
    summary="Export readings as CSV, oldest first.",
    response_class=Response,
)
async def export_csv(
    start: Optional[str] = Query(None, description="Inclusive ISO-8601 lower bound."),
    end: Optional[str] = Query(None, description="Inclusive ISO-8601 upper bound."),
    limit: Optional[str] = Query(None, description="Maximum rows (default 1000, max 5000)."),
    queries: QueryService = Depends(get_query_service),
) -> Response:
    try:
        body = queries.export_csv(start=start, end=end, limit=limit)
    except InvalidQueryParameter as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Failed to generate CSV",
        ) from exc
    return Response(
        content=body,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{CSV_FILENAME}"'},
    )


@router.get(
    "/api/sensors/latest",
    summary="Most recent reading, or an empty object when none exist.",
)
async def get_latest(
    queries: QueryService = Depends(get_query_service),
) -> Dict[str, Any]:
    try:
        latest = queries.latest()
    except StoreUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(exc),
        ) from exc
    if latest is None:
        return {}
    return ReadingOut.from_reading(latest).model_dump(mode="json", by_alias=True)


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
