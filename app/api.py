"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse

from app.schemas import ErrorResponse, HealthResponse, MessageResponse, SensorReadingPayload
from services.errors import IngestionError, UnexpectedError
from services.ingestion import IngestionService, build_default_service

logger = logging.getLogger(__name__)

router = APIRouter()


def get_service() -> IngestionService:
    return build_default_service()


def _is_json(content_type: Optional[str]) -> bool:
    media_type = (content_type or "").split(";")[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def _error_response(exc: IngestionError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=exc.message).model_dump(),
    )


_INGEST_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}

_INGEST_BODY_SCHEMA = {
    "requestBody": {
        "required": True,
        "content": {"application/json": {"schema": SensorReadingPayload.model_json_schema()}},
    }
}


@router.post(
    "/api/ingest-sensor",
    response_model=MessageResponse,
    responses=_INGEST_RESPONSES,
    openapi_extra=_INGEST_BODY_SCHEMA,
    summary="Store one sensor reading.",
)
@router.post(
    "/api/ingest-sensor/{sensor_id}",
    response_model=MessageResponse,
    responses=_INGEST_RESPONSES,
    openapi_extra=_INGEST_BODY_SCHEMA,
    summary="Store one sensor reading (path identifier is accepted but unused).",
)
async def ingest_sensor(
    request: Request,
    sensor_id: Optional[str] = None,
    timestamp: Optional[str] = Query(None, description="ISO-8601 time of the reading."),
    authorization: Optional[str] = Header(None),
    service: IngestionService = Depends(get_service),
):
    try:
        # Bodies sent with another content type are treated as absent.
        body = await request.body() if _is_json(request.headers.get("content-type")) else b""
        message = await service.ingest(
            authorization=authorization,
            body=body,
            timestamp=timestamp,
            sensor_id=sensor_id,
        )
    except IngestionError as exc:
        if exc.status_code < 500:
            logger.info(
                "Rejected sensor reading",
                extra={"reason": exc.message, "status_code": exc.status_code},
            )
        return _error_response(exc)
    except Exception:
        logger.exception("Error processing request")
        return _error_response(UnexpectedError())
    return MessageResponse(message=message)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck(service: IngestionService = Depends(get_service)) -> HealthResponse:
    return HealthResponse(status="ok", backend=service.backend)
