"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SensorReadingPayload(BaseModel):
    """Documented shape of the ingestion request body."""

    asset_id: str = Field(..., description="Identifier of the asset the reading belongs to.")
    temperature: float = Field(..., ge=-50, le=150)
    pressure: float = Field(..., ge=0)
    vibration: float = Field(..., ge=0)
    energy_consumption: float = Field(..., ge=0)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error: str = Field(..., description="Short, stable description of the failure.")


class HealthResponse(BaseModel):
    status: str
    backend: str
