"""Request orchestration for sensor reading ingestion."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol

import httpx

from datastore.local_store import build_default_table
from models.records import Identity, SensorReading
from providers.local_auth import LocalTokenVerifier
from providers.supabase import SupabaseAuthVerifier, SupabaseTableWriter, build_http_client
from services.errors import StorageError, Unauthorized, ValidationError
from services.validation import parse_timestamp, validate_sensor_data
from settings import BACKEND_LOCAL, BACKEND_SUPABASE, get_settings

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Sensor reading stored successfully"
BEARER_PREFIX = "Bearer "


class TokenVerifier(Protocol):
    async def verify(self, token: str) -> Optional[Identity]: ...


class RowWriter(Protocol):
    async def insert(self, table: str, row: Dict[str, Any], identity: Identity) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(moment: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a ``Z`` suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


class IngestionService:
    """Authenticates, validates and persists one reading per call."""

    def __init__(
        self,
        verifier: TokenVerifier,
        writer: RowWriter,
        table_name: str = "sensor_readings",
        backend: str = BACKEND_LOCAL,
        clock: Callable[[], datetime] = _utc_now,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        self.verifier = verifier
        self.writer = writer
        self.table_name = table_name
        self.backend = backend
        self._clock = clock
        self._on_close = on_close

    async def ingest(
        self,
        authorization: Optional[str],
        body: bytes,
        timestamp: Optional[str] = None,
        sensor_id: Optional[str] = None,
    ) -> str:
        """Run the full ingestion path and return the success message.

        Raises a subclass of :class:`services.errors.IngestionError` on the
        first failing step; nothing is written unless every step passes.
        """
        identity = await self.authenticate(authorization)

        reading = validate_sensor_data(self._decode_body(body))
        reading.timestamp = self._resolve_timestamp(timestamp)

        # The path identifier is accepted for routing only; asset_id is authoritative.
        await self._store(reading, identity, sensor_id)
        return SUCCESS_MESSAGE

    async def authenticate(self, authorization: Optional[str]) -> Identity:
        if not authorization or not authorization.startswith(BEARER_PREFIX):
            raise Unauthorized("Missing or invalid Authorization header")

        token = authorization.split(" ")[1]
        identity = await self.verifier.verify(token)
        if identity is None:
            raise Unauthorized("Invalid token")
        return identity

    async def aclose(self) -> None:
        if self._on_close is not None:
            await self._on_close()

    @staticmethod
    def _decode_body(body: bytes) -> Any:
        if not body:
            return None
        try:
            return json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ValidationError("Invalid JSON body") from exc

    def _resolve_timestamp(self, supplied: Optional[str]) -> str:
        if not supplied:
            return format_timestamp(self._clock())
        try:
            parse_timestamp(supplied)
        except ValueError as exc:
            raise ValidationError("Invalid timestamp") from exc
        return supplied

    async def _store(
        self,
        reading: SensorReading,
        identity: Identity,
        sensor_id: Optional[str],
    ) -> None:
        context = {
            "asset_id": reading.asset_id,
            "sensor_id": sensor_id,
            "user_id": identity.user_id,
            "table": self.table_name,
        }
        try:
            await self.writer.insert(self.table_name, reading.to_row(), identity)
        except StorageError as exc:
            logger.error(
                "Error inserting sensor data: %s",
                exc.detail,
                extra={**context, "status_code": exc.provider_status},
            )
            raise
        logger.info("Sensor reading stored", extra=context)


def _build_supabase_service() -> IngestionService:
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        raise RuntimeError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set for the supabase backend."
        )
    client: httpx.AsyncClient = build_http_client(
        settings.supabase_url, settings.supabase_key, settings.provider_timeout
    )
    return IngestionService(
        verifier=SupabaseAuthVerifier(client),
        writer=SupabaseTableWriter(
            client,
            service_key=settings.supabase_key,
            forward_caller_token=settings.forward_caller_token,
        ),
        table_name=settings.table_name,
        backend=BACKEND_SUPABASE,
        on_close=client.aclose,
    )


def _build_local_service() -> IngestionService:
    settings = get_settings()
    return IngestionService(
        verifier=LocalTokenVerifier.from_string(settings.local_auth_tokens),
        writer=build_default_table(),
        table_name=settings.table_name,
        backend=BACKEND_LOCAL,
    )


@lru_cache
def build_default_service() -> IngestionService:
    """Factory that wires the service to the configured provider backend."""
    backend = get_settings().backend
    if backend == BACKEND_SUPABASE:
        service = _build_supabase_service()
    elif backend == BACKEND_LOCAL:
        service = _build_local_service()
    else:
        raise RuntimeError(f"Unknown ingest backend {backend!r}.")
    logger.info("Ingestion service ready", extra={"backend": service.backend})
    return service
