"""Clients for the managed auth and REST storage endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from models.records import Identity
from services.errors import StorageError

logger = logging.getLogger(__name__)


def build_http_client(base_url: str, api_key: str, timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=base_url,
        headers={"apikey": api_key},
        timeout=timeout,
    )


class SupabaseAuthVerifier:
    """Resolves bearer tokens through the auth ``/user`` endpoint."""

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def verify(self, token: str) -> Optional[Identity]:
        if not token:
            return None
        try:
            response = await self._client.get(
                "/auth/v1/user",
                headers={"Authorization": f"Bearer {token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("Auth provider request failed", extra={"reason": repr(exc)})
            return None

        if response.status_code != 200:
            logger.info(
                "Auth provider rejected token",
                extra={"status_code": response.status_code},
            )
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Auth provider returned a non-JSON body")
            return None

        user_id = payload.get("id") if isinstance(payload, dict) else None
        if not isinstance(user_id, str) or not user_id:
            return None
        return Identity(
            user_id=user_id,
            access_token=token,
            email=payload.get("email"),
        )


class SupabaseTableWriter:
    """Inserts rows through the REST endpoint of the managed database."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        service_key: str,
        forward_caller_token: bool = True,
    ) -> None:
        self._client = client
        self._service_key = service_key
        self.forward_caller_token = forward_caller_token

    async def insert(self, table: str, row: Dict[str, Any], identity: Identity) -> None:
        # Forwarding the caller's token lets row-level policies see their role.
        bearer = identity.access_token if self.forward_caller_token else self._service_key
        try:
            response = await self._client.post(
                f"/rest/v1/{table}",
                json=row,
                headers={
                    "Authorization": f"Bearer {bearer}",
                    "Prefer": "return=minimal",
                },
            )
        except httpx.HTTPError as exc:
            raise StorageError(f"Storage provider unreachable: {exc!r}") from exc

        if response.is_success:
            return
        raise StorageError(
            response.text.strip() or "no detail provided",
            provider_status=response.status_code,
        )
