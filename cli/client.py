from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the ingest service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def send_reading(
        self,
        reading: Dict[str, Any],
        timestamp: Optional[str] = None,
        sensor_id: Optional[str] = None,
    ) -> str:
        if not self._config.token:
            raise typer.BadParameter("An API token is required (--token or INGEST_API_TOKEN).")

        path = "/api/ingest-sensor" if sensor_id is None else f"/api/ingest-sensor/{sensor_id}"
        params = {"timestamp": timestamp} if timestamp else None
        try:
            response = self._client.post(
                path,
                json=reading,
                params=params,
                headers={"Authorization": f"Bearer {self._config.token}"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.HTTPError as exc:
            typer.secho(f"Request failed: {exc}", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)

        message = response.json().get("message")
        if not isinstance(message, str):
            raise typer.BadParameter("Unexpected response payload when sending reading.")
        return message

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("error")
        except ValueError:
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
