from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Send sensor readings to a running ingest service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Ingest API base URL (defaults to INGEST_API_URL env or http://localhost:8000).",
    ),
    token: Optional[str] = typer.Option(
        None,
        "--token",
        "-t",
        help="Bearer token (defaults to INGEST_API_TOKEN env).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, token=token, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Asset the reading belongs to."),
    temperature: float = typer.Option(..., "--temperature", help="Degrees, -50 to 150."),
    pressure: float = typer.Option(..., "--pressure", help="Non-negative pressure."),
    vibration: float = typer.Option(..., "--vibration", help="Non-negative vibration."),
    energy: float = typer.Option(..., "--energy", help="Non-negative energy consumption."),
    timestamp: Optional[str] = typer.Option(
        None,
        "--timestamp",
        help="ISO-8601 time of the reading; the server stamps now when omitted.",
    ),
    sensor_id: Optional[str] = typer.Option(None, "--sensor-id", help="Optional path identifier."),
) -> None:
    """Submit one sensor reading."""
    state = _get_state(ctx)
    reading = {
        "asset_id": asset_id,
        "temperature": temperature,
        "pressure": pressure,
        "vibration": vibration,
        "energy_consumption": energy,
    }
    message = state.client.send_reading(reading, timestamp=timestamp, sensor_id=sensor_id)
    typer.secho(message, fg=typer.colors.GREEN)
