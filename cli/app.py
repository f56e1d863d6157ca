from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_anchor, render_consumer, render_status


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Operator commands for the shipment telemetry relay.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


def _vehicle(state: CLIState, vehicle_id: Optional[str]) -> str:
    vehicle = vehicle_id or state.config.vehicle_id
    if not vehicle:
        raise typer.BadParameter("Pass --vehicle or set RELAY_VEHICLE_ID.")
    return vehicle


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Relay API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    poll_interval: Optional[float] = typer.Option(
        None,
        "--poll-interval",
        help="Seconds between status checks when waiting for archival.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Maximum seconds to wait when polling for archival.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(
        base_url=base_url,
        poll_interval=poll_interval,
        poll_timeout=timeout,
    )
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("start")
def start_command(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch identifier."),
    vehicle_id: Optional[str] = typer.Option(None, "--vehicle", "-v", help="Vehicle carrying the batch."),
) -> None:
    """Start a trip and clear the vehicle's previous sensor log."""
    state = _get_state(ctx)
    payload = state.client.start_transport(batch_id, _vehicle(state, vehicle_id))
    typer.secho(payload.get("message", "Trip started."), fg=typer.colors.GREEN)


@app.command("locate")
def locate_command(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch identifier."),
    lat: float = typer.Argument(..., help="Latitude."),
    lng: float = typer.Argument(..., help="Longitude."),
) -> None:
    """Push a GPS position for a batch."""
    state = _get_state(ctx)
    state.client.update_location(batch_id, lat, lng)
    typer.echo(f"Position recorded for batch {batch_id}: {lat}, {lng}")


@app.command("place")
def place_command(
    ctx: typer.Context,
    lat: float = typer.Argument(..., help="Latitude."),
    lng: float = typer.Argument(..., help="Longitude."),
) -> None:
    """Resolve a coordinate to a place name."""
    state = _get_state(ctx)
    typer.echo(state.client.place_name(lat, lng))


@app.command("arrive")
def arrive_command(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch identifier."),
    arrival_lat: str = typer.Argument(..., help="Arrival latitude."),
    arrival_lng: str = typer.Argument(..., help="Arrival longitude."),
    vehicle_id: Optional[str] = typer.Option(None, "--vehicle", "-v", help="Vehicle carrying the batch."),
    wait: bool = typer.Option(
        False,
        "--wait/--no-wait",
        help="Wait until the raw readings are archived after confirmation.",
    ),
) -> None:
    """Aggregate the trip and anchor the summary on chain."""
    state = _get_state(ctx)
    vehicle = _vehicle(state, vehicle_id)
    typer.echo(f"Anchoring batch {batch_id} via {state.config.base_url} ...")
    payload = state.client.aggregate_and_anchor(batch_id, vehicle, arrival_lat, arrival_lng)
    render_anchor(payload)

    if not wait:
        return

    config = state.config
    typer.echo()
    typer.echo(
        f"Waiting for archival (interval={config.poll_interval}s, timeout={config.poll_timeout}s)..."
    )
    status = state.client.poll_status(
        batch_id, vehicle, interval=config.poll_interval, timeout=config.poll_timeout
    )
    typer.echo()
    render_status(status)


@app.command("consumer")
def consumer_command(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch identifier."),
    vehicle_id: Optional[str] = typer.Option(None, "--vehicle", "-v", help="Vehicle whose log to read."),
) -> None:
    """Show the consumer-facing averages for a batch."""
    state = _get_state(ctx)
    render_consumer(batch_id, state.client.consumer_data(batch_id, vehicle_id))


@app.command("status")
def status_command(
    ctx: typer.Context,
    batch_id: str = typer.Argument(..., help="Batch identifier."),
    vehicle_id: Optional[str] = typer.Option(None, "--vehicle", "-v", help="Vehicle carrying the batch."),
) -> None:
    """Show the derived lifecycle state of a batch."""
    state = _get_state(ctx)
    render_status(state.client.shipment_status(batch_id, _vehicle(state, vehicle_id)))
