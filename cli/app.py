from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_commands,
    render_hourly_values,
    render_ingest_result,
    render_statistics,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for sending samples to and reading rollups from the device service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_PERIODS = ("daily", "weekly", "monthly", "yearly", "custom")


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        typer.secho("CLI state is uninitialized.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return state


def parse_reading(raw: str) -> tuple[str, Any]:
    """Parse ``name=value`` into a reading, coercing numbers and booleans."""
    name, sep, value = raw.partition("=")
    name = name.strip()
    value = value.strip()
    if not sep or not name or not value:
        raise typer.BadParameter(f"Expected NAME=VALUE, got {raw!r}.")
    lowered = value.lower()
    if lowered in {"true", "false"}:
        return name, lowered == "true"
    try:
        return name, float(value)
    except ValueError:
        return name, value


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("send")
def send_command(
    ctx: typer.Context,
    device_serial: str = typer.Argument(..., help="Serial number of the reporting device."),
    field: List[str] = typer.Option(
        ..., "--field", "-f", help="Reading as NAME=VALUE; repeat for several readings."
    ),
) -> None:
    """Send a single sample."""
    state = _get_state(ctx)
    fields: Dict[str, Any] = dict(parse_reading(item) for item in field)
    payload = state.client.send_sample(device_serial, fields)
    render_ingest_result(payload)


@app.command("simulate")
def simulate_command(
    ctx: typer.Context,
    device_serial: str = typer.Argument(..., help="Serial number of the simulated device."),
    count: int = typer.Option(6, "--count", "-n", min=1, help="Number of samples to send."),
    field: List[str] = typer.Option(
        ["temperature", "humidity", "gas"],
        "--field",
        "-f",
        help="Reading names to generate.",
    ),
    minimum: float = typer.Option(0.0, "--min", help="Lower bound of generated readings."),
    maximum: float = typer.Option(100.0, "--max", help="Upper bound of generated readings."),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds to pause between samples."
    ),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for repeatable runs."),
) -> None:
    """Send a run of random samples, as a device would."""
    if maximum < minimum:
        raise typer.BadParameter("--max must not be lower than --min.")
    state = _get_state(ctx)
    pause = interval if interval is not None else state.config.send_interval
    rng = random.Random(seed)

    minutes = hours = commands = 0
    for index in range(count):
        fields = {name: round(rng.uniform(minimum, maximum), 2) for name in field}
        payload = state.client.send_sample(device_serial, fields)
        minutes += int(bool(payload.get("minute_completed")))
        hours += int(bool(payload.get("hour_completed")))
        commands += len(payload.get("commands") or [])
        if pause and index < count - 1:
            time.sleep(pause)

    typer.secho(
        f"Sent {count} samples to {device_serial}: "
        f"{minutes} minute(s) closed, {hours} hour(s) closed, {commands} command(s) dispatched.",
        fg=typer.colors.GREEN,
    )


@app.command("hourly")
def hourly_command(
    ctx: typer.Context,
    device_serial: str = typer.Argument(..., help="Serial number of the device."),
    page: int = typer.Option(1, "--page", min=1),
    limit: int = typer.Option(24, "--limit", min=1),
) -> None:
    """Show stored hourly summaries."""
    state = _get_state(ctx)
    render_hourly_values(state.client.get_hourly_values(device_serial, page=page, limit=limit))


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    device_serial: str = typer.Argument(..., help="Serial number of the device."),
    period: str = typer.Option("daily", "--period", "-p", help=f"One of {', '.join(_PERIODS)}."),
) -> None:
    """Show averages per day, week, month or year."""
    if period not in _PERIODS:
        raise typer.BadParameter(f"Unknown period {period!r}.")
    state = _get_state(ctx)
    render_statistics(state.client.get_statistics(device_serial, period), period)


@app.command("commands")
def commands_command(
    ctx: typer.Context,
    limit: int = typer.Option(20, "--limit", min=1),
) -> None:
    """Show the most recently dispatched device commands."""
    state = _get_state(ctx)
    render_commands(state.client.get_commands(limit=limit))
