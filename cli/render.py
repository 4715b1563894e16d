from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _format_values(values: Dict[str, Any]) -> str:
    if not values:
        return "-"
    return ", ".join(f"{name}={float(value):.2f}" for name, value in sorted(values.items()))


def render_ingest_result(payload: Dict[str, Any]) -> None:
    echo_heading("Sample Result")
    echo_key_values(
        [
            ("device_serial", payload.get("device_serial")),
            ("accepted", payload.get("accepted")),
            ("minute_count", payload.get("minute_count")),
            ("minute_completed", payload.get("minute_completed")),
            ("hour_count", payload.get("hour_count")),
            ("hour_completed", payload.get("hour_completed")),
        ]
    )
    hourly = payload.get("hourly_value")
    if hourly:
        typer.echo()
        render_hourly_values([hourly])
    commands = payload.get("commands") or []
    if commands:
        typer.echo()
        render_commands(commands)


def render_hourly_values(rows: List[Dict[str, Any]]) -> None:
    echo_heading("Hourly Values")
    if not rows:
        typer.echo("No hourly values recorded.")
        return
    for row in rows:
        typer.echo(
            f"  - {row.get('hour_timestamp')}: {_format_values(row.get('avg_value') or {})}"
            f" (samples={row.get('sample_count')})"
        )


def render_statistics(buckets: List[Dict[str, Any]], period: str) -> None:
    echo_heading(f"Statistics ({period})")
    if not buckets:
        typer.echo("No statistics available.")
        return
    for bucket in buckets:
        typer.echo(
            f"  - {bucket.get('timestamp')}: {_format_values(bucket.get('avg_value') or {})}"
            f" (samples={bucket.get('total_samples')})"
        )


def render_commands(commands: List[Dict[str, Any]]) -> None:
    echo_heading("Commands")
    if not commands:
        typer.echo("No commands dispatched.")
        return
    for command in commands:
        value = command.get("value")
        suffix = f" value={value}" if value is not None else ""
        typer.echo(
            f"  - {command.get('output_device_id')}: {command.get('action')}{suffix}"
            f" (triggered_by={command.get('triggered_by')})"
        )
