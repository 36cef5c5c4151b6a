from __future__ import annotations

from typing import Any, Dict, Iterable

import typer

from services.policy import describe_ph, describe_soil


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _with_label(value: Any, describe) -> str:
    if isinstance(value, (int, float)):
        return f"{value} ({describe(value)})"
    return "--"


def render_reading(payload: Dict[str, Any]) -> None:
    echo_heading("Latest Reading")
    if not payload:
        typer.echo("No readings recorded yet.")
        return
    echo_key_values(
        [
            ("receivedAt", payload.get("receivedAt")),
            ("ph", _with_label(payload.get("ph"), describe_ph)),
            ("soil", _with_label(payload.get("soil"), describe_soil)),
            ("temperature", payload.get("temperature")),
            ("humidity", payload.get("humidity")),
            ("servo_position", payload.get("servo_position")),
            ("topic", payload.get("topic")),
        ]
    )


def render_range(payload: Dict[str, Any]) -> None:
    readings = payload.get("data") or []
    echo_heading(f"Readings ({payload.get('count', len(readings))})")
    if not readings:
        typer.echo("No data for selected range.")
        return
    for item in readings:
        typer.echo(
            f"  - {item.get('receivedAt')} pH: {item.get('ph', '--')} | "
            f"Soil: {item.get('soil', '--')}% | Temp: {item.get('temperature', '--')} C | "
            f"Humidity: {item.get('humidity', '--')}% | Servo: {item.get('servo_position', '--')}"
        )
