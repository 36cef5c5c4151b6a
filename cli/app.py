from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_range, render_reading
from logging_config import configure_logging
from datastore.sqlite_store import SQLiteReadingStore
from services.actuator import ActuatorStateTracker, LoggingActuator, record_position_changes
from services.device import DeviceRuntime, SimulatedSensorSource
from settings import DEFAULT_TOPICS, get_settings
from transport.mqtt import MqttTransport


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the soil valve hub.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:3000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="HTTP timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recent reading."""
    state = _get_state(ctx)
    render_reading(state.client.get_latest())


@app.command("range")
def range_command(
    ctx: typer.Context,
    start: Optional[str] = typer.Option(None, "--start", help="Inclusive ISO-8601 lower bound."),
    end: Optional[str] = typer.Option(None, "--end", help="Inclusive ISO-8601 upper bound."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum readings to list."),
) -> None:
    """List readings in a time range, newest first."""
    state = _get_state(ctx)
    render_range(state.client.get_range(start=start, end=end, limit=limit))


@app.command("export")
def export_command(
    ctx: typer.Context,
    output: Path = typer.Option(
        Path("sensor-data.csv"), "--output", "-o", dir_okay=False, help="Destination CSV file."
    ),
    start: Optional[str] = typer.Option(None, "--start", help="Inclusive ISO-8601 lower bound."),
    end: Optional[str] = typer.Option(None, "--end", help="Inclusive ISO-8601 upper bound."),
    limit: Optional[int] = typer.Option(None, "--limit", help="Maximum rows to export."),
) -> None:
    """Download readings as CSV, oldest first."""
    state = _get_state(ctx)
    body = state.client.export_csv(start=start, end=end, limit=limit)
    output.write_text(body, encoding="utf-8")
    rows = max(len(body.splitlines()) - 1, 0)
    typer.secho(f"Wrote {rows} row(s) to {output}", fg=typer.colors.GREEN)


@app.command("push")
def push_command(
    ctx: typer.Context,
    ph: float = typer.Option(..., "--ph", help="Soil pH."),
    soil: float = typer.Option(..., "--soil", min=0, max=100, help="Soil moisture percent."),
    temperature: Optional[float] = typer.Option(None, "--temperature", help="Air temperature in C."),
    humidity: Optional[float] = typer.Option(None, "--humidity", help="Relative humidity percent."),
    servo_position: Optional[int] = typer.Option(
        None, "--servo-position", min=0, max=180, help="Current valve position in degrees."
    ),
) -> None:
    """Post one reading to the direct write endpoint."""
    state = _get_state(ctx)
    payload = {"ph": ph, "soil": soil}
    if temperature is not None:
        payload["temperature"] = temperature
    if humidity is not None:
        payload["humidity"] = humidity
    if servo_position is not None:
        payload["servo_position"] = servo_position
    result = state.client.post_reading(payload)
    typer.secho(result.get("message", "Reading stored."), fg=typer.colors.GREEN)


@app.command("simulate")
def simulate_command(
    broker: Optional[str] = typer.Option(
        None, "--broker", help="MQTT broker host (defaults to MQTT_BROKER_HOST)."
    ),
    port: Optional[int] = typer.Option(None, "--port", help="MQTT broker port."),
    duration: float = typer.Option(60.0, "--duration", min=0, help="Seconds to run."),
    sensor_period: Optional[float] = typer.Option(None, "--sensor-period", help="Seconds between sensor reads."),
    control_period: Optional[float] = typer.Option(None, "--control-period", help="Seconds between valve evaluations."),
    sensor_topic: str = typer.Option(DEFAULT_TOPICS[0], "--sensor-topic"),
    servo_topic: str = typer.Option(DEFAULT_TOPICS[1], "--servo-topic"),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for simulated sensors."),
    record_db: Optional[Path] = typer.Option(
        None, "--record-db", help="SQLite file that receives valve position changes."
    ),
) -> None:
    """Run a simulated field device publishing readings over MQTT."""
    configure_logging()
    settings = get_settings()
    host = broker or settings.mqtt_host
    if not host:
        raise typer.BadParameter("No broker configured; pass --broker or set MQTT_BROKER_HOST.")

    transport = MqttTransport(
        host=host,
        port=port or settings.mqtt_port,
        keepalive=settings.mqtt_keepalive,
        reconnect_max_delay=settings.mqtt_reconnect_max_delay,
        connect_timeout=settings.mqtt_connect_timeout,
    )
    tracker = ActuatorStateTracker(actuator=LoggingActuator(), deadband=settings.control_deadband)
    recorder: Optional[SQLiteReadingStore] = None
    if record_db is not None:
        recorder = SQLiteReadingStore(record_db)
        recorder.open()
        tracker.add_listener(record_position_changes(recorder))
    runtime = DeviceRuntime(
        source=SimulatedSensorSource(seed=seed),
        tracker=tracker,
        publisher=transport,
        sensor_topic=sensor_topic,
        servo_topic=servo_topic,
        sensor_period=sensor_period or settings.sensor_period,
        control_period=control_period or settings.control_period,
    )

    typer.echo(f"Simulating device against {transport.broker} for {duration}s ...")
    transport.start()
    runtime.start()
    try:
        time.sleep(duration)
    except KeyboardInterrupt:
        typer.echo("Interrupted.")
    finally:
        runtime.stop(timeout=5.0)
        transport.stop()
        if recorder is not None:
            recorder.close()
    typer.secho(
        f"Simulation finished. Valve at {tracker.current_position} degrees.",
        fg=typer.colors.GREEN,
    )
