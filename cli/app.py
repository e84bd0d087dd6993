from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import List, NoReturn, Optional

import typer

from cli.render import render_failure, render_reading
from logging_config import configure_logging
from models.errors import DispatchError
from services.dispatch import DispatchLoop, build_strategy
from services.sensor import TemperatureSensor, build_sensors
from settings import get_settings

logger = logging.getLogger(__name__)

MAX_SECONDS = 86400.0


class StrategyName(str, Enum):
    concurrent = "concurrent"
    sequential = "sequential"


app = typer.Typer(
    help="Publish simulated IoT temperature readings to a Kafka topic.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _fail(exc: DispatchError) -> NoReturn:
    render_failure(exc)
    raise typer.Exit(code=1)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        help="Logging level (defaults to LOG_LEVEL env or INFO).",
    ),
) -> None:
    """Entry point for the CLI."""
    configure_logging(log_level.upper() if log_level else None)


@app.command("run")
def run_command(
    strategy: Optional[StrategyName] = typer.Option(
        None,
        "--strategy",
        "-s",
        case_sensitive=False,
        help="Dispatch strategy (defaults to DISPATCH_STRATEGY env or concurrent).",
    ),
    topic: Optional[str] = typer.Option(None, "--topic", "-t", help="Destination topic."),
    interval: Optional[float] = typer.Option(
        None, "--interval", min=0.0, max=MAX_SECONDS, help="Seconds to pause between cycles."
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        min=0.0,
        max=MAX_SECONDS,
        help="Seconds to wait for each delivery acknowledgment.",
    ),
    locations: Optional[List[str]] = typer.Option(
        None,
        "--location",
        "-l",
        help="Sensor location label; repeat for several sensors.",
    ),
    cycles: Optional[int] = typer.Option(
        None, "--cycles", min=1, help="Stop after this many cycles (default: run forever)."
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run/--kafka",
        help="Record messages in memory instead of publishing to Kafka.",
    ),
    record: Optional[Path] = typer.Option(
        None,
        "--record",
        dir_okay=False,
        help="Append dry-run messages to this JSON Lines file.",
    ),
) -> None:
    """Publish readings from every sensor on a fixed interval."""
    if record is not None and not dry_run:
        raise typer.BadParameter(
            "--record only applies to dry runs; add --dry-run.", param_hint="--record"
        )
    settings = get_settings()
    strategy_name = strategy.value if strategy is not None else settings.strategy
    try:
        publish_strategy = build_strategy(
            strategy_name, settings=settings, dry_run=dry_run, record_path=record
        )
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--strategy") from exc
    except DispatchError as exc:
        _fail(exc)

    loop = DispatchLoop(
        strategy=publish_strategy,
        sensors=build_sensors(locations or settings.sensor_locations),
        topic=topic or settings.topic,
        interval=interval if interval is not None else settings.sleep_interval,
        timeout=timeout if timeout is not None else settings.publish_timeout,
    )
    target = "memory" if dry_run else settings.bootstrap_servers
    typer.echo(
        f"Publishing {len(loop.sensors)} sensor(s) to {loop.topic!r} on {target} "
        f"using the {publish_strategy.name} strategy ..."
    )

    try:
        completed = loop.run(max_cycles=cycles)
    except DispatchError as exc:
        _fail(exc)
    except KeyboardInterrupt:
        logger.info("Interrupted by operator", extra={"strategy": publish_strategy.name})
        typer.secho("Interrupted.", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=130)

    typer.secho(f"Completed {completed} cycle(s).", fg=typer.colors.GREEN)


@app.command("sample")
def sample_command(
    location: str = typer.Option("bedroom", "--location", "-l", help="Sensor location label."),
) -> None:
    """Print one simulated reading as it would be published."""
    reading = TemperatureSensor(location).measure()
    typer.echo(reading.to_json())
    typer.echo()
    render_reading(reading)
