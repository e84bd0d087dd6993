from __future__ import annotations

from typing import Any, Iterable, List

import typer

from models.readings import SensorReading


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def render_reading(reading: SensorReading) -> None:
    echo_heading("Sensor Reading")
    echo_key_values(
        [
            ("id", reading.id),
            ("timestamp", reading.timestamp.isoformat()),
            ("location", reading.location),
            ("temperature", f"{reading.temperature:.2f}"),
        ]
    )


def cause_chain(exc: BaseException) -> List[str]:
    """Messages of ``exc`` followed by each ``__cause__`` it was raised from."""
    messages: List[str] = []
    current: BaseException | None = exc
    while current is not None:
        messages.append(f"{type(current).__name__}: {current}")
        current = current.__cause__
    return messages


def render_failure(exc: BaseException) -> None:
    lines = cause_chain(exc)
    typer.secho(f"Dispatch failed: {lines[0]}", fg=typer.colors.RED, err=True)
    for line in lines[1:]:
        typer.secho(f"  caused by {line}", fg=typer.colors.RED, err=True)
