from __future__ import annotations

import json
from typing import Optional, Sequence

import pytest
from typer.testing import CliRunner

from cli.app import app
from models.errors import TransportError
from services.dispatch import PublishStrategy
from settings import get_settings


class FailingStrategy(PublishStrategy):
    name = "sequential"

    def run(
        self,
        sensors: Sequence,
        topic: str,
        interval: float,
        timeout: float,
        max_cycles: Optional[int] = None,
    ) -> int:
        try:
            raise ConnectionResetError("connection reset by peer")
        except ConnectionResetError as exc:
            raise TransportError("Delivery to topic 'iot' failed") from exc


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch):
    monkeypatch.setattr("cli.app.configure_logging", lambda level=None: None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.mark.parametrize("strategy", ["concurrent", "sequential"])
def test_run_dry_run_records_messages(runner: CliRunner, tmp_path, strategy: str) -> None:
    record = tmp_path / "messages.jsonl"

    result = runner.invoke(
        app,
        [
            "run",
            "--strategy",
            strategy,
            "--dry-run",
            "--cycles",
            "2",
            "--interval",
            "0",
            "--record",
            str(record),
        ],
    )

    assert result.exit_code == 0, result.output
    assert f"using the {strategy} strategy" in result.stdout
    assert "Completed 2 cycle(s)." in result.stdout
    lines = [json.loads(line) for line in record.read_text().splitlines()]
    assert len(lines) == 4
    assert {line["topic"] for line in lines} == {"iot"}
    locations = sorted(json.loads(line["payload"])["location"] for line in lines)
    assert locations == ["bedroom", "bedroom", "livingroom", "livingroom"]


def test_run_uses_custom_locations_and_topic(runner: CliRunner, tmp_path) -> None:
    record = tmp_path / "messages.jsonl"

    result = runner.invoke(
        app,
        [
            "run",
            "-s",
            "sequential",
            "--dry-run",
            "--cycles",
            "1",
            "--topic",
            "garden",
            "-l",
            "greenhouse",
            "--record",
            str(record),
        ],
    )

    assert result.exit_code == 0, result.output
    (line,) = [json.loads(raw) for raw in record.read_text().splitlines()]
    assert line["topic"] == "garden"
    assert json.loads(line["payload"])["location"] == "greenhouse"


def test_run_reports_fatal_error_with_cause(monkeypatch, runner: CliRunner) -> None:
    monkeypatch.setattr("cli.app.build_strategy", lambda *args, **kwargs: FailingStrategy())

    result = runner.invoke(app, ["run", "--cycles", "1"])

    assert result.exit_code == 1
    assert "Dispatch failed: TransportError" in result.output
    assert "caused by ConnectionResetError: connection reset by peer" in result.output


def test_run_rejects_unknown_strategy_from_environment(monkeypatch, runner: CliRunner) -> None:
    monkeypatch.setenv("DISPATCH_STRATEGY", "parallel")

    result = runner.invoke(app, ["run", "--dry-run", "--cycles", "1"])

    assert result.exit_code == 2
    assert "parallel" in result.output


def test_sample_prints_reading(runner: CliRunner) -> None:
    result = runner.invoke(app, ["sample", "--location", "attic"])

    assert result.exit_code == 0
    document = json.loads(result.stdout.splitlines()[0])
    assert document["location"] == "attic"
    assert 12.0 <= document["temperature"] <= 30.0
    assert "Sensor Reading" in result.stdout


def test_run_rejects_record_without_dry_run(monkeypatch, runner: CliRunner, tmp_path) -> None:
    built: list = []
    monkeypatch.setattr(
        "cli.app.build_strategy", lambda *args, **kwargs: built.append(kwargs)
    )
    record = tmp_path / "messages.jsonl"

    result = runner.invoke(
        app, ["run", "-s", "sequential", "--cycles", "1", "--record", str(record)]
    )

    assert result.exit_code == 2
    assert "--dry-run" in result.output
    assert built == []
    assert not record.exists()


@pytest.mark.parametrize("option", ["--interval", "--timeout"])
def test_run_rejects_non_finite_durations(runner: CliRunner, option: str) -> None:
    result = runner.invoke(app, ["run", "--dry-run", "--cycles", "1", option, "inf"])

    assert result.exit_code == 2
    assert option in result.output
