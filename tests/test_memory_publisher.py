"""Unit tests for the in-memory publishers used by dry runs."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from messaging.memory import AsyncMemoryPublisher, MemoryPublisher, MessageLog
from models.errors import TransportError


def test_offsets_increase_per_topic() -> None:
    publisher = MemoryPublisher()

    first = publisher.publish("iot", b'{"n":1}', timeout=1.0)
    second = publisher.publish("iot", b'{"n":2}', timeout=1.0)
    other = publisher.publish("alerts", b'{"n":3}', timeout=1.0)

    assert (first.offset, second.offset, other.offset) == (0, 1, 0)
    assert [message.payload for message in publisher.log.messages("iot")] == [
        '{"n":1}',
        '{"n":2}',
    ]
    assert len(publisher.log.messages()) == 3


def test_record_path_persists_and_reloads(tmp_path: Path) -> None:
    path = tmp_path / "records" / "messages.jsonl"
    publisher = MemoryPublisher(MessageLog(path))

    publisher.publish("iot", b'{"location":"bedroom"}', timeout=1.0)
    publisher.close()

    lines = path.read_text().splitlines()
    assert json.loads(lines[0]) == {
        "topic": "iot",
        "payload": '{"location":"bedroom"}',
        "offset": 0,
    }
    assert publisher.closed is True

    reloaded = MessageLog(path)
    assert len(reloaded.messages("iot")) == 1
    assert reloaded.append("iot", b"{}").offset == 1


def test_reload_skips_malformed_lines(tmp_path: Path) -> None:
    path = tmp_path / "messages.jsonl"
    path.write_text('not json\n\n{"topic":"iot","payload":"{}","offset":4}\n')

    log = MessageLog(path)

    assert [message.offset for message in log.messages()] == [4]
    assert log.append("iot", b"{}").offset == 5


def test_async_publisher_shares_the_log() -> None:
    log = MessageLog()
    publisher = AsyncMemoryPublisher(log)

    async def scenario() -> None:
        await publisher.start()
        await asyncio.gather(
            publisher.publish("iot", b"{}", timeout=1.0),
            publisher.publish("iot", b"{}", timeout=1.0),
        )
        await publisher.close()

    asyncio.run(scenario())

    assert [message.offset for message in log.messages("iot")] == [0, 1]
    assert publisher.closed is True


def test_unwritable_record_path_raises_transport_error(tmp_path: Path) -> None:
    path = tmp_path / "messages.jsonl"
    log = MessageLog(path)
    path.mkdir()
    publisher = MemoryPublisher(log)

    with pytest.raises(TransportError) as excinfo:
        publisher.publish("iot", b"{}", timeout=1.0)

    assert isinstance(excinfo.value.__cause__, OSError)
    assert log.messages() == []
