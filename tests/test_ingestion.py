from __future__ import annotations

import json
import threading
from datetime import datetime, timedelta, timezone

import pytest

from sensor_logger.core.errors import ParseError
from sensor_logger.repositories.sql import SqlReadingRepository
from sensor_logger.services.ingestion import (
    IngestionStats,
    ReadingIngestor,
    parse_payload,
    parse_topic,
)
from tests.fakes import FakeReadingRepository


def test_parse_topic_extracts_device_id() -> None:
    assert parse_topic("sensors/dev1/data") == "dev1"
    assert parse_topic("sensors/esp32-kitchen_01/data") == "esp32-kitchen_01"


@pytest.mark.parametrize(
    "topic",
    [
        "foo/bar",
        "sensors/dev1",
        "sensors/dev1/data/extra",
        "devices/dev1/data",
        "sensors/dev1/status",
        "sensors//data",
        "",
    ],
)
def test_parse_topic_rejects_malformed(topic: str) -> None:
    with pytest.raises(ParseError):
        parse_topic(topic)


def test_parse_payload_accepts_scalar_mapping() -> None:
    payload = parse_payload(b'{"dht_temperature":23.5,"dht_humidity":65,"state":"ok","door":false}')
    assert payload == {"dht_temperature": 23.5, "dht_humidity": 65, "state": "ok", "door": False}
    assert isinstance(payload["dht_humidity"], int)
    assert payload["door"] is False


@pytest.mark.parametrize(
    "raw",
    [
        b"not-json",
        b"",
        b"[1, 2, 3]",
        b'"just a string"',
        b'{"t": NaN}',
        b'{"t": Infinity}',
        b'{"t": 1e400}',
        b'{"nested": {"t": 1}}',
        b'{"list": [1, 2]}',
        b'{"t": null}',
        b"\xff\xfe\x00",
    ],
)
def test_parse_payload_rejects_invalid(raw: bytes) -> None:
    with pytest.raises(ParseError):
        parse_payload(raw)


def test_parse_payload_accepts_any_json_object() -> None:
    assert parse_payload(b"{}") == {}
    long_key = "k" * 300
    assert parse_payload(f'{{"{long_key}": 1}}'.encode()) == {long_key: 1}
    wide = {f"m{i}": i for i in range(400)}
    assert parse_payload(json.dumps(wide).encode()) == wide


def test_empty_object_is_stored(ingestor: ReadingIngestor, repo: SqlReadingRepository) -> None:
    reading = ingestor.handle_message("sensors/dev1/data", b"{}")

    assert reading is not None
    assert reading.payload == {}
    assert repo.latest(device_id="dev1").payload == {}
    assert ingestor.stats() == IngestionStats(received=1, stored=1, rejected=0, failed=0)


def test_parse_payload_enforces_size_cap() -> None:
    raw = b'{"note": "' + b"x" * 200 + b'"}'
    with pytest.raises(ParseError):
        parse_payload(raw, max_bytes=100)
    assert parse_payload(raw, max_bytes=1000)["note"] == "x" * 200


def test_handle_message_stores_reading(ingestor: ReadingIngestor, repo: SqlReadingRepository) -> None:
    reading = ingestor.handle_message(
        "sensors/dev1/data", b'{"dht_temperature":23.5,"dht_humidity":65.2}'
    )

    assert reading is not None
    assert reading.device_id == "dev1"
    latest = repo.latest(device_id="dev1")
    assert latest is not None
    assert latest.payload == {"dht_temperature": 23.5, "dht_humidity": 65.2}
    assert ingestor.stats().stored == 1


def test_device_clock_is_not_trusted(ingestor: ReadingIngestor) -> None:
    reading = ingestor.handle_message(
        "sensors/dev1/data", b'{"t": 1, "timestamp": "1999-01-01T00:00:00Z"}'
    )
    assert reading is not None
    assert reading.timestamp > datetime.now(tz=timezone.utc) - timedelta(minutes=1)
    assert reading.payload["timestamp"] == "1999-01-01T00:00:00Z"


@pytest.mark.parametrize(
    ("topic", "raw"),
    [
        ("foo/bar", b'{"t": 1}'),
        ("sensors/dev1/data", b"not-json"),
    ],
)
def test_malformed_messages_store_nothing(
    ingestor: ReadingIngestor, repo: SqlReadingRepository, topic: str, raw: bytes
) -> None:
    assert ingestor.handle_message(topic, raw) is None
    assert repo.devices_summary() == []
    stats = ingestor.stats()
    assert stats.received == 1
    assert stats.rejected == 1
    assert stats.stored == 0


def test_storage_failure_is_logged_and_dropped(caplog: pytest.LogCaptureFixture) -> None:
    repo = FakeReadingRepository(fail_inserts=True)
    ingestor = ReadingIngestor(repo=repo)

    assert ingestor.handle_message("sensors/dev1/data", b'{"t": 1}') is None
    assert repo.calls == ["insert"]
    assert ingestor.stats().failed == 1
    assert "Failed to store reading" in caplog.text

    # The next message is still processed.
    repo.fail_inserts = False
    assert ingestor.handle_message("sensors/dev1/data", b'{"t": 2}') is not None
    assert ingestor.stats().stored == 1


def test_redelivered_message_is_stored_twice(
    ingestor: ReadingIngestor, repo: SqlReadingRepository
) -> None:
    raw = b'{"dht_temperature": 23.5}'
    first = ingestor.handle_message("sensors/dev1/data", raw)
    second = ingestor.handle_message("sensors/dev1/data", raw)

    assert first is not None and second is not None
    assert second.id > first.id
    assert repo.devices_summary()[0].reading_count == 2


def test_concurrent_ingest_and_queries(
    ingestor: ReadingIngestor, repo: SqlReadingRepository
) -> None:
    writers, messages = 4, 50
    errors: list[BaseException] = []
    done = threading.Event()

    def write(worker: int) -> None:
        for seq in range(messages):
            ingestor.handle_message(f"sensors/dev{worker}/data", f'{{"seq": {seq}}}'.encode())

    def read() -> None:
        since = datetime.now(tz=timezone.utc) - timedelta(hours=1)
        try:
            while not done.is_set():
                repo.historical(device_id="dev0", since=since, limit=10)
                repo.devices_summary()
        except Exception as e:  # noqa: BLE001
            errors.append(e)

    write_threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
    read_threads = [threading.Thread(target=read) for _ in range(2)]
    for t in read_threads + write_threads:
        t.start()
    for t in write_threads:
        t.join()
    done.set()
    for t in read_threads:
        t.join()

    assert errors == []
    total = writers * messages
    assert ingestor.stats() == IngestionStats(received=total, stored=total, rejected=0, failed=0)
    counts = {d.device_id: d.reading_count for d in repo.devices_summary()}
    assert counts == {f"dev{n}": messages for n in range(writers)}
