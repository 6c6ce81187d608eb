from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from sensor_logger.core.errors import InvalidParameter, NotFound
from sensor_logger.services.readings import ReadingQueryService
from tests.fakes import FakeReadingRepository


@pytest.fixture()
def fake_repo() -> FakeReadingRepository:
    return FakeReadingRepository()


@pytest.fixture()
def service(fake_repo: FakeReadingRepository) -> ReadingQueryService:
    return ReadingQueryService(fake_repo)


@pytest.mark.parametrize(
    ("hours", "limit"),
    [(0, 10), (9000, 10), (-1, 10), (24, 0), (24, 20000), (24, -5)],
)
def test_out_of_range_parameters_never_reach_storage(
    service: ReadingQueryService, fake_repo: FakeReadingRepository, hours: int, limit: int
) -> None:
    with pytest.raises(InvalidParameter):
        service.historical("dev1", hours=hours, limit=limit)
    with pytest.raises(InvalidParameter):
        service.metric_series("dev1", "co2", hours=hours, limit=limit)
    assert fake_repo.calls == []


@pytest.mark.parametrize("hours", [0, 8761, 9000])
def test_stats_rejects_bad_window(
    service: ReadingQueryService, fake_repo: FakeReadingRepository, hours: int
) -> None:
    with pytest.raises(InvalidParameter):
        service.stats("dev1", hours=hours)
    assert fake_repo.calls == []


def test_boundary_values_are_accepted(
    service: ReadingQueryService, fake_repo: FakeReadingRepository
) -> None:
    service.historical("dev1", hours=8760, limit=10000)
    service.historical("dev1", hours=1, limit=1)
    assert fake_repo.calls == ["historical", "historical"]


def test_latest_without_readings_is_not_found(service: ReadingQueryService) -> None:
    with pytest.raises(NotFound):
        service.latest("ghost")


def test_stats_without_readings_is_not_found(service: ReadingQueryService) -> None:
    with pytest.raises(NotFound):
        service.stats("ghost", hours=24)


def test_historical_result_carries_parameters(
    service: ReadingQueryService, fake_repo: FakeReadingRepository
) -> None:
    for i in range(5):
        fake_repo.insert(device_id="dev1", payload={"n": i})

    result = service.historical("dev1", hours=2, limit=3)

    assert result.hours == 2
    assert result.limit == 3
    assert len(result.readings) == 3
    assert [r.payload["n"] for r in result.readings] == [4, 3, 2]


def test_metric_series_shapes_points(
    service: ReadingQueryService, fake_repo: FakeReadingRepository
) -> None:
    fake_repo.insert(device_id="dev1", payload={"co2": 410, "t": 20.0})
    fake_repo.insert(device_id="dev1", payload={"t": 21.0})

    result = service.metric_series("dev1", "co2")

    assert result.metric == "co2"
    assert [p.value for p in result.points] == [410]


def test_stats_reports_time_range(
    service: ReadingQueryService, fake_repo: FakeReadingRepository
) -> None:
    fake_repo.insert(device_id="dev1", payload={"t": 1})
    fake_repo.insert(device_id="dev1", payload={"t": 2})

    before = datetime.now(tz=timezone.utc)
    result = service.stats("dev1", hours=6)

    assert result.stats.count == 2
    assert result.stop - result.start == timedelta(hours=6)
    assert result.stop >= before


def test_list_devices_is_idempotent(
    service: ReadingQueryService, fake_repo: FakeReadingRepository
) -> None:
    fake_repo.insert(device_id="a", payload={"t": 1})
    fake_repo.insert(device_id="b", payload={"t": 1})

    assert service.list_devices() == service.list_devices()
