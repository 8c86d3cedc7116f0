from __future__ import annotations

import pytest

from bannerbot.errors import StoreError
from bannerbot.models import PersistedScheduleRecord, RECORD_FIELDS
from tests.fakes import make_schedule


def test_never_run_schedule_stores_now_as_last_run() -> None:
    record = make_schedule(start_at=500).to_record(now=1_000)

    assert record.last_run_epoch_seconds == 1_000
    assert record.start_at_epoch_seconds == 500


def test_record_round_trips_through_mapping() -> None:
    record = make_schedule(last_run=700, lookback_limit=25).to_record(now=1_000)
    mapping = record.to_mapping()

    assert set(mapping) == set(RECORD_FIELDS)
    assert all(isinstance(value, str) for value in mapping.values())
    restored = PersistedScheduleRecord.from_mapping(mapping).to_schedule()
    assert restored == make_schedule(last_run=700, lookback_limit=25)


def test_from_mapping_rejects_missing_field() -> None:
    mapping = make_schedule().to_record(now=0).to_mapping()
    del mapping["interval_seconds"]

    with pytest.raises(StoreError, match="interval_seconds"):
        PersistedScheduleRecord.from_mapping(mapping)


def test_from_mapping_rejects_non_integer() -> None:
    mapping = make_schedule().to_record(now=0).to_mapping()
    mapping["source_id"] = "general"

    with pytest.raises(StoreError, match="source_id"):
        PersistedScheduleRecord.from_mapping(mapping)


def test_with_last_run_keeps_other_fields() -> None:
    schedule = make_schedule(interval_seconds=3600)
    updated = schedule.with_last_run(42)

    assert updated.last_run == 42
    assert updated.interval_seconds == 3600
    assert schedule.last_run is None
