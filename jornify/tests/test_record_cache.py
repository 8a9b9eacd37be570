from datetime import datetime, timedelta, timezone

import pytest

from jornify.core.exceptions import HashComputationError, RecordNotFoundError
from jornify.services.hash_chain import ChainRecord, record_to_dict, verify_chain
from jornify.services.record_cache import RecordCache, WriteKind, WriteState

T0 = datetime(2024, 5, 6, 8, 0, tzinfo=timezone.utc)


def _draft(record_id: str, start: datetime, employee_id: str = "emp-1") -> ChainRecord:
    return ChainRecord(id=record_id, employee_id=employee_id, start_time=start)


def test_begin_append_chains_off_cached_tail_and_stays_pending():
    cache = RecordCache()
    first = cache.begin_append(_draft("a", T0))
    cache.confirm(first)
    cache.begin_amend("a", end_time=T0 + timedelta(hours=1))

    write = cache.begin_append(_draft("b", T0 + timedelta(hours=2)))

    assert write.kind is WriteKind.CREATE
    assert write.state is WriteState.PENDING
    assert write.record.parent_hash == cache.get("a").row_hash
    assert cache.get("b") == write.record


def test_confirm_replaces_local_copy_with_stored_copy():
    cache = RecordCache()
    write = cache.begin_append(_draft("a", T0))

    stored = record_to_dict(write.record)
    result = cache.confirm(write, stored)

    assert write.state is WriteState.CONFIRMED
    assert result == write.record
    assert cache.pending() == []


def test_failed_create_removes_optimistic_record():
    cache = RecordCache()
    write = cache.begin_append(_draft("a", T0))

    cache.fail(write)

    assert write.state is WriteState.FAILED
    assert "a" not in cache
    assert len(cache) == 0


def test_failed_amend_restores_previous_version():
    cache = RecordCache()
    cache.confirm(cache.begin_append(_draft("a", T0)))
    before = cache.get("a")

    write = cache.begin_amend("a", end_time=T0 + timedelta(hours=1))
    assert cache.get("a").end_time is not None

    cache.fail(write)

    assert cache.get("a") == before
    assert cache.open_record("emp-1") == before


def test_write_cannot_settle_twice():
    cache = RecordCache()
    write = cache.begin_append(_draft("a", T0))
    cache.confirm(write)

    with pytest.raises(ValueError, match="already confirmed"):
        cache.fail(write)


def test_begin_amend_rejects_unknown_and_in_flight_records():
    cache = RecordCache()
    with pytest.raises(RecordNotFoundError):
        cache.begin_amend("missing", notes="x")

    cache.begin_append(_draft("a", T0))
    with pytest.raises(ValueError, match="in flight"):
        cache.begin_amend("a", notes="x")


def test_begin_append_rejects_duplicate_id():
    cache = RecordCache()
    cache.begin_append(_draft("a", T0))
    with pytest.raises(ValueError, match="already cached"):
        cache.begin_append(_draft("a", T0 + timedelta(hours=1)))


def test_failed_hash_computation_leaves_no_placeholder():
    cache = RecordCache()
    draft = ChainRecord(id="a", employee_id="emp-1", start_time=T0, notes="bad \ud800")

    with pytest.raises(HashComputationError):
        cache.begin_append(draft)

    assert "a" not in cache


def test_reconcile_skips_pending_and_drops_stale_rows():
    server = RecordCache()
    server_a = server.begin_append(_draft("a", T0)).record

    cache = RecordCache([server_a])
    cache.confirm(cache.begin_append(_draft("stale", T0 + timedelta(hours=1))))
    pending = cache.begin_amend("a", notes="local edit")

    changed = cache.reconcile([record_to_dict(server_a)], employee_id="emp-1")

    assert changed == 1
    assert "stale" not in cache
    assert cache.get("a") == pending.record


def test_records_are_sorted_and_filtered_by_employee():
    cache = RecordCache()
    cache.confirm(cache.begin_append(_draft("late", T0 + timedelta(hours=3))))
    cache.confirm(cache.begin_append(_draft("other", T0, employee_id="emp-2")))

    assert [r.id for r in cache.records("emp-1")] == ["late"]
    assert {r.id for r in cache.records()} == {"late", "other"}


def test_confirmed_appends_form_a_valid_chain():
    cache = RecordCache()
    for i in range(3):
        start = T0 + timedelta(hours=i)
        cache.confirm(cache.begin_append(_draft(f"r{i}", start)))
        cache.confirm(cache.begin_amend(f"r{i}", end_time=start + timedelta(minutes=30)))

    assert verify_chain(cache.records("emp-1")).is_valid is True
