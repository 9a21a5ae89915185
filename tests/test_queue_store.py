"""Tests for QueueStore."""

from __future__ import annotations

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from salon_queue import NotFound, QueueStore, StorageUnavailable
from salon_queue.database import create_db_engine
from salon_queue.models import QueueEntry
from salon_queue.schemas import QueueEntryRecord, QueueEntryUpdate, QueueStatus


def _record(salon_id: str = "salon-1", joined_at: int = 1000, **kwargs) -> QueueEntryRecord:
    fields = {
        "entry_id": str(uuid4()),
        "salon_id": salon_id,
        "user_id": "user-1",
        "service_ids": ["haircut"],
        "total_price": 25.0,
        "status": QueueStatus.waiting,
        "position": 0,
        "joined_at": joined_at,
    }
    fields.update(kwargs)
    return QueueEntryRecord(**fields)


# ============================================================================
# Basic Operations Tests
# ============================================================================


def test_append_and_get(store: QueueStore) -> None:
    record = _record(applied_offer_ids=["autumn"])
    stored = store.append(record)

    assert stored == record
    retrieved = store.get(record.entry_id)
    assert retrieved.entry_id == record.entry_id
    assert retrieved.service_ids == ["haircut"]
    assert retrieved.applied_offer_ids == ["autumn"]
    assert retrieved.status is QueueStatus.waiting
    assert retrieved.estimated_wait_minutes is None


def test_get_missing_raises_not_found(store: QueueStore) -> None:
    with pytest.raises(NotFound):
        _ = store.get("missing")


def test_update_missing_raises_not_found(store: QueueStore) -> None:
    with pytest.raises(NotFound):
        _ = store.update("missing", QueueEntryUpdate(position=1))


def test_update_only_writes_set_fields(store: QueueStore) -> None:
    record = store.append(_record(position=2))

    updated = store.update(record.entry_id, QueueEntryUpdate(served_at=5000))
    assert updated.position == 2
    assert updated.served_at == 5000

    updated = store.update(
        record.entry_id, QueueEntryUpdate(status=QueueStatus.in_progress, position=None)
    )
    assert updated.status is QueueStatus.in_progress
    assert updated.position is None
    assert updated.served_at == 5000


def test_update_stores_status_value(store: QueueStore, session_factory: sessionmaker) -> None:
    record = store.append(_record())
    _ = store.update(record.entry_id, QueueEntryUpdate(status=QueueStatus.no_show))

    with session_factory() as session:
        row = session.execute(
            select(QueueEntry).where(QueueEntry.entry_id == record.entry_id)
        ).scalar_one()
        assert row.status == "no-show"


def test_list_by_salon_and_status_orders_by_join_time(store: QueueStore) -> None:
    late = store.append(_record(joined_at=3000))
    early = store.append(_record(joined_at=1000))
    _ = store.append(_record(joined_at=2000, status=QueueStatus.cancelled, position=None))
    _ = store.append(_record(salon_id="salon-2", joined_at=500))

    waiting = store.list_by_salon_and_status("salon-1", QueueStatus.waiting)

    assert [e.entry_id for e in waiting] == [early.entry_id, late.entry_id]


def test_list_by_salon_and_status_breaks_ties_by_insertion(store: QueueStore) -> None:
    first = store.append(_record(joined_at=1000))
    second = store.append(_record(joined_at=1000))

    waiting = store.list_by_salon_and_status("salon-1", QueueStatus.waiting)

    assert [e.entry_id for e in waiting] == [first.entry_id, second.entry_id]


def test_list_by_user_newest_first(store: QueueStore) -> None:
    old = store.append(_record(joined_at=1000, user_id="user-7"))
    new = store.append(_record(salon_id="salon-2", joined_at=2000, user_id="user-7"))
    _ = store.append(_record(joined_at=3000, user_id="someone-else"))

    entries = store.list_by_user("user-7")

    assert [e.entry_id for e in entries] == [new.entry_id, old.entry_id]


def test_list_by_salon_includes_all_statuses(store: QueueStore) -> None:
    _ = store.append(_record())
    _ = store.append(_record(status=QueueStatus.completed, position=None))

    assert len(store.list_by_salon("salon-1")) == 2


# ============================================================================
# Batch Tests
# ============================================================================


def test_batch_commits_all_changes_together(store: QueueStore) -> None:
    a = store.append(_record(joined_at=1000, position=0))
    b = store.append(_record(joined_at=2000, position=1))

    with store.batch("salon-1") as batch:
        _ = batch.update(a.entry_id, QueueEntryUpdate(status=QueueStatus.cancelled, position=None))
        _ = batch.update(b.entry_id, QueueEntryUpdate(position=0))

    assert store.get(a.entry_id).status is QueueStatus.cancelled
    assert store.get(b.entry_id).position == 0


def test_batch_rolls_back_on_error(store: QueueStore) -> None:
    a = store.append(_record(joined_at=1000, position=0))
    b = store.append(_record(joined_at=2000, position=1))

    with pytest.raises(NotFound):
        with store.batch("salon-1") as batch:
            _ = batch.update(a.entry_id, QueueEntryUpdate(status=QueueStatus.cancelled, position=None))
            _ = batch.update(b.entry_id, QueueEntryUpdate(position=0))
            _ = batch.update("missing", QueueEntryUpdate(position=5))

    assert store.get(a.entry_id).status is QueueStatus.waiting
    assert store.get(a.entry_id).position == 0
    assert store.get(b.entry_id).position == 1


def test_batch_rolls_back_appends(store: QueueStore) -> None:
    record = _record()

    with pytest.raises(RuntimeError):
        with store.batch("salon-1") as batch:
            _ = batch.append(record)
            raise RuntimeError("boom")

    with pytest.raises(NotFound):
        _ = store.get(record.entry_id)


def test_credit_loyalty_points_creates_and_accumulates(store: QueueStore) -> None:
    assert store.loyalty_points("user-1") == 0

    with store.batch() as batch:
        assert batch.credit_loyalty_points("user-1", 4) == 4
    with store.batch() as batch:
        assert batch.credit_loyalty_points("user-1", 3) == 7

    assert store.loyalty_points("user-1") == 7


def test_ensure_schema_is_idempotent(store: QueueStore) -> None:
    store.ensure_schema()
    store.ensure_schema()
    _ = store.append(_record())


# ============================================================================
# Failure Translation Tests
# ============================================================================


def test_unreachable_database_raises_storage_unavailable(tmp_path) -> None:
    engine = create_db_engine(f"sqlite:///{tmp_path}/missing-dir/queue.db")
    unreachable = QueueStore(sessionmaker(bind=engine))

    with pytest.raises(StorageUnavailable):
        _ = unreachable.list_by_salon_and_status("salon-1", QueueStatus.waiting)

    with pytest.raises(StorageUnavailable):
        unreachable.ensure_schema()

    engine.dispose()
