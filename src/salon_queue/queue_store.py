"""Queue Store: durable queue entries over SQLAlchemy.

The store handles:
- Mapping between Pydantic QueueEntryRecord and the SQLAlchemy QueueEntry row
- Single-entry operations, each in its own transaction
- Batches: several operations on one salon applied as one transaction while
  holding that salon's mutual-exclusion section
- Translating database connectivity errors into StorageUnavailable
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager, nullcontext

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from .errors import NotFound, StorageUnavailable
from .models import Base, Customer, QueueEntry
from .queue_translator import db_entry_to_record, record_to_db_entry
from .schemas import QueueEntryRecord, QueueEntryUpdate, QueueStatus

logger = logging.getLogger(__name__)


class QueueBatch:
    """Store operations bound to one open session.

    Nothing is visible to other sessions until the enclosing
    ``QueueStore.batch()`` commits.
    """

    def __init__(self, session: Session):
        self.session: Session = session

    def _get_row(self, entry_id: str) -> QueueEntry:
        stmt = select(QueueEntry).where(QueueEntry.entry_id == entry_id)
        db_entry = self.session.execute(stmt).scalar_one_or_none()
        if db_entry is None:
            raise NotFound(f"Queue entry {entry_id} not found")
        return db_entry

    def append(self, entry: QueueEntryRecord) -> QueueEntryRecord:
        """Insert a new entry.

        Args:
            entry: Pydantic QueueEntryRecord to save

        Returns:
            The stored record
        """
        db_entry = record_to_db_entry(entry)
        self.session.add(db_entry)
        self.session.flush()
        return db_entry_to_record(db_entry)

    def get(self, entry_id: str) -> QueueEntryRecord:
        """Get entry by ID.

        Raises:
            NotFound: If no entry has this id
        """
        return db_entry_to_record(self._get_row(entry_id))

    def update(self, entry_id: str, mutation: QueueEntryUpdate) -> QueueEntryRecord:
        """Apply the explicitly set fields of ``mutation`` to one entry.

        Args:
            entry_id: Unique entry identifier
            mutation: Pydantic QueueEntryUpdate with fields to change

        Returns:
            The updated record

        Raises:
            NotFound: If no entry has this id
        """
        db_entry = self._get_row(entry_id)
        for field, value in mutation.model_dump(exclude_unset=True).items():
            if isinstance(value, QueueStatus):
                value = value.value
            setattr(db_entry, field, value)
        self.session.flush()
        return db_entry_to_record(db_entry)

    def list_by_salon_and_status(
        self, salon_id: str, status: QueueStatus
    ) -> list[QueueEntryRecord]:
        """Entries of a salon in one status, oldest first.

        Rows are locked for update on databases that support it.
        """
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.salon_id == salon_id, QueueEntry.status == status.value)
            .order_by(QueueEntry.joined_at, QueueEntry.id)
            .with_for_update()
        )
        return [db_entry_to_record(row) for row in self.session.execute(stmt).scalars()]

    def list_by_salon(self, salon_id: str) -> list[QueueEntryRecord]:
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.salon_id == salon_id)
            .order_by(QueueEntry.joined_at, QueueEntry.id)
        )
        return [db_entry_to_record(row) for row in self.session.execute(stmt).scalars()]

    def list_by_user(self, user_id: str) -> list[QueueEntryRecord]:
        """Entries of one customer, newest first."""
        stmt = (
            select(QueueEntry)
            .where(QueueEntry.user_id == user_id)
            .order_by(QueueEntry.joined_at.desc(), QueueEntry.id.desc())
        )
        return [db_entry_to_record(row) for row in self.session.execute(stmt).scalars()]

    def credit_loyalty_points(self, user_id: str, points: int) -> int:
        """Add points to a customer's balance, creating the account if needed.

        Returns:
            The new balance
        """
        stmt = select(Customer).where(Customer.user_id == user_id)
        customer = self.session.execute(stmt).scalar_one_or_none()
        if customer is None:
            customer = Customer(user_id=user_id, loyalty_points=0)
            self.session.add(customer)
        customer.loyalty_points += points
        self.session.flush()
        return customer.loyalty_points


class QueueStore:
    """SQLAlchemy-backed queue store.

    Example:
        store = QueueStore(session_factory)

        with store.batch(salon_id) as batch:
            waiting = batch.list_by_salon_and_status(salon_id, QueueStatus.waiting)
            batch.append(entry)
        # committed here, or rolled back if the block raised
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        """Initialize store with session factory.

        Args:
            session_factory: SQLAlchemy session factory (sessionmaker)
        """
        self.session_factory: sessionmaker[Session] = session_factory
        self._salon_locks: dict[str, threading.Lock] = {}
        self._salon_locks_guard = threading.Lock()

    def ensure_schema(self) -> None:
        """Create missing tables. Safe to call repeatedly."""
        bind = self.session_factory.kw.get("bind")
        if bind is None:
            raise StorageUnavailable("Session factory is not bound to an engine")
        try:
            Base.metadata.create_all(bind)
        except DBAPIError as e:
            raise StorageUnavailable(f"Could not create queue tables: {e}") from e

    def _salon_lock(self, salon_id: str) -> threading.Lock:
        with self._salon_locks_guard:
            lock = self._salon_locks.get(salon_id)
            if lock is None:
                lock = threading.Lock()
                self._salon_locks[salon_id] = lock
            return lock

    @contextmanager
    def batch(self, salon_id: str | None = None) -> Iterator[QueueBatch]:
        """Run several store operations as one transaction.

        When ``salon_id`` is given, batches for the same salon are serialized.

        Raises:
            StorageUnavailable: If the database fails during the batch
        """
        lock = self._salon_lock(salon_id) if salon_id is not None else nullcontext()
        with lock:
            try:
                with self.session_factory() as session:
                    try:
                        yield QueueBatch(session)
                        session.commit()
                    except BaseException:
                        session.rollback()
                        raise
            except DBAPIError as e:
                logger.error(f"Queue store failure: {e}")
                raise StorageUnavailable(f"Queue store unavailable: {e.orig}") from e

    # -------------------------------------------------------------------------
    # Single-operation helpers
    # -------------------------------------------------------------------------

    def append(self, entry: QueueEntryRecord) -> QueueEntryRecord:
        with self.batch(entry.salon_id) as batch:
            return batch.append(entry)

    def get(self, entry_id: str) -> QueueEntryRecord:
        with self.batch() as batch:
            return batch.get(entry_id)

    def update(self, entry_id: str, mutation: QueueEntryUpdate) -> QueueEntryRecord:
        with self.batch() as batch:
            return batch.update(entry_id, mutation)

    def list_by_salon_and_status(
        self, salon_id: str, status: QueueStatus
    ) -> list[QueueEntryRecord]:
        with self.batch() as batch:
            return batch.list_by_salon_and_status(salon_id, status)

    def list_by_salon(self, salon_id: str) -> list[QueueEntryRecord]:
        with self.batch() as batch:
            return batch.list_by_salon(salon_id)

    def list_by_user(self, user_id: str) -> list[QueueEntryRecord]:
        with self.batch() as batch:
            return batch.list_by_user(user_id)

    def loyalty_points(self, user_id: str) -> int:
        """Current balance of a customer, 0 for an unknown customer."""
        with self.batch() as batch:
            stmt = select(Customer.loyalty_points).where(Customer.user_id == user_id)
            return batch.session.execute(stmt).scalar_one_or_none() or 0
