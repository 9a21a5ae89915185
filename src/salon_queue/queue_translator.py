"""Conversion between queue entry rows and queue entry records."""


# -------------------------------------------------------------------------
# Pydantic Conversion Helpers
# -------------------------------------------------------------------------

from .models import QueueEntry
from .schemas import QueueEntryRecord, QueueStatus


def db_entry_to_record(db_entry: QueueEntry) -> QueueEntryRecord:
    """Convert SQLAlchemy QueueEntry to Pydantic QueueEntryRecord.

    The estimated wait is left unset; it is derived by the caller that knows
    the salon's service durations.

    Returns:
        Pydantic QueueEntryRecord with core entry fields
    """
    return QueueEntryRecord(
        entry_id=db_entry.entry_id,
        salon_id=db_entry.salon_id,
        user_id=db_entry.user_id,
        service_ids=list(db_entry.service_ids),
        total_price=db_entry.total_price,
        applied_offer_ids=list(db_entry.applied_offer_ids or []),
        status=QueueStatus(db_entry.status),
        position=db_entry.position,
        joined_at=db_entry.joined_at,
        served_at=db_entry.served_at,
        closed_at=db_entry.closed_at,
    )


def record_to_db_entry(record: QueueEntryRecord) -> QueueEntry:
    """Create SQLAlchemy QueueEntry from Pydantic QueueEntryRecord.

    Args:
        record: Pydantic QueueEntryRecord

    Returns:
        SQLAlchemy QueueEntry instance (not persisted)
    """
    return QueueEntry(
        entry_id=record.entry_id,
        salon_id=record.salon_id,
        user_id=record.user_id,
        service_ids=list(record.service_ids),
        total_price=record.total_price,
        applied_offer_ids=list(record.applied_offer_ids),
        status=record.status.value,
        position=record.position,
        joined_at=record.joined_at,
        served_at=record.served_at,
        closed_at=record.closed_at,
    )
