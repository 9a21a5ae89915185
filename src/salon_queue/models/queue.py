"""Queue entry model: one customer's claim on a salon's queue."""

from typing_extensions import override

from sqlalchemy import BigInteger, Float, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from .base import Base


class QueueEntry(Base):
    """Queue entry row.

    Entries are never deleted. Cancellation and no-show are terminal statuses
    so the history stays available for analytics.

    Database-specific fields (not in QueueEntryRecord):
    - id: Primary key, also the FIFO tie-breaker for equal joined_at values
    """

    __tablename__ = "queue_entries"  # pyright: ignore[reportUnannotatedClassAttribute]
    __table_args__ = (  # pyright: ignore[reportUnannotatedClassAttribute]
        Index("ix_queue_entries_salon_status", "salon_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[str] = mapped_column(String, unique=True, nullable=False, index=True)
    salon_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)

    service_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    applied_offer_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)

    status: Mapped[str] = mapped_column(String, nullable=False)
    position: Mapped[int | None] = mapped_column(Integer, nullable=True)

    joined_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    served_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    closed_at: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    @override
    def __repr__(self) -> str:
        return (
            f"<QueueEntry(entry_id={self.entry_id}, salon_id={self.salon_id}, "
            f"status={self.status}, position={self.position})>"
        )
