"""
Pydantic schemas for queue records, broadcast events and API bodies.
Shared between the lifecycle manager, the broadcast channel and the API.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class QueueStatus(str, Enum):
    waiting = "waiting"
    in_progress = "in-progress"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no-show"


class QueueAction(str, Enum):
    """Lifecycle event that caused a change."""

    join = "join"
    advance = "advance"
    leave = "leave"
    complete = "complete"
    no_show = "no_show"


# -------------------------------------------------------------------------
# Queue entries
# -------------------------------------------------------------------------


class QueueEntryRecord(BaseModel):
    """A customer's claim on a salon's queue."""

    model_config = ConfigDict(use_enum_values=False)

    entry_id: str
    salon_id: str
    user_id: str
    service_ids: list[str] = Field(..., min_length=1)
    total_price: float = Field(..., ge=0)
    applied_offer_ids: list[str] = Field(default_factory=list)
    status: QueueStatus = QueueStatus.waiting
    position: int | None = Field(None, ge=0)
    estimated_wait_minutes: int | None = Field(None, ge=0, description="Derived on read")
    joined_at: int
    served_at: int | None = None
    closed_at: int | None = None


class QueueEntryUpdate(BaseModel):
    """Fields a lifecycle transition may change.

    Only fields that were explicitly set are written, so ``position=None``
    clears the position.
    """

    status: QueueStatus | None = None
    position: int | None = Field(None, ge=0)
    served_at: int | None = None
    closed_at: int | None = None


class UserQueueEntry(QueueEntryRecord):
    """Entry as shown to its own customer, with the size of the salon's queue."""

    total_in_queue: int = 0


# -------------------------------------------------------------------------
# Broadcast events
# -------------------------------------------------------------------------


class WaitingListItem(BaseModel):
    entry_id: str
    user_id: str
    position: int
    estimated_wait_minutes: int


class QueueChange(BaseModel):
    entry_id: str
    action: QueueAction
    previous_status: QueueStatus | None = None
    status: QueueStatus


class QueueEvent(BaseModel):
    """Full waiting list of a salon after one lifecycle change."""

    type: Literal["queue_update"] = "queue_update"
    salon_id: str
    change: QueueChange
    waiting: list[WaitingListItem] = Field(default_factory=list)
    timestamp: int


# -------------------------------------------------------------------------
# Query results
# -------------------------------------------------------------------------


class SalonQueueSummary(BaseModel):
    salon_id: str
    queue_count: int
    estimated_wait_minutes: int


class PopularService(BaseModel):
    service_id: str
    name: str | None = None
    bookings: int


class SalonAnalytics(BaseModel):
    salon_id: str
    customers_today: int = 0
    total_customers: int = 0
    avg_wait_minutes: float = 0.0
    show_rate: float = Field(0.0, description="Completed share of completed + no-show, in percent")
    revenue: float = 0.0
    popular_services: list[PopularService] = Field(default_factory=list)


# -------------------------------------------------------------------------
# Catalog records
# -------------------------------------------------------------------------


class SalonRecord(BaseModel):
    salon_id: str
    name: str
    owner_id: str
    location: str | None = None
    default_service_minutes: float | None = Field(None, gt=0)


class ServiceRecord(BaseModel):
    service_id: str
    salon_id: str
    name: str
    price: float = Field(..., ge=0)
    duration: int | None = Field(None, gt=0, description="Minutes, None when unknown")


class OfferRecord(BaseModel):
    offer_id: str
    salon_id: str
    title: str
    discount: float = Field(..., ge=0, le=100, description="Percentage off")
    valid_from: int
    valid_until: int
    is_active: bool = True

    def is_valid_at(self, timestamp: int) -> bool:
        return self.is_active and self.valid_from <= timestamp <= self.valid_until


class CustomerRecord(BaseModel):
    user_id: str
    name: str | None = None
    loyalty_points: int = Field(0, ge=0)


# -------------------------------------------------------------------------
# API request bodies
# -------------------------------------------------------------------------


class JoinRequest(BaseModel):
    service_ids: list[str] = Field(..., min_length=1)
    offer_ids: list[str] = Field(default_factory=list)

    @field_validator("service_ids")
    @classmethod
    def validate_service_ids_unique(cls, v: list[str]) -> list[str]:
        if len(v) != len(set(v)):
            raise ValueError("Service ids must be unique")
        return v


class AdvanceRequest(BaseModel):
    entry_id: str | None = None
