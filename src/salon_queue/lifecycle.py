"""Queue lifecycle manager.

State machine for queue entries:

    join -> waiting -> in-progress -> completed
               |             \\-> no-show
               \\-> cancelled

Every operation that changes a salon's waiting set runs as one store batch:
re-read the entry under the salon's lock, apply the transition, recompute all
waiting positions, commit. Only after the commit is a single event with the
full waiting list published. A failed operation rolls back and publishes
nothing.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timezone

from .broadcast import QueueBroadcastChannel
from .catalog import Catalog
from .config import Config
from .errors import InvalidServiceSelection, InvalidTransition, NotFound, Unauthorized
from .positions import estimate_wait, loyalty_points_for, price_after_offers, recompute
from .queue_store import QueueBatch, QueueStore
from .schemas import (
    OfferRecord,
    PopularService,
    QueueAction,
    QueueChange,
    QueueEntryRecord,
    QueueEntryUpdate,
    QueueEvent,
    QueueStatus,
    SalonAnalytics,
    SalonQueueSummary,
    SalonRecord,
    ServiceRecord,
    UserQueueEntry,
    WaitingListItem,
)

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class QueueLifecycleManager:
    """Join, serve, leave and close queue entries.

    Example:
        manager = QueueLifecycleManager(store, catalog, channel)

        entry = manager.join("user-1", "salon-1", ["haircut"])
        manager.advance("owner-1", "salon-1")        # serves the head of the queue
        manager.complete("owner-1", entry.entry_id)  # awards loyalty points
    """

    def __init__(
        self,
        store: QueueStore,
        catalog: Catalog,
        channel: QueueBroadcastChannel | None = None,
        *,
        default_service_minutes: float | None = None,
        loyalty_divisor: int | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """Initialize the manager with its collaborators.

        Args:
            store: Queue store holding the entries
            catalog: Salon, service and offer lookups
            channel: Broadcast channel for change events, None to disable
            default_service_minutes: Fallback duration when a salon has none
            loyalty_divisor: Points awarded are floor(total_price / divisor)
            clock: Returns the current time in epoch milliseconds
        """
        self.store: QueueStore = store
        self.catalog: Catalog = catalog
        self.channel: QueueBroadcastChannel | None = channel
        self.default_service_minutes: float = (
            Config.DEFAULT_SERVICE_MINUTES
            if default_service_minutes is None
            else default_service_minutes
        )
        self.loyalty_divisor: int = (
            Config.LOYALTY_POINTS_DIVISOR if loyalty_divisor is None else loyalty_divisor
        )
        self._clock: Callable[[], int] = clock or _now_ms

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _salon_default(self, salon: SalonRecord | None) -> float:
        if salon is not None and salon.default_service_minutes:
            return salon.default_service_minutes
        return self.default_service_minutes

    def _require_owner(self, actor_id: str, salon: SalonRecord) -> None:
        if actor_id != salon.owner_id:
            raise Unauthorized(f"User {actor_id} does not own salon {salon.salon_id}")

    @staticmethod
    def _require_status(entry: QueueEntryRecord, expected: QueueStatus, action: QueueAction) -> None:
        if entry.status is not expected:
            raise InvalidTransition(
                f"Cannot {action.value} entry {entry.entry_id} in status {entry.status.value}"
            )

    @staticmethod
    def _recompute_positions(batch: QueueBatch, salon_id: str) -> list[QueueEntryRecord]:
        """Rewrite every waiting position of a salon; returns the waiting list in order."""
        waiting = batch.list_by_salon_and_status(salon_id, QueueStatus.waiting)
        positions = recompute(waiting)
        result: list[QueueEntryRecord] = []
        for entry in waiting:
            position = positions[entry.entry_id]
            if entry.position != position:
                entry = batch.update(entry.entry_id, QueueEntryUpdate(position=position))
            result.append(entry)
        return sorted(result, key=lambda e: e.position or 0)

    def _annotate(
        self, entries: Sequence[QueueEntryRecord], salon: SalonRecord | None
    ) -> list[QueueEntryRecord]:
        """Attach the derived estimated wait to waiting entries."""
        service_ids = {sid for entry in entries for sid in entry.service_ids}
        services = self.catalog.get_services(sorted(service_ids))
        default = self._salon_default(salon)
        annotated: list[QueueEntryRecord] = []
        for entry in entries:
            estimate = None
            if entry.status is QueueStatus.waiting and entry.position is not None:
                durations = [
                    services[sid].duration if sid in services else None
                    for sid in entry.service_ids
                ]
                estimate = estimate_wait(entry.position, durations, default)
            annotated.append(entry.model_copy(update={"estimated_wait_minutes": estimate}))
        return annotated

    def _publish(
        self,
        salon: SalonRecord,
        change: QueueChange,
        waiting: Sequence[QueueEntryRecord],
    ) -> None:
        if self.channel is None:
            return
        annotated = self._annotate(waiting, salon)
        event = QueueEvent(
            salon_id=salon.salon_id,
            change=change,
            waiting=[
                WaitingListItem(
                    entry_id=entry.entry_id,
                    user_id=entry.user_id,
                    position=entry.position or 0,
                    estimated_wait_minutes=entry.estimated_wait_minutes or 0,
                )
                for entry in annotated
            ],
            timestamp=self._clock(),
        )
        try:
            delivered = self.channel.publish(salon.salon_id, event)
        except Exception:
            # The change is already committed; a lost event only costs a refresh.
            logger.exception(f"Failed to publish queue update for salon {salon.salon_id}")
            return
        logger.debug(f"Queue update for salon {salon.salon_id} queued for {delivered} listener(s)")

    def _validate_selection(
        self,
        salon: SalonRecord,
        service_ids: Sequence[str],
        offer_ids: Sequence[str],
        now: int,
    ) -> tuple[list[ServiceRecord], list[OfferRecord]]:
        if not service_ids:
            raise InvalidServiceSelection("At least one service must be selected")
        if len(set(service_ids)) != len(service_ids):
            raise InvalidServiceSelection("Services must not repeat")
        if len(set(offer_ids)) != len(offer_ids):
            raise InvalidServiceSelection("Offers must not repeat")

        services = self.catalog.get_services(service_ids)
        selected: list[ServiceRecord] = []
        for service_id in service_ids:
            service = services.get(service_id)
            if service is None or service.salon_id != salon.salon_id:
                raise InvalidServiceSelection(
                    f"Service {service_id} is not offered by salon {salon.salon_id}"
                )
            selected.append(service)

        offers = self.catalog.get_offers(offer_ids)
        applied: list[OfferRecord] = []
        for offer_id in offer_ids:
            offer = offers.get(offer_id)
            if offer is None or offer.salon_id != salon.salon_id:
                raise InvalidServiceSelection(
                    f"Offer {offer_id} does not belong to salon {salon.salon_id}"
                )
            if not offer.is_valid_at(now):
                raise InvalidServiceSelection(f"Offer {offer_id} is not valid now")
            applied.append(offer)

        return selected, applied

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def join(
        self,
        actor_id: str,
        salon_id: str,
        service_ids: Sequence[str],
        offer_ids: Sequence[str] = (),
    ) -> QueueEntryRecord:
        """Append a new waiting entry for ``actor_id`` at the tail of the salon's queue.

        Raises:
            NotFound: If the salon does not exist
            InvalidServiceSelection: If a service or offer cannot be used
        """
        service_ids = list(service_ids)
        offer_ids = list(offer_ids)
        salon = self.catalog.get_salon(salon_id)
        now = self._clock()
        selected, offers = self._validate_selection(salon, service_ids, offer_ids, now)
        total_price = price_after_offers([s.price for s in selected], [o.discount for o in offers])

        with self.store.batch(salon_id) as batch:
            waiting = batch.list_by_salon_and_status(salon_id, QueueStatus.waiting)
            # The tail never precedes the current last entry, even if the clock stepped back
            joined_at = max([now, *(e.joined_at for e in waiting)])
            for offer in offers:
                if not offer.is_valid_at(joined_at):
                    raise InvalidServiceSelection(
                        f"Offer {offer.offer_id} is not valid at join time {joined_at}"
                    )
            entry = batch.append(
                QueueEntryRecord(
                    entry_id=str(uuid.uuid4()),
                    salon_id=salon_id,
                    user_id=actor_id,
                    service_ids=service_ids,
                    total_price=total_price,
                    applied_offer_ids=offer_ids,
                    status=QueueStatus.waiting,
                    position=len(waiting),
                    joined_at=joined_at,
                )
            )
            waiting = self._recompute_positions(batch, salon_id)
            entry = batch.get(entry.entry_id)

        logger.info(
            f"User {actor_id} joined salon {salon_id} at position {entry.position} "
            f"(entry {entry.entry_id}, total {total_price})"
        )
        change = QueueChange(
            entry_id=entry.entry_id, action=QueueAction.join, status=QueueStatus.waiting
        )
        self._publish(salon, change, waiting)
        return self._annotate([entry], salon)[0]

    def advance(
        self, actor_id: str, salon_id: str, entry_id: str | None = None
    ) -> QueueEntryRecord | None:
        """Owner starts serving an entry: the head of the queue, or ``entry_id``.

        Returns:
            The in-progress entry, or None if nobody is waiting

        Raises:
            NotFound: If the salon or entry does not exist
            Unauthorized: If the actor does not own the salon
            InvalidTransition: If the entry is not waiting
        """
        salon = self.catalog.get_salon(salon_id)
        self._require_owner(actor_id, salon)
        now = self._clock()

        with self.store.batch(salon_id) as batch:
            if entry_id is None:
                waiting = batch.list_by_salon_and_status(salon_id, QueueStatus.waiting)
                if not waiting:
                    return None
                target = waiting[0]
            else:
                target = batch.get(entry_id)
                if target.salon_id != salon_id:
                    raise NotFound(f"Queue entry {entry_id} not found in salon {salon_id}")
                self._require_status(target, QueueStatus.waiting, QueueAction.advance)

            updated = batch.update(
                target.entry_id,
                QueueEntryUpdate(status=QueueStatus.in_progress, position=None, served_at=now),
            )
            waiting = self._recompute_positions(batch, salon_id)

        logger.info(f"Salon {salon_id} now serving entry {updated.entry_id}")
        change = QueueChange(
            entry_id=updated.entry_id,
            action=QueueAction.advance,
            previous_status=QueueStatus.waiting,
            status=updated.status,
        )
        self._publish(salon, change, waiting)
        return updated

    def leave(self, actor_id: str, entry_id: str) -> QueueEntryRecord:
        """The entry's own customer leaves the queue.

        Raises:
            NotFound: If the entry does not exist
            Unauthorized: If the actor is not the entry's customer
            InvalidTransition: If the entry is not waiting
        """
        entry = self.store.get(entry_id)
        if actor_id != entry.user_id:
            raise Unauthorized(f"User {actor_id} cannot leave entry {entry_id}")
        salon = self.catalog.get_salon(entry.salon_id)
        now = self._clock()

        with self.store.batch(entry.salon_id) as batch:
            current = batch.get(entry_id)
            self._require_status(current, QueueStatus.waiting, QueueAction.leave)
            updated = batch.update(
                entry_id,
                QueueEntryUpdate(status=QueueStatus.cancelled, position=None, closed_at=now),
            )
            waiting = self._recompute_positions(batch, entry.salon_id)

        logger.info(f"User {actor_id} left salon {entry.salon_id} (entry {entry_id})")
        change = QueueChange(
            entry_id=entry_id,
            action=QueueAction.leave,
            previous_status=QueueStatus.waiting,
            status=updated.status,
        )
        self._publish(salon, change, waiting)
        return updated

    def _close(
        self,
        actor_id: str,
        entry_id: str,
        action: QueueAction,
        status: QueueStatus,
    ) -> QueueEntryRecord:
        entry = self.store.get(entry_id)
        salon = self.catalog.get_salon(entry.salon_id)
        self._require_owner(actor_id, salon)
        now = self._clock()

        with self.store.batch(entry.salon_id) as batch:
            current = batch.get(entry_id)
            self._require_status(current, QueueStatus.in_progress, action)
            updated = batch.update(entry_id, QueueEntryUpdate(status=status, closed_at=now))
            if status is QueueStatus.completed:
                points = loyalty_points_for(updated.total_price, self.loyalty_divisor)
                if points:
                    balance = batch.credit_loyalty_points(updated.user_id, points)
                    logger.info(
                        f"Awarded {points} loyalty points to {updated.user_id} (balance {balance})"
                    )
            waiting = batch.list_by_salon_and_status(entry.salon_id, QueueStatus.waiting)

        logger.info(f"Entry {entry_id} at salon {entry.salon_id} closed as {status.value}")
        change = QueueChange(
            entry_id=entry_id,
            action=action,
            previous_status=QueueStatus.in_progress,
            status=status,
        )
        self._publish(salon, change, waiting)
        return updated

    def complete(self, actor_id: str, entry_id: str) -> QueueEntryRecord:
        """Owner finishes serving an entry and the customer earns loyalty points."""
        return self._close(actor_id, entry_id, QueueAction.complete, QueueStatus.completed)

    def mark_no_show(self, actor_id: str, entry_id: str) -> QueueEntryRecord:
        """Owner records that the called customer did not show up."""
        return self._close(actor_id, entry_id, QueueAction.no_show, QueueStatus.no_show)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def waiting_list(self, salon_id: str) -> list[QueueEntryRecord]:
        """Current waiting entries of a salon, ordered by position, with estimates."""
        salon = self.catalog.get_salon(salon_id)
        waiting = self.store.list_by_salon_and_status(salon_id, QueueStatus.waiting)
        return self._annotate(waiting, salon)

    def get_entry(self, entry_id: str) -> QueueEntryRecord:
        entry = self.store.get(entry_id)
        salon = self._find_salon(entry.salon_id)
        return self._annotate([entry], salon)[0]

    def _find_salon(self, salon_id: str) -> SalonRecord | None:
        try:
            return self.catalog.get_salon(salon_id)
        except NotFound:
            return None

    def entries_for_user(self, user_id: str) -> list[UserQueueEntry]:
        """All entries of a customer, newest first.

        Each entry carries the number of customers currently waiting at its salon.
        """
        entries = self.store.list_by_user(user_id)
        by_salon: dict[str, list[QueueEntryRecord]] = defaultdict(list)
        for entry in entries:
            by_salon[entry.salon_id].append(entry)

        annotated: dict[str, UserQueueEntry] = {}
        for salon_id, salon_entries in by_salon.items():
            total_in_queue = len(
                self.store.list_by_salon_and_status(salon_id, QueueStatus.waiting)
            )
            for entry in self._annotate(salon_entries, self._find_salon(salon_id)):
                annotated[entry.entry_id] = UserQueueEntry(
                    **entry.model_dump(), total_in_queue=total_in_queue
                )
        return [annotated[entry.entry_id] for entry in entries]

    def salon_summary(self, salon_id: str) -> SalonQueueSummary:
        """Queue length and the wait a newcomer can expect."""
        salon = self.catalog.get_salon(salon_id)
        queue_count = len(self.store.list_by_salon_and_status(salon_id, QueueStatus.waiting))
        return SalonQueueSummary(
            salon_id=salon_id,
            queue_count=queue_count,
            estimated_wait_minutes=estimate_wait(queue_count, [], self._salon_default(salon)),
        )

    def analytics(self, actor_id: str, salon_id: str, now: int | None = None) -> SalonAnalytics:
        """Dashboard figures for the salon's owner."""
        salon = self.catalog.get_salon(salon_id)
        self._require_owner(actor_id, salon)
        now = self._clock() if now is None else now
        entries = self.store.list_by_salon(salon_id)

        today = datetime.fromtimestamp(now / 1000, tz=timezone.utc).date()
        customers_today = sum(
            1
            for e in entries
            if datetime.fromtimestamp(e.joined_at / 1000, tz=timezone.utc).date() == today
        )

        waits = [
            (e.served_at - e.joined_at) / 60000 for e in entries if e.served_at is not None
        ]
        completed = [e for e in entries if e.status is QueueStatus.completed]
        no_shows = sum(1 for e in entries if e.status is QueueStatus.no_show)
        attended = len(completed) + no_shows

        return SalonAnalytics(
            salon_id=salon_id,
            customers_today=customers_today,
            total_customers=len(entries),
            avg_wait_minutes=round(sum(waits) / len(waits), 1) if waits else 0.0,
            show_rate=round(100 * len(completed) / attended, 1) if attended else 0.0,
            revenue=round(sum(e.total_price for e in completed), 2),
            popular_services=self._popular_services(entries),
        )

    def _popular_services(
        self, entries: Iterable[QueueEntryRecord], limit: int = 5
    ) -> list[PopularService]:
        counts = Counter(sid for entry in entries for sid in entry.service_ids)
        top = counts.most_common(limit)
        services = self.catalog.get_services([sid for sid, _ in top])
        return [
            PopularService(
                service_id=sid,
                name=services[sid].name if sid in services else None,
                bookings=bookings,
            )
            for sid, bookings in top
        ]
