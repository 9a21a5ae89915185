"""Salon catalog: salons, services, offers and customer accounts.

The lifecycle manager only depends on the ``Catalog`` protocol. The
SQLAlchemy implementation below shares the queue database.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker
from typing_extensions import override

from .errors import NotFound, StorageUnavailable
from .models import Customer, Offer, Salon, Service
from .schemas import CustomerRecord, OfferRecord, SalonRecord, ServiceRecord


class Catalog(Protocol):
    """Read access the lifecycle manager needs."""

    def get_salon(self, salon_id: str) -> SalonRecord: ...

    def get_services(self, service_ids: Sequence[str]) -> dict[str, ServiceRecord]: ...

    def get_offers(self, offer_ids: Sequence[str]) -> dict[str, OfferRecord]: ...


def _salon_to_record(row: Salon) -> SalonRecord:
    return SalonRecord(
        salon_id=row.salon_id,
        name=row.name,
        owner_id=row.owner_id,
        location=row.location,
        default_service_minutes=row.default_service_minutes,
    )


def _service_to_record(row: Service) -> ServiceRecord:
    return ServiceRecord(
        service_id=row.service_id,
        salon_id=row.salon_id,
        name=row.name,
        price=row.price,
        duration=row.duration,
    )


def _offer_to_record(row: Offer) -> OfferRecord:
    return OfferRecord(
        offer_id=row.offer_id,
        salon_id=row.salon_id,
        title=row.title,
        discount=row.discount,
        valid_from=row.valid_from,
        valid_until=row.valid_until,
        is_active=row.is_active,
    )


class CatalogRepository(Catalog):
    """SQLAlchemy implementation of the Catalog protocol.

    Example:
        catalog = CatalogRepository(session_factory)
        catalog.add_salon(SalonRecord(salon_id="s1", name="Cuts", owner_id="owner-1"))
        catalog.add_service(
            ServiceRecord(service_id="haircut", salon_id="s1", name="Haircut", price=25, duration=30)
        )
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self.session_factory: sessionmaker[Session] = session_factory

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.session_factory() as session:
                yield session
        except DBAPIError as e:
            raise StorageUnavailable(f"Catalog unavailable: {e.orig}") from e

    # -------------------------------------------------------------------------
    # Catalog Protocol Methods
    # -------------------------------------------------------------------------
    @override
    def get_salon(self, salon_id: str) -> SalonRecord:
        """Get salon by ID.

        Raises:
            NotFound: If the salon does not exist
        """
        with self._session() as session:
            stmt = select(Salon).where(Salon.salon_id == salon_id)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NotFound(f"Salon {salon_id} not found")
            return _salon_to_record(row)

    @override
    def get_services(self, service_ids: Sequence[str]) -> dict[str, ServiceRecord]:
        """Services by id. Unknown ids are absent from the result."""
        if not service_ids:
            return {}
        with self._session() as session:
            stmt = select(Service).where(Service.service_id.in_(list(service_ids)))
            return {row.service_id: _service_to_record(row) for row in session.execute(stmt).scalars()}

    @override
    def get_offers(self, offer_ids: Sequence[str]) -> dict[str, OfferRecord]:
        """Offers by id. Unknown ids are absent from the result."""
        if not offer_ids:
            return {}
        with self._session() as session:
            stmt = select(Offer).where(Offer.offer_id.in_(list(offer_ids)))
            return {row.offer_id: _offer_to_record(row) for row in session.execute(stmt).scalars()}

    # -------------------------------------------------------------------------
    # Listing and administration
    # -------------------------------------------------------------------------

    def list_services(self, salon_id: str) -> list[ServiceRecord]:
        with self._session() as session:
            stmt = select(Service).where(Service.salon_id == salon_id).order_by(Service.id)
            return [_service_to_record(row) for row in session.execute(stmt).scalars()]

    def list_offers(self, salon_id: str, *, active_at: int | None = None) -> list[OfferRecord]:
        """Offers of a salon, optionally only those valid at ``active_at``."""
        with self._session() as session:
            stmt = select(Offer).where(Offer.salon_id == salon_id).order_by(Offer.id)
            offers = [_offer_to_record(row) for row in session.execute(stmt).scalars()]
        if active_at is None:
            return offers
        return [offer for offer in offers if offer.is_valid_at(active_at)]

    def get_customer(self, user_id: str) -> CustomerRecord:
        with self._session() as session:
            stmt = select(Customer).where(Customer.user_id == user_id)
            row = session.execute(stmt).scalar_one_or_none()
            if row is None:
                raise NotFound(f"Customer {user_id} not found")
            return CustomerRecord(user_id=row.user_id, name=row.name, loyalty_points=row.loyalty_points)

    def add_salon(self, salon: SalonRecord) -> SalonRecord:
        with self._session() as session:
            session.add(Salon(**salon.model_dump()))
            session.commit()
        return salon

    def add_service(self, service: ServiceRecord) -> ServiceRecord:
        with self._session() as session:
            session.add(Service(**service.model_dump()))
            session.commit()
        return service

    def add_offer(self, offer: OfferRecord) -> OfferRecord:
        with self._session() as session:
            session.add(Offer(**offer.model_dump()))
            session.commit()
        return offer

    def add_customer(self, customer: CustomerRecord) -> CustomerRecord:
        with self._session() as session:
            session.add(Customer(**customer.model_dump()))
            session.commit()
        return customer
