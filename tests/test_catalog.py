"""Tests for CatalogRepository."""

import pytest

from salon_queue import CatalogRepository, NotFound
from salon_queue.schemas import CustomerRecord, OfferRecord

from conftest import MINUTE_MS, START_MS


def test_get_salon(catalog: CatalogRepository):
    salon = catalog.get_salon("salon-2")

    assert salon.owner_id == "owner-2"
    assert salon.default_service_minutes == 40


def test_get_salon_missing(catalog: CatalogRepository):
    with pytest.raises(NotFound):
        _ = catalog.get_salon("nowhere")


def test_get_services_skips_unknown_ids(catalog: CatalogRepository):
    services = catalog.get_services(["haircut", "color", "unknown"])

    assert set(services) == {"haircut", "color"}
    assert services["haircut"].duration == 30
    assert services["color"].duration is None
    assert catalog.get_services([]) == {}


def test_list_services(catalog: CatalogRepository):
    assert [s.service_id for s in catalog.list_services("salon-1")] == ["haircut", "beard", "color"]


def test_list_offers_active_at(catalog: CatalogRepository):
    catalog.add_offer(
        OfferRecord(
            offer_id="spring",
            salon_id="salon-1",
            title="Spring",
            discount=5,
            valid_from=START_MS + 30 * 24 * 60 * MINUTE_MS,
            valid_until=START_MS + 60 * 24 * 60 * MINUTE_MS,
        )
    )

    assert [o.offer_id for o in catalog.list_offers("salon-1")] == ["autumn", "spring"]
    assert [o.offer_id for o in catalog.list_offers("salon-1", active_at=START_MS)] == ["autumn"]


def test_offer_validity_window(catalog: CatalogRepository):
    offer = catalog.get_offers(["autumn"])["autumn"]

    assert offer.is_valid_at(START_MS)
    assert offer.is_valid_at(offer.valid_until)
    assert not offer.is_valid_at(offer.valid_until + 1)
    assert not offer.model_copy(update={"is_active": False}).is_valid_at(START_MS)


def test_customers(catalog: CatalogRepository):
    with pytest.raises(NotFound):
        _ = catalog.get_customer("u1")

    catalog.add_customer(CustomerRecord(user_id="u1", name="Ada", loyalty_points=3))

    assert catalog.get_customer("u1").loyalty_points == 3


def test_customer_sees_credited_points(manager, catalog: CatalogRepository):
    entry = manager.join("u1", "salon-1", ["haircut", "beard"])
    _ = manager.advance("owner-1", "salon-1")
    _ = manager.complete("owner-1", entry.entry_id)

    assert catalog.get_customer("u1").loyalty_points == 4
