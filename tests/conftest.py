"""Pytest configuration and fixtures."""

import pytest

from stockflow.api.memory_store import InMemoryRecordStore
from stockflow.models.catalog import PRODUCTION_HOUSES, STORES, Actor
from stockflow.services.operations import StockflowOperations


def seed_records():
    """Catalog shared by the workflow tests."""
    return {
        PRODUCTION_HOUSES: [
            {
                "id": "H1",
                "name": "Central Kitchen",
                "productionHeadId": "lead-1",
                "inventory": {"chicken": 100, "veg": 40},
            },
            {
                "id": "H2",
                "name": "North Kitchen",
                "productionHeadId": "lead-2",
                "inventory": {},
            },
        ],
        STORES: [
            {"id": "S1", "name": "Mall Road", "productionHouseId": "H1"},
            {"id": "S2", "name": "Airport Kiosk", "productionHouseId": None},
        ],
    }


@pytest.fixture
def record_store():
    """In-memory record store seeded with two houses and two stores."""
    return InMemoryRecordStore(seed=seed_records())


@pytest.fixture
def operations(record_store):
    """Operations facade over the seeded store."""
    return StockflowOperations(store=record_store)


@pytest.fixture
def store_manager():
    """Manager of S1."""
    return Actor(id="mgr-1", name="Asha", role="store_manager", store_id="S1")


@pytest.fixture
def production_lead():
    """Lead of H1, attached through the house's productionHeadId."""
    return Actor(id="lead-1", name="Ravi", role="production_head")


@pytest.fixture
def house_staff():
    """Staff member attached to H1 through their own production house id."""
    return Actor(id="staff-1", name="Meena", role="production_staff", production_house_id="H1")


@pytest.fixture
def outsider():
    """Lead of a different production house."""
    return Actor(id="lead-2", name="Kiran", role="production_head", production_house_id="H2")


@pytest.fixture
def house_inventory(record_store):
    """Read a production house's current inventory."""
    def read(house_id="H1"):
        return record_store.get(PRODUCTION_HOUSES, house_id)["inventory"]
    return read
