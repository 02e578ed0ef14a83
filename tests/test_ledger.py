"""Tests for the production house ledger."""

from datetime import datetime, timedelta

import pytest

from stockflow.api.memory_store import InMemoryRecordStore
from stockflow.models.catalog import PRODUCTION_HOUSES
from stockflow.services.ledger import ProductionLedger, approval_entry_key, fulfillment_entry_key
from stockflow.utils.exceptions import ConflictError, InvalidStateError, NotFoundError, ValidationError

from conftest import seed_records


class ConflictingStore(InMemoryRecordStore):
    """Rejects the next ``conflicts`` house writes as concurrent modifications."""

    def __init__(self, conflicts=0):
        super().__init__(seed=seed_records())
        self.conflicts = conflicts
        self.house_writes = 0

    def put(self, collection, record, expected_version=None):
        if collection == PRODUCTION_HOUSES and expected_version is not None:
            self.house_writes += 1
            if self.conflicts:
                self.conflicts -= 1
                raise ConflictError(f"{collection} record {record['id']} was modified concurrently")
        return super().put(collection, record, expected_version)


@pytest.fixture
def ledger(record_store):
    return ProductionLedger(record_store)


class TestProductionLedger:
    """Tests for ProductionLedger."""

    def test_entry_keys(self):
        """Test approval and fulfillment entry key formats."""
        assert approval_entry_key("prod_H1_2024-03-01") == "approve:prod_H1_2024-03-01"
        assert fulfillment_entry_key("sr_1") == "fulfill:sr_1"

    def test_apply_credit(self, ledger, house_inventory):
        """Test a credit raises inventory and journals the entry."""
        house = ledger.apply_entry("H1", "approve:r1", {"chicken": 50, "paneer": 10})

        assert house.inventory == {"chicken": 150, "veg": 40, "paneer": 10}
        assert house.applied_entries == {"approve:r1": {"chicken": 50, "paneer": 10}}
        assert house_inventory() == {"chicken": 150, "veg": 40, "paneer": 10}

    def test_replay_is_noop(self, ledger, house_inventory):
        """Test applying the same entry twice credits once."""
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})

        assert house_inventory()["chicken"] == 150
        assert ledger.is_applied("H1", "approve:r1")

    def test_replay_with_new_amount_applies_difference(self, ledger, house_inventory):
        """Test re-applying an entry with new deltas applies only the difference."""
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})
        ledger.apply_entry("H1", "approve:r1", {"chicken": 30})

        assert house_inventory()["chicken"] == 130

    def test_debit(self, ledger):
        """Test a negative delta lowers inventory."""
        house = ledger.apply_entry("H1", "fulfill:sr_1", {"chicken": -60})

        assert house.inventory["chicken"] == 40

    def test_negative_result_rejected_and_nothing_written(self, ledger, house_inventory, record_store):
        """Test a debit past zero raises ValidationError without writing the house."""
        version = record_store.get(PRODUCTION_HOUSES, "H1")["version"]

        with pytest.raises(ValidationError, match="Insufficient stock") as exc_info:
            ledger.apply_entry("H1", "fulfill:sr_1", {"chicken": -60, "veg": -50})

        assert exc_info.value.details["shortfall"] == {"veg": 10}
        assert house_inventory() == {"chicken": 100, "veg": 40}
        assert record_store.get(PRODUCTION_HOUSES, "H1")["version"] == version

    def test_revert(self, ledger, house_inventory):
        """Test reverting an entry restores inventory and drops the journal key."""
        ledger.apply_entry("H1", "fulfill:sr_1", {"chicken": -60})
        house = ledger.revert_entry("H1", "fulfill:sr_1")

        assert house.inventory["chicken"] == 100
        assert "fulfill:sr_1" not in house.applied_entries
        assert house_inventory()["chicken"] == 100

    def test_revert_unknown_entry_is_noop(self, ledger, record_store):
        """Test reverting a key that was never applied writes nothing."""
        version = record_store.get(PRODUCTION_HOUSES, "H1")["version"]

        ledger.revert_entry("H1", "fulfill:never-applied")

        assert record_store.get(PRODUCTION_HOUSES, "H1")["version"] == version

    def test_missing_house(self, ledger):
        """Test applying to an unknown house raises NotFoundError."""
        with pytest.raises(NotFoundError):
            ledger.apply_entry("H9", "approve:r1", {"chicken": 1})

    def test_retries_on_conflict(self):
        """Test a conflicting house write is retried until it lands."""
        store = ConflictingStore(conflicts=2)
        ledger = ProductionLedger(store)

        house = ledger.apply_entry("H1", "approve:r1", {"chicken": 5})

        assert house.inventory["chicken"] == 105
        assert store.house_writes == 3

    def test_gives_up_after_max_attempts(self):
        """Test ConflictError after the configured number of attempts."""
        store = ConflictingStore(conflicts=100)
        ledger = ProductionLedger(store)

        with pytest.raises(ConflictError, match="kept changing"):
            ledger.apply_entry("H1", "approve:r1", {"chicken": 5})

        assert store.house_writes == ledger.config.ledger.max_write_attempts
        assert store.get(PRODUCTION_HOUSES, "H1")["inventory"]["chicken"] == 100

    def test_available(self, ledger):
        """Test available returns the house inventory."""
        assert ledger.available("H1") == {"chicken": 100, "veg": 40}


class TestSettleEntry:
    """Tests for closing ledger entries once their record commits."""

    def test_settle_keeps_inventory_and_empties_journal(self, ledger, house_inventory):
        """Test settling a matching entry leaves inventory alone and clears the journal."""
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})

        house = ledger.settle_entry("H1", "approve:r1", {"chicken": 50})

        assert house.inventory["chicken"] == 150
        assert house.applied_entries == {}
        assert "approve:r1" in house.settled_entries
        assert house_inventory()["chicken"] == 150

    def test_settle_corrects_to_committed_quantities(self, ledger, house_inventory):
        """Test settling brings inventory in line with the committed deltas."""
        ledger.apply_entry("H1", "fulfill:sr_1", {"chicken": -50})

        ledger.settle_entry("H1", "fulfill:sr_1", {"chicken": -30})

        assert house_inventory()["chicken"] == 70

    def test_settle_twice_is_noop(self, ledger, record_store):
        """Test a second settle of the same key writes nothing."""
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})
        ledger.settle_entry("H1", "approve:r1", {"chicken": 50})
        version = record_store.get(PRODUCTION_HOUSES, "H1")["version"]

        ledger.settle_entry("H1", "approve:r1", {"chicken": 50})

        assert record_store.get(PRODUCTION_HOUSES, "H1")["version"] == version
        assert record_store.get(PRODUCTION_HOUSES, "H1")["inventory"]["chicken"] == 150

    def test_apply_after_settle_rejected(self, ledger, house_inventory):
        """Test a late writer cannot re-apply a settled entry."""
        ledger.apply_entry("H1", "approve:r1", {"chicken": 50})
        ledger.settle_entry("H1", "approve:r1", {"chicken": 50})

        with pytest.raises(InvalidStateError, match="already settled"):
            ledger.apply_entry("H1", "approve:r1", {"chicken": 50})

        assert house_inventory()["chicken"] == 150

    def test_revert_after_settle_is_noop(self, ledger, house_inventory):
        """Test reverting a settled entry leaves the committed change in place."""
        ledger.apply_entry("H1", "fulfill:sr_1", {"chicken": -60})
        ledger.settle_entry("H1", "fulfill:sr_1", {"chicken": -60})

        ledger.revert_entry("H1", "fulfill:sr_1")

        assert house_inventory()["chicken"] == 40

    def test_old_settled_keys_pruned(self):
        """Test settled keys past the retention window are dropped on the next write."""
        old = (datetime.utcnow() - timedelta(hours=48)).isoformat()
        recent = datetime.utcnow().isoformat()
        seed = seed_records()
        seed[PRODUCTION_HOUSES][0]["settledEntries"] = {"approve:old": old, "approve:recent": recent}
        store = InMemoryRecordStore(seed=seed)
        ledger = ProductionLedger(store)

        house = ledger.apply_entry("H1", "approve:r1", {"chicken": 5})

        assert set(house.settled_entries) == {"approve:recent"}
