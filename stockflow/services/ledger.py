"""Production house inventory ledger.

Every change to ``ProductionHouse.inventory`` goes through ``apply_entry``.
An entry is a set of signed per-SKU deltas under a unique key
(``approve:<recordId>``, ``fulfill:<requestId>``). The house record keeps a
journal of applied entries, and the inventory change plus the journal
update are one version-conditioned write of the house record. Replaying
an entry therefore never credits or debits twice.

Once the record that owns an entry has committed, ``settle_entry`` drops it
from the journal and remembers the key in ``settledEntries`` for
``ledger.settled_retention_hours``. A late writer that lost the race for the
same record cannot re-apply a settled key.
"""

import threading
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Mapping

from ..api.protocol import RecordStore
from ..models import quantities as qty
from ..models.catalog import PRODUCTION_HOUSES, ProductionHouse
from ..utils.config import get_config
from ..utils.exceptions import ConflictError, InvalidStateError, ValidationError
from ..utils.logger import get_logger


def approval_entry_key(record_id: str) -> str:
    return f"approve:{record_id}"


def fulfillment_entry_key(request_id: str) -> str:
    return f"fulfill:{request_id}"


class ProductionLedger:
    """Applies journaled inventory changes to production houses."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.config = get_config()
        self.logger = get_logger("ledger")
        self._house_locks: Dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._locks_guard = threading.Lock()

    def house_lock(self, house_id: str) -> threading.RLock:
        """Lock serializing ledger work on one house within this process.

        Reentrant, so callers may hold it around a whole transition.
        """
        with self._locks_guard:
            return self._house_locks[house_id]

    def get_house(self, house_id: str) -> ProductionHouse:
        """Load a production house. Raises NotFoundError when absent."""
        return ProductionHouse.from_dict(self.store.get(PRODUCTION_HOUSES, house_id))

    def available(self, house_id: str) -> qty.QuantityMap:
        """Current on-hand quantities at a production house."""
        return dict(self.get_house(house_id).inventory)

    def is_applied(self, house_id: str, entry_key: str) -> bool:
        return entry_key in self.get_house(house_id).applied_entries

    def apply_entry(
        self,
        house_id: str,
        entry_key: str,
        deltas: Mapping[str, float]
    ) -> ProductionHouse:
        """
        Apply signed per-SKU deltas to a house's inventory under ``entry_key``.

        If the key is already journaled only the difference from the
        journaled deltas is applied, so replaying an entry is a no-op.

        Returns:
            The house as stored after the write

        Raises:
            ValidationError: If any SKU would go negative (nothing is written)
            InvalidStateError: If the entry has already been settled
            ConflictError: If the house kept changing underneath us
            NotFoundError: If the house does not exist
        """
        deltas = {sku: delta for sku, delta in deltas.items() if delta != 0}
        return self._write(house_id, entry_key, deltas)

    def revert_entry(self, house_id: str, entry_key: str) -> ProductionHouse:
        """Undo a journaled entry. A key that was never applied, or already settled, is a no-op."""
        return self._write(house_id, entry_key, None)

    def settle_entry(
        self,
        house_id: str,
        entry_key: str,
        committed: Mapping[str, float]
    ) -> ProductionHouse:
        """
        Close an entry once its record has committed with ``committed`` deltas.

        The inventory is brought in line with ``committed`` (a losing writer
        may have journaled different quantities), the key leaves
        ``appliedEntries`` and is remembered in ``settledEntries``. Settling
        an already settled key is a no-op.
        """
        committed = {sku: delta for sku, delta in committed.items() if delta != 0}
        return self._write(house_id, entry_key, committed, settle=True)

    def _prune_settled(self, settled: Dict[str, str], now: datetime) -> Dict[str, str]:
        cutoff = now - timedelta(hours=self.config.ledger.settled_retention_hours)
        return {
            key: settled_at for key, settled_at in settled.items()
            if datetime.fromisoformat(settled_at) >= cutoff
        }

    def _write(self, house_id: str, entry_key: str, deltas, settle: bool = False) -> ProductionHouse:
        attempts = self.config.ledger.max_write_attempts

        with self.house_lock(house_id):
            for attempt in range(1, attempts + 1):
                house = self.get_house(house_id)

                if entry_key in house.settled_entries:
                    if deltas is not None and not settle:
                        raise InvalidStateError(
                            f"Ledger entry {entry_key} is already settled at house {house_id}",
                            details={"production_house_id": house_id, "entry": entry_key}
                        )
                    self.logger.debug(f"Ledger entry {entry_key} already settled at house {house_id}")
                    return house

                previous = house.applied_entries.get(entry_key, {})
                target = deltas if deltas is not None else {}

                change = qty.subtract(target, previous)
                change = {sku: amount for sku, amount in change.items() if amount != 0}
                if not change and not settle and (entry_key in house.applied_entries) == (deltas is not None):
                    self.logger.debug(f"Ledger entry {entry_key} already applied at house {house_id}")
                    return house

                new_inventory = qty.add(house.inventory, change)
                negative = {sku: amount for sku, amount in new_inventory.items() if amount < 0}
                if negative:
                    raise ValidationError(
                        f"Insufficient stock at production house {house.name or house_id}",
                        details={
                            "production_house_id": house_id,
                            "entry": entry_key,
                            "shortfall": qty.negate(negative)
                        }
                    )

                now = datetime.utcnow()
                updated = house.to_dict()
                updated["inventory"] = new_inventory
                updated["settledEntries"] = self._prune_settled(updated["settledEntries"], now)
                if settle:
                    updated["appliedEntries"].pop(entry_key, None)
                    updated["settledEntries"][entry_key] = now.isoformat()
                elif deltas is not None:
                    updated["appliedEntries"][entry_key] = dict(target)
                else:
                    updated["appliedEntries"].pop(entry_key, None)

                try:
                    stored = self.store.put(PRODUCTION_HOUSES, updated, expected_version=house.version)
                except ConflictError:
                    self.logger.warning(
                        f"Ledger write conflict at house {house_id} for {entry_key} "
                        f"(attempt {attempt}/{attempts}), retrying"
                    )
                    continue

                if settle:
                    action = "Settled"
                elif deltas is not None:
                    action = "Applied"
                else:
                    action = "Reverted"
                self.logger.info(f"{action} ledger entry {entry_key} at house {house_id}: {change}")
                return ProductionHouse.from_dict(stored)

        raise ConflictError(
            f"Production house {house_id} kept changing; gave up after {attempts} attempts",
            details={"production_house_id": house_id, "entry": entry_key}
        )
