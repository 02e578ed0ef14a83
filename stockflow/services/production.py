"""Production record submission and approval.

    pending -> approved

Approval credits each SKU's final output to the production house ledger
under the key ``approve:<recordId>``, writes the record as approved, then
settles the ledger entry. The journaled credit makes a retried or
concurrent approval harmless.

Legacy records may name their house under ``storeId``, so house filters are
applied to parsed records rather than to the raw field.
"""

from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from .ledger import ProductionLedger, approval_entry_key
from ..api.protocol import CREATE_ONLY, RecordStore
from ..models import quantities as qty
from ..models.catalog import Actor
from ..models.production_record import (
    PRODUCTION_RECORDS,
    ApprovalStatus,
    ProductionRecord,
    normalize_breakdown,
    record_id_for,
    validate_date,
)
from ..utils.exceptions import ConflictError, InvalidStateError, StockflowError
from ..utils.logger import get_logger


class ProductionService:
    """Submits and approves daily production records."""

    def __init__(self, store: RecordStore, ledger: Optional[ProductionLedger] = None):
        self.store = store
        self.ledger = ledger or ProductionLedger(store)
        self.logger = get_logger("workflow")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> ProductionRecord:
        return ProductionRecord.from_dict(self.store.get(PRODUCTION_RECORDS, record_id))

    def list(
        self,
        production_house_id: Optional[str] = None,
        status: Optional[ApprovalStatus] = None,
        date: Optional[str] = None
    ) -> List[ProductionRecord]:
        """List production records, newest date first."""
        filters: Dict[str, str] = {}
        if status:
            filters["approvalStatus"] = ApprovalStatus(status).value
        if date:
            filters["date"] = validate_date(date)

        records = [ProductionRecord.from_dict(r) for r in self.store.list(PRODUCTION_RECORDS, filters)]
        if production_house_id:
            records = [r for r in records if r.production_house_id == production_house_id]
        return sorted(records, key=lambda r: (r.date, r.created_at or ""), reverse=True)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def submit(
        self,
        actor: Actor,
        production_house_id: str,
        date: str,
        breakdown: Dict[str, Any],
        wastage: Optional[Dict[str, Any]] = None
    ) -> ProductionRecord:
        """
        Submit the day's production for a house.

        A pending record already on file for the same (house, date) is
        updated in place; no second record is ever created.

        Raises:
            ValidationError: On a bad date or breakdown
            InvalidStateError: If the day's record is already approved
            NotFoundError: If the production house does not exist
            ConflictError: If the existing record changed while we updated it
        """
        house = self.ledger.get_house(production_house_id)
        date = validate_date(date)
        breakdown = normalize_breakdown(breakdown)
        wastage = qty.normalize(wastage)
        now = datetime.utcnow().isoformat()

        existing = self.list(production_house_id=house.id, date=date)
        if not existing:
            record = ProductionRecord(
                id=record_id_for(house.id, date),
                date=date,
                production_house_id=house.id,
                breakdown=breakdown,
                wastage=wastage,
                created_by=actor.id,
                created_at=now,
            )
            try:
                stored = self.store.put(PRODUCTION_RECORDS, record.to_dict(), expected_version=CREATE_ONLY)
            except ConflictError:
                # Lost a race with another submission for the same day
                existing = [self.get(record.id)]
            else:
                self.logger.info(
                    f"Production record {record.id} submitted by {actor.display_name} "
                    f"for {house.name} on {date}: {record.final_output}"
                )
                return ProductionRecord.from_dict(stored)

        current = self._canonical(existing)
        if current.is_approved:
            raise InvalidStateError(
                f"Production for {house.name} on {date} is already approved",
                details={"record_id": current.id, "date": date}
            )

        updated = current.to_dict()
        updated.update({
            "breakdown": {sku: dict(entry) for sku, entry in breakdown.items()},
            "wastage": wastage,
            "updatedBy": actor.id,
            "updatedAt": now,
        })
        result = ProductionRecord.from_dict(
            self.store.put(PRODUCTION_RECORDS, updated, expected_version=current.version)
        )

        self.logger.info(
            f"Production record {current.id} updated by {actor.display_name} "
            f"for {house.name} on {date}: {result.final_output}"
        )
        return result

    def approve(self, actor: Actor, record_id: str) -> ProductionRecord:
        """
        Approve a pending record and credit its final output to the house ledger.

        Raises:
            InvalidStateError: If the record, or another record for the same
                house and date, is already approved
            NotFoundError: If the record or production house does not exist
            ConflictError: If the record or house was written concurrently
        """
        house_id = self.get(record_id).production_house_id
        with self.ledger.house_lock(house_id):
            record = self.get(record_id)
            if record.is_approved:
                raise InvalidStateError(
                    f"Production record {record.id} is already approved",
                    details={"record_id": record.id, "approved_by": record.approved_by}
                )

            others = [
                r for r in self.list(production_house_id=record.production_house_id, date=record.date)
                if r.id != record.id and r.is_approved
            ]
            if others:
                raise InvalidStateError(
                    f"Production for {record.date} is already approved in record {others[0].id}; "
                    "remove duplicate records before approving",
                    details={"record_id": record.id, "approved_record_id": others[0].id, "date": record.date}
                )

            updated = record.to_dict()
            updated.update({
                "approvalStatus": ApprovalStatus.APPROVED.value,
                "approvedBy": actor.id,
                "approvedAt": datetime.utcnow().isoformat(),
            })

            entry_key = approval_entry_key(record.id)
            house = self.ledger.apply_entry(house_id, entry_key, record.final_output)
            try:
                stored = self.store.put(PRODUCTION_RECORDS, updated, expected_version=record.version)
            except StockflowError:
                self._settle_credit(house_id, record.id)
                raise
            self._close_entry(house_id, entry_key, record.final_output)

        self.logger.info(
            f"Production record {record.id} approved by {actor.display_name}; "
            f"credited {record.final_output} to {house.name}"
        )
        return ProductionRecord.from_dict(stored)

    def _settle_credit(self, house_id: str, record_id: str):
        """Make the ledger match the record's stored state after a failed write."""
        entry_key = approval_entry_key(record_id)
        current = self.get(record_id)
        if current.is_approved:
            self.ledger.settle_entry(house_id, entry_key, current.final_output)
        else:
            self.ledger.revert_entry(house_id, entry_key)

    def _close_entry(self, house_id: str, entry_key: str, committed: qty.QuantityMap):
        try:
            self.ledger.settle_entry(house_id, entry_key, committed)
        except StockflowError as e:
            # The record is committed and the open entry already matches it
            self.logger.warning(f"Could not settle ledger entry {entry_key} at house {house_id}: {e}")

    # ------------------------------------------------------------------
    # Legacy duplicate audit
    # ------------------------------------------------------------------

    def find_duplicates(self) -> Dict[Tuple[str, str], List[ProductionRecord]]:
        """
        Find (house, date) keys holding more than one record.

        Submissions can no longer create duplicates; this audits data
        written before that was enforced. Records in each group are ordered
        oldest first.
        """
        groups: Dict[Tuple[str, str], List[ProductionRecord]] = defaultdict(list)
        for record in self.list():
            groups[(record.production_house_id, record.date)].append(record)

        return {
            key: sorted(records, key=lambda r: r.created_at or "")
            for key, records in groups.items()
            if len(records) > 1
        }

    def remove_duplicates(self, actor: Actor) -> Dict[str, Any]:
        """
        Delete duplicate pending records, keeping the canonical one per key.

        Approved records are never deleted.
        """
        duplicates = self.find_duplicates()
        removed: List[str] = []
        details: List[Dict[str, Any]] = []

        for (house_id, date), records in duplicates.items():
            keep = self._canonical(records)
            for record in records:
                if record.id == keep.id or record.is_approved:
                    continue
                self.store.delete(PRODUCTION_RECORDS, record.id, expected_version=record.version)
                removed.append(record.id)
            details.append({
                "productionHouseId": house_id,
                "date": date,
                "kept": keep.id,
                "count": len(records),
            })

        self.logger.info(
            f"Duplicate cleanup by {actor.display_name}: {len(duplicates)} keys, "
            f"{len(removed)} records removed"
        )
        return {
            "duplicatesFound": len(duplicates),
            "removed": removed,
            "details": details,
        }

    @staticmethod
    def _canonical(records: List[ProductionRecord]) -> ProductionRecord:
        """The record that represents a (house, date): approved first, else oldest."""
        approved = [r for r in records if r.is_approved]
        if approved:
            return approved[0]
        return min(records, key=lambda r: r.created_at or "")
