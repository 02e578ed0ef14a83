"""Stock request state machine.

    pending -> partially_fulfilled | fulfilled | cancelled

All three non-pending states are terminal. Fulfillment debits the
production house ledger before the request is written. If the request
write fails the debit is reverted, so neither record changes; once it
succeeds the ledger entry is settled.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from .ledger import ProductionLedger, fulfillment_entry_key
from ..api.protocol import CREATE_ONLY, RecordStore
from ..models import quantities as qty
from ..models.catalog import STORES, Actor, Store
from ..models.stock_request import STOCK_REQUESTS, StockRequest, StockRequestStatus
from ..utils.exceptions import InvalidStateError, StockflowError, ValidationError
from ..utils.logger import get_logger


def determine_fulfillment_status(
    requested: Mapping[str, float],
    fulfilled: Mapping[str, float]
) -> StockRequestStatus:
    """
    Decide the status a fulfillment moves a request to.

    ``fulfilled`` when every SKU requested with a positive amount was
    fulfilled in full, otherwise ``partially_fulfilled``. Callers must have
    rejected all-zero fulfillments already.
    """
    for sku in qty.positive_skus(requested):
        if qty.get_quantity(fulfilled, sku) < requested[sku]:
            return StockRequestStatus.PARTIALLY_FULFILLED
    return StockRequestStatus.FULFILLED


class StockRequestService:
    """Creates, fulfills and cancels stock requests."""

    def __init__(self, store: RecordStore, ledger: Optional[ProductionLedger] = None):
        self.store = store
        self.ledger = ledger or ProductionLedger(store)
        self.logger = get_logger("workflow")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: str) -> StockRequest:
        return StockRequest.from_dict(self.store.get(STOCK_REQUESTS, request_id))

    def list(
        self,
        store_id: Optional[str] = None,
        production_house_id: Optional[str] = None,
        status: Optional[StockRequestStatus] = None
    ) -> List[StockRequest]:
        """List requests, newest first."""
        filters: Dict[str, str] = {}
        if store_id:
            filters["storeId"] = store_id
        if production_house_id:
            filters["productionHouseId"] = production_house_id
        if status:
            filters["status"] = StockRequestStatus(status).value

        requests = [StockRequest.from_dict(r) for r in self.store.list(STOCK_REQUESTS, filters)]
        return sorted(requests, key=lambda r: r.request_date, reverse=True)

    def pending_for_house(self, production_house_id: str) -> List[StockRequest]:
        """The production lead's fulfillment queue, oldest first."""
        pending = self.list(production_house_id=production_house_id, status=StockRequestStatus.PENDING)
        return list(reversed(pending))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create(self, actor: Actor, store_id: str, quantities: Mapping[str, float]) -> StockRequest:
        """
        Create a pending stock request for a store.

        Raises:
            ValidationError: If no quantity is positive or the store has no production house
            NotFoundError: If the store or its production house does not exist
        """
        requested = qty.normalize(quantities)
        if not qty.has_positive(requested):
            raise ValidationError(
                "Stock request must ask for at least one item",
                details={"store_id": store_id}
            )

        store = Store.from_dict(self.store.get(STORES, store_id))
        if not store.production_house_id:
            raise ValidationError(
                f"Store {store.name or store.id} is not assigned to a production house; "
                "contact an administrator to map it before requesting stock",
                details={"store_id": store.id}
            )
        house = self.ledger.get_house(store.production_house_id)

        request = StockRequest(
            id=f"sr_{uuid.uuid4().hex}",
            store_id=store.id,
            store_name=store.name,
            production_house_id=house.id,
            production_house_name=house.name,
            requested_quantities=requested,
            request_date=datetime.utcnow().isoformat(),
            requested_by=actor.id,
            requested_by_name=actor.display_name,
        )
        stored = self.store.put(STOCK_REQUESTS, request.to_dict(), expected_version=CREATE_ONLY)

        self.logger.info(
            f"Stock request {request.id} created by {actor.display_name} for store "
            f"{store.name} -> {house.name}: {requested}"
        )
        return StockRequest.from_dict(stored)

    def fulfill(
        self,
        actor: Actor,
        request_id: str,
        fulfilled_quantities: Mapping[str, float],
        notes: Optional[str] = None
    ) -> StockRequest:
        """
        Fulfill a pending request, fully or partially, and debit the house ledger.

        Raises:
            InvalidStateError: If the request is not pending
            ValidationError: On bad quantities, over-allocation, or an actor
                not attached to the request's production house
            NotFoundError: If the request or production house does not exist
            ConflictError: If the request or house was written concurrently
        """
        house_id = self.get(request_id).production_house_id
        with self.ledger.house_lock(house_id):
            request = self.get(request_id)
            self._require_pending(request, "fulfill")

            fulfilled = qty.normalize(fulfilled_quantities)
            if not qty.has_positive(fulfilled):
                raise ValidationError(
                    "Fulfillment must ship at least one item",
                    details={"request_id": request.id}
                )

            house = self.ledger.get_house(house_id)
            if not actor.is_attached_to(house):
                raise ValidationError(
                    f"{actor.display_name} is not attached to production house {house.name}",
                    details={"request_id": request.id, "actor_id": actor.id, "production_house_id": house.id}
                )

            entry_key = fulfillment_entry_key(request.id)
            # A debit left behind by an interrupted attempt is still ours to ship
            available = qty.subtract(house.inventory, house.applied_entries.get(entry_key, {}))
            short = qty.shortfalls(fulfilled, available)
            if short:
                raise ValidationError(
                    f"Production house {house.name} does not hold enough stock for this fulfillment",
                    details={"request_id": request.id, "shortfall": short}
                )

            status = determine_fulfillment_status(request.requested_quantities, fulfilled)

            updated = request.to_dict()
            updated.update({
                "status": status.value,
                "fulfilledQuantities": fulfilled,
                "fulfilledBy": actor.id,
                "fulfilledByName": actor.display_name,
                "fulfillmentDate": datetime.utcnow().date().isoformat(),
                "notes": notes,
            })

            self.ledger.apply_entry(house.id, entry_key, qty.negate(fulfilled))
            try:
                stored = self.store.put(STOCK_REQUESTS, updated, expected_version=request.version)
            except StockflowError:
                self._settle_debit(house.id, request.id)
                raise
            self._close_entry(house.id, entry_key, qty.negate(fulfilled))

        self.logger.info(
            f"Stock request {request.id} {status.value} by {actor.display_name}: "
            f"requested {request.requested_quantities}, shipped {fulfilled}"
        )
        return StockRequest.from_dict(stored)

    def _settle_debit(self, house_id: str, request_id: str):
        """Make the ledger match the request's stored state after a failed write.

        If another writer fulfilled the request first, its quantities are
        what stays debited; otherwise our debit is removed.
        """
        entry_key = fulfillment_entry_key(request_id)
        current = self.get(request_id)
        if current.is_delivered:
            self.ledger.settle_entry(house_id, entry_key, qty.negate(current.fulfilled_quantities))
        else:
            self.ledger.revert_entry(house_id, entry_key)

    def _close_entry(self, house_id: str, entry_key: str, committed: qty.QuantityMap):
        try:
            self.ledger.settle_entry(house_id, entry_key, committed)
        except StockflowError as e:
            # The request is committed and the open entry already matches it
            self.logger.warning(f"Could not settle ledger entry {entry_key} at house {house_id}: {e}")

    def cancel(self, actor: Actor, request_id: str) -> StockRequest:
        """
        Cancel a pending request. No ledger effect.

        Raises:
            InvalidStateError: If the request is not pending
            NotFoundError: If the request does not exist
        """
        house_id = self.get(request_id).production_house_id
        with self.ledger.house_lock(house_id):
            request = self.get(request_id)
            self._require_pending(request, "cancel")

            # Release any debit stranded by an interrupted fulfillment attempt
            # before the request leaves pending
            self.ledger.revert_entry(house_id, fulfillment_entry_key(request.id))

            updated = request.to_dict()
            updated.update({
                "status": StockRequestStatus.CANCELLED.value,
                "cancelledAt": datetime.utcnow().isoformat(),
            })
            stored = self.store.put(STOCK_REQUESTS, updated, expected_version=request.version)

        self.logger.info(f"Stock request {request.id} cancelled by {actor.display_name}")
        return StockRequest.from_dict(stored)

    def _require_pending(self, request: StockRequest, action: str):
        if request.status.is_terminal:
            raise InvalidStateError(
                f"Cannot {action} stock request {request.id}: it is {request.status.value}",
                details={"request_id": request.id, "status": request.status.value}
            )
