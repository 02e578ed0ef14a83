"""Entry point for the stock request and production approval operations."""

from functools import wraps
from typing import Any, Dict, List, Mapping, Optional

from .estimator import StoreStockEstimator
from .ledger import ProductionLedger
from .production import ProductionService
from .stock_requests import StockRequestService
from ..api.memory_store import InMemoryRecordStore
from ..api.protocol import RecordStore
from ..models.catalog import Actor
from ..models.production_record import ApprovalStatus, ProductionRecord
from ..models.stock_request import StockRequest, StockRequestStatus
from ..models.stock_status import StockEstimate
from ..utils.config import get_config
from ..utils.exceptions import ConfigurationError, StockflowError
from ..utils.logger import get_logger


def create_record_store() -> RecordStore:
    """Build the record store selected by ``RECORD_STORE_BACKEND``."""
    config = get_config()
    backend = config.env.record_store_backend.lower()

    if backend == "memory":
        seed_file = config.env.record_store_seed_file
        if seed_file:
            return InMemoryRecordStore.from_json_file(seed_file)
        return InMemoryRecordStore()
    if backend == "http":
        from ..api.record_store_client import RecordStoreClient
        return RecordStoreClient()

    raise ConfigurationError(
        f"Unknown record store backend: {backend}",
        details={"backend": backend, "supported": ["memory", "http"]}
    )


def _reported(operation):
    """Log failed operations to the error log, then re-raise unchanged."""
    @wraps(operation)
    def wrapper(self, *args, **kwargs):
        try:
            return operation(self, *args, **kwargs)
        except StockflowError as e:
            self.error_logger.error(
                f"{operation.__name__} failed: {e}",
                extra={"details": e.details}
            )
            raise
    return wrapper


class StockflowOperations:
    """
    Main facade over the stock request and production record workflows.

    Collaborators (CLI, HTTP API, UI) call these methods; every failure
    surfaces as one of the StockflowError kinds with nothing written.
    """

    def __init__(self, store: Optional[RecordStore] = None):
        self.config = get_config()
        self.logger = get_logger("workflow")
        self.error_logger = get_logger("error")
        self.store = store if store is not None else create_record_store()
        self.ledger = ProductionLedger(self.store)
        self.requests = StockRequestService(self.store, self.ledger)
        self.production = ProductionService(self.store, self.ledger)
        self.estimator = StoreStockEstimator(self.store)

    # ------------------------------------------------------------------
    # Stock requests
    # ------------------------------------------------------------------

    @_reported
    def create_stock_request(self, actor: Actor, store_id: str, quantities: Mapping[str, float]) -> StockRequest:
        return self.requests.create(actor, store_id, quantities)

    @_reported
    def fulfill_stock_request(
        self,
        actor: Actor,
        request_id: str,
        fulfilled_quantities: Mapping[str, float],
        notes: Optional[str] = None
    ) -> StockRequest:
        return self.requests.fulfill(actor, request_id, fulfilled_quantities, notes)

    @_reported
    def cancel_stock_request(self, actor: Actor, request_id: str) -> StockRequest:
        return self.requests.cancel(actor, request_id)

    def list_stock_requests(
        self,
        store_id: Optional[str] = None,
        production_house_id: Optional[str] = None,
        status: Optional[StockRequestStatus] = None
    ) -> List[StockRequest]:
        return self.requests.list(store_id, production_house_id, status)

    def pending_requests_for_house(self, production_house_id: str) -> List[StockRequest]:
        return self.requests.pending_for_house(production_house_id)

    # ------------------------------------------------------------------
    # Production records
    # ------------------------------------------------------------------

    @_reported
    def submit_production_record(
        self,
        actor: Actor,
        production_house_id: str,
        date: str,
        breakdown: Dict[str, Any],
        wastage: Optional[Dict[str, Any]] = None
    ) -> ProductionRecord:
        return self.production.submit(actor, production_house_id, date, breakdown, wastage)

    @_reported
    def approve_production_record(self, actor: Actor, record_id: str) -> ProductionRecord:
        return self.production.approve(actor, record_id)

    def list_production_records(
        self,
        production_house_id: Optional[str] = None,
        status: Optional[ApprovalStatus] = None
    ) -> List[ProductionRecord]:
        return self.production.list(production_house_id, status)

    def find_duplicate_production_records(self) -> List[Dict[str, Any]]:
        """Duplicate (house, date) groups as plain dicts."""
        return [
            {
                "productionHouseId": house_id,
                "date": date,
                "recordIds": [r.id for r in records],
                "statuses": [r.approval_status.value for r in records],
            }
            for (house_id, date), records in self.production.find_duplicates().items()
        ]

    @_reported
    def remove_duplicate_production_records(self, actor: Actor) -> Dict[str, Any]:
        return self.production.remove_duplicates(actor)

    # ------------------------------------------------------------------
    # Store stock
    # ------------------------------------------------------------------

    @_reported
    def estimate_store_stock(self, store_id: str) -> StockEstimate:
        return self.estimator.estimate(store_id)

    def estimate_all_stores(self) -> List[StockEstimate]:
        return self.estimator.estimate_all()

    def production_house_inventory(self, production_house_id: str) -> Dict[str, float]:
        return self.ledger.available(production_house_id)

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def test_connection(self) -> Dict[str, Any]:
        """Check that the configured record store is reachable."""
        self.logger.info("Testing record store connection...")
        result = {"backend": self.config.env.record_store_backend, "success": False, "error": None}

        try:
            ping = getattr(self.store, "ping", None)
            if ping:
                ping()
            else:
                self.store.list("stores")
            result["success"] = True
            self.logger.info("✓ Record store connection successful")
        except StockflowError as e:
            result["error"] = str(e)
            self.logger.error(f"✗ Record store connection failed: {e}")

        return result
