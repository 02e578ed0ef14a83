"""Store stock estimation.

A store's on-hand stock is not recorded anywhere; it is derived from what
its production house shipped (fulfilled stock requests) minus an estimate
of what it sold. Per-SKU sale counts are not tracked, so consumption is the
store's sales record count spread evenly over the tracked SKUs.
"""

from typing import Iterable, List, Mapping, Optional, Sequence

from ..api.protocol import RecordStore
from ..models import quantities as qty
from ..models.catalog import STORES, Store
from ..models.stock_request import STOCK_REQUESTS, StockRequest
from ..models.stock_status import StockEstimate, StockLevel
from ..utils.config import EstimatorConfig, get_config
from ..utils.logger import get_logger

SALES = "sales"


def classify(quantity: float, config: EstimatorConfig) -> StockLevel:
    """Map a quantity (or mean quantity) to a stock level."""
    if quantity <= 0:
        return StockLevel.OUT
    if quantity < config.critical_threshold:
        return StockLevel.CRITICAL
    if quantity < config.low_threshold:
        return StockLevel.LOW
    return StockLevel.HEALTHY


def estimate_store_stock(
    store_id: str,
    requests: Iterable[StockRequest],
    sales_count: int,
    tracked_skus: Optional[Sequence[str]] = None,
    thresholds: Optional[EstimatorConfig] = None,
    display_conversions: Optional[Mapping[str, float]] = None
) -> StockEstimate:
    """
    Estimate a store's current stock from its history.

    Args:
        store_id: Store being estimated
        requests: The store's stock requests; only delivered ones count
        sales_count: Number of sales records for the store
        tracked_skus: SKUs to report on; defaults to every SKU ever delivered
        thresholds: Critical/low thresholds; defaults to EstimatorConfig()
        display_conversions: Optional SKU -> pieces per display unit

    Returns:
        StockEstimate. Holds no state; the same inputs give the same output.
    """
    thresholds = thresholds or EstimatorConfig()

    delivered = [r.fulfilled_quantities for r in requests if r.store_id == store_id and r.is_delivered]
    total_fulfilled = qty.total(delivered)

    skus = list(tracked_skus) if tracked_skus else sorted(total_fulfilled)
    estimated_consumption = sales_count // len(skus) if skus and sales_count > 0 else 0

    current = {
        sku: max(0, qty.get_quantity(total_fulfilled, sku) - estimated_consumption)
        for sku in skus
    }
    mean = sum(current.values()) / len(current) if current else 0

    display_quantities = None
    if display_conversions:
        display_quantities = {
            sku: round(amount / display_conversions[sku], 2)
            if display_conversions.get(sku) else amount
            for sku, amount in current.items()
        }

    return StockEstimate(
        store_id=store_id,
        per_sku_quantity=current,
        per_sku_status={sku: classify(amount, thresholds) for sku, amount in current.items()},
        overall_status=classify(mean, thresholds),
        total_fulfilled={sku: qty.get_quantity(total_fulfilled, sku) for sku in skus},
        estimated_consumption=estimated_consumption,
        sales_count=sales_count,
        display_quantities=display_quantities,
    )


class StoreStockEstimator:
    """Loads a store's history from the record store and estimates its stock."""

    def __init__(self, store: RecordStore):
        self.store = store
        self.config = get_config()
        self.logger = get_logger("workflow")

    def count_sales(self, store_id: str) -> int:
        """Number of sales activity records for a store."""
        return len(self.store.list(SALES, {"storeId": store_id}))

    def estimate(self, store_id: str) -> StockEstimate:
        """
        Estimate one store's stock.

        Raises:
            NotFoundError: If the store does not exist
        """
        store = Store.from_dict(self.store.get(STORES, store_id))
        requests = [
            StockRequest.from_dict(r)
            for r in self.store.list(STOCK_REQUESTS, {"storeId": store.id})
        ]
        settings = self.config.estimator

        estimate = estimate_store_stock(
            store.id,
            requests,
            self.count_sales(store.id),
            tracked_skus=settings.tracked_skus,
            thresholds=settings,
            display_conversions=settings.display_conversions,
        )

        self.logger.debug(estimate.get_summary())
        alerts = {sku: level.value for sku, level in estimate.alerts.items()}
        if alerts:
            self.logger.info(f"Store {store.name} stock alerts: {alerts}")
        return estimate

    def estimate_all(self) -> List[StockEstimate]:
        """Estimate every store, in store-id order."""
        stores = sorted(self.store.list(STORES), key=lambda s: s["id"])
        return [self.estimate(s["id"]) for s in stores]
