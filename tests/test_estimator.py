"""Tests for store stock estimation."""

import pytest

from stockflow.models.stock_request import StockRequest, StockRequestStatus
from stockflow.models.stock_status import StockLevel
from stockflow.services.estimator import SALES, classify, estimate_store_stock
from stockflow.utils.config import EstimatorConfig
from stockflow.utils.exceptions import NotFoundError


def make_request(status, fulfilled=None, store_id="S1", request_id="sr_1"):
    return StockRequest(
        id=request_id,
        store_id=store_id,
        store_name="Mall Road",
        production_house_id="H1",
        production_house_name="Central Kitchen",
        requested_quantities={"chicken": 500, "veg": 500},
        request_date="2024-03-01T10:00:00",
        requested_by="mgr-1",
        status=status,
        fulfilled_quantities=fulfilled,
    )


class TestClassify:
    """Tests for the stock level thresholds."""

    @pytest.mark.parametrize("quantity, level", [
        (0, StockLevel.OUT),
        (-3, StockLevel.OUT),
        (1, StockLevel.CRITICAL),
        (49.99, StockLevel.CRITICAL),
        (50, StockLevel.LOW),
        (99, StockLevel.LOW),
        (100, StockLevel.HEALTHY),
    ])
    def test_default_thresholds(self, quantity, level):
        """Test quantities classify against the default 50/100 thresholds."""
        assert classify(quantity, EstimatorConfig()) is level

    def test_custom_thresholds(self):
        """Test configured thresholds are honoured."""
        config = EstimatorConfig(critical_threshold=10, low_threshold=20)

        assert classify(15, config) is StockLevel.LOW


class TestEstimateStoreStock:
    """Tests for the pure estimate function."""

    def test_only_delivered_requests_count(self):
        """Test only fulfilled and partially fulfilled requests add stock."""
        requests = [
            make_request(StockRequestStatus.FULFILLED, {"chicken": 200, "veg": 100}, request_id="a"),
            make_request(StockRequestStatus.PARTIALLY_FULFILLED, {"chicken": 50}, request_id="b"),
            make_request(StockRequestStatus.PENDING, request_id="c"),
            make_request(StockRequestStatus.CANCELLED, request_id="d"),
            make_request(StockRequestStatus.FULFILLED, {"chicken": 999}, store_id="S2", request_id="e"),
        ]

        estimate = estimate_store_stock("S1", requests, sales_count=0)

        assert estimate.total_fulfilled == {"chicken": 250, "veg": 100}
        assert estimate.per_sku_quantity == {"chicken": 250, "veg": 100}
        assert estimate.overall_status is StockLevel.HEALTHY

    def test_consumption_spread_over_tracked_skus(self):
        """Test sales are spread evenly over the tracked SKUs."""
        requests = [make_request(StockRequestStatus.FULFILLED, {"chicken": 200, "veg": 100})]

        estimate = estimate_store_stock("S1", requests, sales_count=141)

        # 141 sales // 2 SKUs
        assert estimate.estimated_consumption == 70
        assert estimate.per_sku_quantity == {"chicken": 130, "veg": 30}
        assert estimate.per_sku_status == {"chicken": StockLevel.HEALTHY, "veg": StockLevel.CRITICAL}
        assert estimate.overall_status is StockLevel.LOW

    def test_tracked_catalog_includes_undelivered_skus(self):
        """Test tracked SKUs never delivered read as zero."""
        requests = [make_request(StockRequestStatus.FULFILLED, {"chicken": 100})]

        estimate = estimate_store_stock(
            "S1", requests, sales_count=20, tracked_skus=["chicken", "veg", "paneer", "corn"]
        )

        assert estimate.estimated_consumption == 5
        assert estimate.per_sku_quantity == {"chicken": 95, "veg": 0, "paneer": 0, "corn": 0}
        assert estimate.per_sku_status["veg"] is StockLevel.OUT
        assert estimate.overall_status is StockLevel.CRITICAL

    def test_quantities_never_negative(self):
        """Test consumption never drives a quantity below zero."""
        requests = [make_request(StockRequestStatus.FULFILLED, {"chicken": 10})]

        estimate = estimate_store_stock("S1", requests, sales_count=500)

        assert estimate.per_sku_quantity == {"chicken": 0}
        assert estimate.overall_status is StockLevel.OUT

    def test_no_history(self):
        """Test a store with no history is out of stock."""
        estimate = estimate_store_stock("S1", [], sales_count=12)

        assert estimate.per_sku_quantity == {}
        assert estimate.estimated_consumption == 0
        assert estimate.overall_status is StockLevel.OUT

    def test_display_conversions(self):
        """Test display conversions are applied to the estimate."""
        requests = [make_request(StockRequestStatus.FULFILLED, {"chicken": 100, "veg": 30})]

        estimate = estimate_store_stock("S1", requests, sales_count=0, display_conversions={"chicken": 8})

        assert estimate.display_quantities == {"chicken": 12.5, "veg": 30}

    def test_is_pure(self):
        """Test the same inputs give the same estimate and are left unchanged."""
        requests = [make_request(StockRequestStatus.FULFILLED, {"chicken": 200, "veg": 100})]

        first = estimate_store_stock("S1", requests, sales_count=33)
        second = estimate_store_stock("S1", requests, sales_count=33)

        assert first == second
        assert requests[0].fulfilled_quantities == {"chicken": 200, "veg": 100}


class TestStoreStockEstimator:
    """Tests for estimates loaded from the record store."""

    def test_estimate_from_history(self, operations, store_manager, production_lead, record_store):
        """Test an estimate built from stored requests and sales."""
        request = operations.create_stock_request(store_manager, "S1", {"chicken": 80, "veg": 40})
        operations.fulfill_stock_request(production_lead, request.id, {"chicken": 80, "veg": 40})
        for n in range(20):
            record_store.put(SALES, {"id": f"sale-{n}", "storeId": "S1"})
        record_store.put(SALES, {"id": "sale-other", "storeId": "S2"})

        estimate = operations.estimate_store_stock("S1")

        assert estimate.sales_count == 20
        assert estimate.estimated_consumption == 10
        assert estimate.per_sku_quantity == {"chicken": 70, "veg": 30}
        assert estimate.overall_status is StockLevel.LOW
        assert estimate.to_dict()["perSkuStatus"] == {"chicken": "low", "veg": "critical"}

    def test_repeated_estimates_equal(self, operations, store_manager, production_lead):
        """Test estimating twice gives the same result."""
        request = operations.create_stock_request(store_manager, "S1", {"chicken": 80})
        operations.fulfill_stock_request(production_lead, request.id, {"chicken": 60})

        assert operations.estimate_store_stock("S1") == operations.estimate_store_stock("S1")

    def test_unknown_store(self, operations):
        """Test estimating an unknown store raises NotFoundError."""
        with pytest.raises(NotFoundError):
            operations.estimate_store_stock("S9")

    def test_estimate_all_stores(self, operations):
        """Test every store gets an estimate."""
        estimates = operations.estimate_all_stores()

        assert [e.store_id for e in estimates] == ["S1", "S2"]
        assert all(e.overall_status is StockLevel.OUT for e in estimates)
