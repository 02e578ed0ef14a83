"""Store stock estimate data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, Optional

from .quantities import QuantityMap


class StockLevel(str, Enum):
    OUT = "out"
    CRITICAL = "critical"
    LOW = "low"
    HEALTHY = "healthy"


@dataclass
class StockEstimate:
    """Estimated on-hand stock at one store."""

    store_id: str
    per_sku_quantity: QuantityMap = field(default_factory=dict)
    per_sku_status: Dict[str, StockLevel] = field(default_factory=dict)
    overall_status: StockLevel = StockLevel.OUT
    total_fulfilled: QuantityMap = field(default_factory=dict)
    estimated_consumption: int = 0
    sales_count: int = 0
    display_quantities: Optional[QuantityMap] = None

    @property
    def mean_quantity(self) -> float:
        """Mean estimated quantity across tracked SKUs."""
        if not self.per_sku_quantity:
            return 0.0
        return sum(self.per_sku_quantity.values()) / len(self.per_sku_quantity)

    @property
    def alerts(self) -> Dict[str, StockLevel]:
        """SKUs that are out of stock or below the critical/low thresholds."""
        return {
            sku: level for sku, level in self.per_sku_status.items()
            if level is not StockLevel.HEALTHY
        }

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "storeId": self.store_id,
            "perSkuQuantity": dict(self.per_sku_quantity),
            "perSkuStatus": {sku: level.value for sku, level in self.per_sku_status.items()},
            "overallStatus": self.overall_status.value,
            "totalFulfilled": dict(self.total_fulfilled),
            "estimatedConsumption": self.estimated_consumption,
            "salesCount": self.sales_count,
            "displayQuantities": dict(self.display_quantities) if self.display_quantities is not None else None
        }

    def get_summary(self) -> str:
        """Get a human-readable summary."""
        summary_lines = [
            f"Store {self.store_id}: {self.overall_status.value.upper()}",
            f"Sales records: {self.sales_count}",
            f"Estimated consumption per SKU: {self.estimated_consumption}",
        ]
        for sku in sorted(self.per_sku_quantity):
            summary_lines.append(
                f"  - {sku}: {self.per_sku_quantity[sku]} ({self.per_sku_status[sku].value})"
            )
        return "\n".join(summary_lines)
