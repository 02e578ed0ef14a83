"""Stock request data model."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

from .quantities import QuantityMap, normalize

STOCK_REQUESTS = "stockRequests"


class StockRequestStatus(str, Enum):
    PENDING = "pending"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not StockRequestStatus.PENDING


# Statuses whose fulfilled quantities have reached the store
DELIVERED_STATUSES = (StockRequestStatus.FULFILLED, StockRequestStatus.PARTIALLY_FULFILLED)


@dataclass
class StockRequest:
    """A store's request for SKU quantities from its production house."""

    id: str
    store_id: str
    store_name: str
    production_house_id: str
    production_house_name: str
    requested_quantities: QuantityMap
    request_date: str
    requested_by: str
    requested_by_name: str = ""
    status: StockRequestStatus = StockRequestStatus.PENDING
    fulfilled_quantities: Optional[QuantityMap] = None
    fulfilled_by: Optional[str] = None
    fulfilled_by_name: Optional[str] = None
    fulfillment_date: Optional[str] = None
    notes: Optional[str] = None
    cancelled_at: Optional[str] = None
    version: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_delivered(self) -> bool:
        return self.status in DELIVERED_STATUSES and self.fulfilled_quantities is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to record store representation."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "storeId": self.store_id,
            "storeName": self.store_name,
            "productionHouseId": self.production_house_id,
            "productionHouseName": self.production_house_name,
            "requestedQuantities": dict(self.requested_quantities),
            "requestDate": self.request_date,
            "requestedBy": self.requested_by,
            "requestedByName": self.requested_by_name,
            "status": self.status.value,
            "fulfilledQuantities": dict(self.fulfilled_quantities) if self.fulfilled_quantities is not None else None,
            "fulfilledBy": self.fulfilled_by,
            "fulfilledByName": self.fulfilled_by_name,
            "fulfillmentDate": self.fulfillment_date,
            "notes": self.notes,
            "cancelledAt": self.cancelled_at,
            "version": self.version
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StockRequest":
        """Create instance from a record store dictionary."""
        known = {
            "id", "storeId", "storeName", "productionHouseId", "productionHouseName",
            "requestedQuantities", "requestDate", "requestedBy", "requestedByName",
            "status", "fulfilledQuantities", "fulfilledBy", "fulfilledByName",
            "fulfillmentDate", "notes", "cancelledAt", "version"
        }
        fulfilled = data.get("fulfilledQuantities")

        return cls(
            id=data["id"],
            store_id=data["storeId"],
            store_name=data.get("storeName", ""),
            production_house_id=data["productionHouseId"],
            production_house_name=data.get("productionHouseName", ""),
            requested_quantities=normalize(data.get("requestedQuantities") or {}),
            request_date=data.get("requestDate", ""),
            requested_by=data.get("requestedBy", ""),
            requested_by_name=data.get("requestedByName", ""),
            status=StockRequestStatus(data.get("status", StockRequestStatus.PENDING.value)),
            fulfilled_quantities=normalize(fulfilled) if fulfilled is not None else None,
            fulfilled_by=data.get("fulfilledBy"),
            fulfilled_by_name=data.get("fulfilledByName"),
            fulfillment_date=data.get("fulfillmentDate"),
            notes=data.get("notes"),
            cancelled_at=data.get("cancelledAt"),
            version=data.get("version", 0),
            extra={k: v for k, v in data.items() if k not in known}
        )
