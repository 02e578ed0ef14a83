"""Catalog reference data: stores, production houses and acting users."""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any

from .quantities import QuantityMap, normalize

STORES = "stores"
PRODUCTION_HOUSES = "productionHouses"


@dataclass
class Store:
    """A point-of-sale location drawing stock from one production house."""

    id: str
    name: str
    production_house_id: Optional[str] = None
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to record store representation."""
        return {
            "id": self.id,
            "name": self.name,
            "productionHouseId": self.production_house_id,
            "version": self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Store":
        """Create instance from a record store dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            production_house_id=data.get("productionHouseId") or None,
            version=data.get("version", 0)
        )


@dataclass
class ProductionHouse:
    """A facility that produces finished SKUs and holds their ledger."""

    id: str
    name: str
    production_head_id: Optional[str] = None
    inventory: QuantityMap = field(default_factory=dict)
    # Ledger journal: entry key -> signed per-SKU deltas already applied
    applied_entries: Dict[str, QuantityMap] = field(default_factory=dict)
    # Entry keys whose record has committed -> settled-at timestamp
    settled_entries: Dict[str, str] = field(default_factory=dict)
    version: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to record store representation."""
        return {
            "id": self.id,
            "name": self.name,
            "productionHeadId": self.production_head_id,
            "inventory": dict(self.inventory),
            "appliedEntries": {key: dict(deltas) for key, deltas in self.applied_entries.items()},
            "settledEntries": dict(self.settled_entries),
            "version": self.version
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductionHouse":
        """Create instance from a record store dictionary."""
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            production_head_id=data.get("productionHeadId") or None,
            inventory=normalize(data.get("inventory") or {}),
            applied_entries={
                key: dict(deltas) for key, deltas in (data.get("appliedEntries") or {}).items()
            },
            settled_entries=dict(data.get("settledEntries") or {}),
            version=data.get("version", 0)
        )


@dataclass
class Actor:
    """The authenticated user performing an operation."""

    id: str
    name: str = ""
    role: str = ""
    store_id: Optional[str] = None
    production_house_id: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def is_attached_to(self, house: ProductionHouse) -> bool:
        """True when the actor works at (or leads) the given production house."""
        if self.production_house_id and self.production_house_id == house.id:
            return True
        return bool(house.production_head_id) and house.production_head_id == self.id
