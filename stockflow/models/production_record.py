"""Production record data model."""

from dataclasses import dataclass, field
from datetime import date as date_type
from enum import Enum
from typing import Optional, Dict, Any

from .quantities import QuantityMap, normalize
from ..utils.exceptions import ValidationError

PRODUCTION_RECORDS = "productionRecords"

# Records written before per-SKU breakdowns stored one top-level field per
# finished item. Maps those field names to their inventory SKU.
LEGACY_FIELD_MAPPING = {
    "chickenMomos": "chicken",
    "chickenCheeseMomos": "chickenCheese",
    "vegMomos": "veg",
    "cheeseCornMomos": "cheeseCorn",
    "paneerMomos": "paneer",
    "vegKurkureMomos": "vegKurkure",
    "chickenKurkureMomos": "chickenKurkure",
}

Breakdown = Dict[str, QuantityMap]


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"


def record_id_for(production_house_id: str, date: str) -> str:
    """Deterministic record id; one record can exist per (house, date)."""
    return f"prod_{production_house_id}_{date}"


def validate_date(value: str) -> str:
    """Return ``value`` if it is an ISO ``YYYY-MM-DD`` date."""
    try:
        return date_type.fromisoformat(str(value)).isoformat()
    except ValueError:
        raise ValidationError(
            f"Invalid production date '{value}', expected YYYY-MM-DD",
            details={"date": value}
        )


def normalize_breakdown(breakdown: Optional[Dict[str, Any]]) -> Breakdown:
    """
    Validate a per-SKU production breakdown.

    Each entry must carry a ``final`` output quantity; other keys (dough,
    stuffing, batter, coating...) are kept as informational quantities.
    A bare number is shorthand for ``{"final": n}``.

    Raises:
        ValidationError: If an entry is malformed
    """
    if not breakdown:
        raise ValidationError("Production breakdown cannot be empty")
    if not isinstance(breakdown, dict):
        raise ValidationError("Production breakdown must map SKU to quantities")

    result: Breakdown = {}
    for sku, entry in breakdown.items():
        if not isinstance(sku, str) or not sku.strip():
            raise ValidationError("SKU cannot be empty", details={"sku": repr(sku)})
        if not isinstance(entry, dict):
            entry = {"final": entry}
        if "final" not in entry:
            raise ValidationError(
                f"Production entry for '{sku}' is missing a final quantity",
                details={"sku": sku}
            )
        result[sku.strip()] = normalize(entry)
    return result


@dataclass
class ProductionRecord:
    """A day's reported output at a production house."""

    id: str
    date: str
    production_house_id: str
    breakdown: Breakdown
    created_by: str
    created_at: Optional[str] = None
    wastage: QuantityMap = field(default_factory=dict)
    approval_status: ApprovalStatus = ApprovalStatus.PENDING
    approved_by: Optional[str] = None
    approved_at: Optional[str] = None
    updated_by: Optional[str] = None
    updated_at: Optional[str] = None
    version: int = 0
    # Fields this model does not own, legacy item fields included
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def final_output(self) -> QuantityMap:
        """Finished quantity per SKU; the amount credited on approval."""
        return {sku: entry.get("final", 0) for sku, entry in self.breakdown.items()}

    @property
    def is_approved(self) -> bool:
        return self.approval_status is ApprovalStatus.APPROVED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to record store representation."""
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "date": self.date,
            "productionHouseId": self.production_house_id,
            "breakdown": {sku: dict(entry) for sku, entry in self.breakdown.items()},
            "wastage": dict(self.wastage),
            "createdBy": self.created_by,
            "createdAt": self.created_at,
            "approvalStatus": self.approval_status.value,
            "approvedBy": self.approved_by,
            "approvedAt": self.approved_at,
            "updatedBy": self.updated_by,
            "updatedAt": self.updated_at,
            "version": self.version
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProductionRecord":
        """Create instance from a record store dictionary.

        Accepts the legacy layout (one top-level field per item plus an
        optional ``items`` map) as well as the ``breakdown`` layout.
        """
        known = {
            "id", "date", "productionHouseId", "breakdown", "wastage", "createdBy",
            "createdAt", "approvalStatus", "approvedBy", "approvedAt", "updatedBy",
            "updatedAt", "version"
        }
        breakdown = data.get("breakdown")
        if breakdown is None:
            breakdown = {}
            for legacy_key, sku in LEGACY_FIELD_MAPPING.items():
                if isinstance(data.get(legacy_key), dict):
                    breakdown[sku] = data[legacy_key]
            breakdown.update(data.get("items") or {})

        return cls(
            id=data["id"],
            date=data["date"],
            # Old records stored the house under storeId
            production_house_id=data.get("productionHouseId") or data.get("storeId"),
            breakdown={sku: normalize(entry) for sku, entry in breakdown.items()},
            created_by=data.get("createdBy", ""),
            created_at=data.get("createdAt"),
            wastage=normalize(data.get("wastage") or {}),
            approval_status=ApprovalStatus(data.get("approvalStatus", ApprovalStatus.PENDING.value)),
            approved_by=data.get("approvedBy"),
            approved_at=data.get("approvedAt"),
            updated_by=data.get("updatedBy"),
            updated_at=data.get("updatedAt"),
            version=data.get("version", 0),
            extra={k: v for k, v in data.items() if k not in known}
        )
