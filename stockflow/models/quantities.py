"""SKU quantity map helpers.

A quantity map is a plain ``Dict[str, float]`` keyed by SKU identifier.
SKU keys are open strings so new items need no structural change.
Absent keys read as 0 and every stored value is non-negative.
"""

from numbers import Real
from typing import Any, Dict, Iterable, Mapping, Optional

from ..utils.exceptions import ValidationError

QuantityMap = Dict[str, float]

# Stored quantities are rounded to this many decimals to avoid float drift
QUANTITY_PRECISION = 2


def _coerce(sku: str, value: Any) -> float:
    # bool is a Real subclass; a checkbox value is never a quantity
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError(
            f"Quantity for '{sku}' must be a number",
            details={"sku": sku, "value": repr(value)}
        )
    if value != value or value in (float("inf"), float("-inf")):
        raise ValidationError(
            f"Quantity for '{sku}' must be finite",
            details={"sku": sku, "value": repr(value)}
        )
    if value < 0:
        raise ValidationError(
            f"Quantity for '{sku}' cannot be negative",
            details={"sku": sku, "value": value}
        )
    return _round(value)


def normalize(quantities: Optional[Mapping[str, Any]]) -> QuantityMap:
    """
    Validate a quantity map and return a clean copy.

    Raises:
        ValidationError: If a key is empty or a value is negative or not numeric
    """
    if quantities is None:
        return {}
    if not isinstance(quantities, Mapping):
        raise ValidationError("Quantities must be a mapping of SKU to quantity")

    result: QuantityMap = {}
    for sku, value in quantities.items():
        if not isinstance(sku, str) or not sku.strip():
            raise ValidationError("SKU cannot be empty", details={"sku": repr(sku)})
        result[sku.strip()] = _coerce(sku, value)
    return result


def get_quantity(quantities: Optional[Mapping[str, float]], sku: str) -> float:
    """Read a quantity, treating absent keys as 0."""
    if not quantities:
        return 0
    return quantities.get(sku, 0) or 0


def positive_skus(quantities: Mapping[str, float]) -> Iterable[str]:
    return [sku for sku, qty in quantities.items() if qty > 0]


def has_positive(quantities: Mapping[str, float]) -> bool:
    return any(qty > 0 for qty in quantities.values())


def add(left: Mapping[str, float], right: Mapping[str, float]) -> QuantityMap:
    """Per-SKU sum of two maps."""
    result: QuantityMap = dict(left)
    for sku, qty in right.items():
        result[sku] = _round(get_quantity(result, sku) + qty)
    return result


def subtract(left: Mapping[str, float], right: Mapping[str, float]) -> QuantityMap:
    """Per-SKU difference ``left - right``; the result may hold negatives."""
    result: QuantityMap = dict(left)
    for sku, qty in right.items():
        result[sku] = _round(get_quantity(result, sku) - qty)
    return result


def negate(quantities: Mapping[str, float]) -> QuantityMap:
    return {sku: -qty for sku, qty in quantities.items()}


def total(maps: Iterable[Optional[Mapping[str, float]]]) -> QuantityMap:
    """Sum any number of maps; ``None`` entries are skipped."""
    result: QuantityMap = {}
    for quantities in maps:
        if quantities:
            result = add(result, quantities)
    return result


def shortfalls(
    requested: Mapping[str, float],
    available: Mapping[str, float]
) -> QuantityMap:
    """SKUs where ``requested`` exceeds ``available``, with the missing amount."""
    return {
        sku: _round(qty - get_quantity(available, sku))
        for sku, qty in requested.items()
        if qty > get_quantity(available, sku)
    }


def _round(value: float) -> float:
    rounded = round(float(value), QUANTITY_PRECISION)
    return int(rounded) if rounded.is_integer() else rounded
