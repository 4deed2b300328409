"""
Order totals.

Pure and deterministic: the same line items always produce the same
totals, and nothing here touches the database. Malformed numbers are the
caller's problem; this function does not validate them.
"""
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping

DEFAULT_ITEM_WEIGHT_GRAMS = 1000
CENT = Decimal("0.01")


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal = Decimal("0.00")
    express_charge: Decimal = Decimal("0.00")
    discount: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    final_total: Decimal = Decimal("0.00")
    item_count: int = 0
    total_quantity: int = 0
    estimated_weight: int = 0


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_totals(
    items: Iterable[Mapping],
    delivery_mode: str = "surface",
    express_charge=0,
    discount=0,
) -> OrderTotals:
    """
    items: sequence of {"price", "quantity", "weight"?} mappings.
    Express charge applies only when delivery_mode == "express".
    """
    items = list(items)
    if not items:
        return OrderTotals()

    subtotal = _money(sum(Decimal(str(i["price"])) * i["quantity"] for i in items))
    express = _money(express_charge) if delivery_mode == "express" else _money(0)
    discount = _money(discount)
    total = subtotal + express

    estimated_weight = sum((i.get("weight") or DEFAULT_ITEM_WEIGHT_GRAMS) * i["quantity"] for i in items)

    return OrderTotals(
        subtotal=subtotal,
        express_charge=express,
        discount=discount,
        total=total,
        final_total=total - discount,
        item_count=len(items),
        total_quantity=sum(i["quantity"] for i in items),
        estimated_weight=estimated_weight,
    )
