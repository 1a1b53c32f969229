from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple
from chefdeck.schemas.inventory.global_item import GlobalInventoryItem
from chefdeck.schemas.inventory.inventory_cycle import InventoryCycle

ProductKey = Tuple[str, str]


@dataclass
class ProductTotal:
    code: str
    name: str
    unit: str
    total: float = 0.0
    counted: bool = False       # at least one sheet entered a value (0 included)
    in_catalog: bool = True

    @property
    def key(self) -> ProductKey:
        return (self.name, self.unit)


def aggregate(
    cycle: Optional[InventoryCycle],
    catalog: Optional[Iterable[GlobalInventoryItem]] = None,
) -> Dict[ProductKey, ProductTotal]:
    """
    Sum counted quantities per product (name + unit) across every sheet.

    The result is seeded with the whole catalog at zero so uncounted products
    still show up. Products that only exist in sheets follow the catalog
    entries in sheet order. Uncounted items contribute 0.
    """
    totals: Dict[ProductKey, ProductTotal] = {}
    sums: Dict[ProductKey, Decimal] = {}

    for entry in catalog or []:
        key = entry.product_key
        if key not in totals:
            totals[key] = ProductTotal(code=entry.code, name=entry.name, unit=entry.unit)
            sums[key] = Decimal(0)

    if cycle is None:
        return totals

    for sheet in cycle.sheets:
        for item in sheet.items:
            key = item.product_key
            total = totals.get(key)
            if total is None:
                total = ProductTotal(code=item.code or "", name=item.name, unit=item.unit, in_catalog=False)
                totals[key] = total
                sums[key] = Decimal(0)
            elif not total.code and item.code:
                total.code = item.code

            if item.actual is not None:
                sums[key] += Decimal(str(item.actual))
                total.counted = True

    for key, total in totals.items():
        total.total = float(sums[key])

    return totals


def totals_by_key(totals: Dict[ProductKey, ProductTotal]) -> Dict[ProductKey, float]:
    return {key: total.total for key, total in totals.items()}


def counted_totals(totals: Dict[ProductKey, ProductTotal]) -> List[ProductTotal]:
    return [total for total in totals.values() if total.total > 0]
