"""Authoritative order pricing.

Prices are always derived from the product catalogue at checkout time. Nothing
in this module accepts a client-supplied price.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Mapping, Tuple
from pydantic import BaseModel

from shared.constants import CENTS, ItemSize, sized_price
from storefront.schemas import CheckoutItem

class PricedLine(BaseModel):
    product_id: str
    quantity: int
    size: ItemSize
    price_at_purchase: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.price_at_purchase * self.quantity

def unit_price(base_price: Decimal, size: ItemSize) -> Decimal:
    """Per-unit price for ``size`` given the product's base price."""
    return sized_price(base_price, size)

def price_lines(
    items: Iterable[CheckoutItem],
    authoritative_prices: Mapping[str, Decimal],
) -> Tuple[List[PricedLine], Decimal]:
    """Price every checkout line from ``authoritative_prices``.

    Raises ``KeyError`` for a product id missing from the mapping; callers
    are expected to have checked existence first.
    """
    lines = []
    total = Decimal("0")
    for item in items:
        line = PricedLine(
            product_id=item.id,
            quantity=item.quantity,
            size=item.size,
            price_at_purchase=unit_price(authoritative_prices[item.id], item.size),
        )
        total += line.line_total
        lines.append(line)
    return lines, total.quantize(CENTS, rounding=ROUND_HALF_UP)
