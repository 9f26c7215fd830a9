from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field

from shared.constants import ItemSize, sized_price

def make_line_key(product_id: str, size: ItemSize) -> str:
    return f"{product_id}|{ItemSize(size).value}"

def derive_price(base_price: Decimal, size: ItemSize) -> Decimal:
    """Display price for one unit; the server recomputes it at checkout."""
    return sized_price(base_price, size)

class CartLine(BaseModel):
    product_id: str
    name: str
    base_price: Decimal
    size: ItemSize = ItemSize.REGULAR
    quantity: int = Field(1, ge=1)
    is_selected: bool = True
    image_url: Optional[str] = None
    category: Optional[str] = None

    class Config:
        frozen = True

    @property
    def line_key(self) -> str:
        return make_line_key(self.product_id, self.size)

    @property
    def derived_price(self) -> Decimal:
        return derive_price(self.base_price, self.size)

    @property
    def line_total(self) -> Decimal:
        return self.derived_price * self.quantity
