from decimal import Decimal, ROUND_HALF_UP
from enum import Enum


class ItemSize(str, Enum):
    REGULAR = "Regular"
    LARGE = "Large"


class OrderStatus(str, Enum):
    PENDING = "Pending"
    BAKING = "Baking"
    OUT_FOR_DELIVERY = "Out for Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    REDELIVERING = "Redelivering"


# Unit price multiplier per size, applied to the product's base price.
SIZE_MULTIPLIERS = {
    ItemSize.REGULAR: Decimal("1"),
    ItemSize.LARGE: Decimal("1.5"),
}

CENTS = Decimal("0.01")


def sized_price(base_price, size) -> Decimal:
    """Unit price for ``size``, rounded half-up to cents.

    Used by both the server (authoritative) and the cart (display) so the two
    never disagree.
    """
    price = Decimal(str(base_price)) * SIZE_MULTIPLIERS[ItemSize(size)]
    return price.quantize(CENTS, rounding=ROUND_HALF_UP)
