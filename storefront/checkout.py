import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from shared.constants import OrderStatus
from shared.utils import NotFoundException, ValidationException
from storefront.models import OrderDB, OrderItemDB
from storefront.pricing import price_lines
from storefront.schemas import CheckoutRequest

logger = logging.getLogger("storefront.checkout")

class CheckoutResult(BaseModel):
    order_id: str
    total_price: Decimal
    created: bool = True

def validate_checkout(request: CheckoutRequest):
    if not request.items:
        raise ValidationException("No items in cart.")
    if not request.delivery_address or not request.contact_number:
        raise ValidationException("Delivery address and contact number are required.")

def delivery_defaults(request: CheckoutRequest) -> dict:
    coordinates = request.coordinates
    return {
        "default_address": request.delivery_address,
        "default_contact_number": request.contact_number,
        "default_lat": coordinates.lat if coordinates else None,
        "default_lng": coordinates.lng if coordinates else None,
        "default_instructions": request.instructions,
    }

async def place_order(
    storage,
    customer_id: str,
    request: CheckoutRequest,
    idempotency_key: Optional[str] = None,
) -> CheckoutResult:
    """Create an order from the selected cart lines.

    Prices are read from the product catalogue inside the same transaction
    that writes the order, its items and the customer's delivery defaults.
    Either all of those writes commit or none do.
    """
    validate_checkout(request)

    async with storage.transaction() as tx:
        if idempotency_key:
            existing = await tx.find_order_by_idempotency_key(customer_id, idempotency_key)
            if existing:
                logger.info(
                    "Checkout replayed",
                    extra={"order_id": existing["id"], "customer_id": customer_id},
                )
                return CheckoutResult(
                    order_id=existing["id"],
                    total_price=Decimal(str(existing["total_price"])),
                    created=False,
                )

        product_ids = list(dict.fromkeys(item.id for item in request.items))
        products = await tx.find_active_products(product_ids)
        for product_id in product_ids:
            if product_id not in products:
                logger.warning(
                    "Checkout rejected: unknown product",
                    extra={"customer_id": customer_id, "error_code": "NOT_FOUND"},
                )
                raise NotFoundException(f"Product ID {product_id} not found.")

        prices = {pid: Decimal(str(p["price"])) for pid, p in products.items()}
        lines, total = price_lines(request.items, prices)

        coordinates = request.coordinates
        order = OrderDB(
            customer_id=customer_id,
            total_price=total,
            order_status=OrderStatus.PENDING,
            delivery_address=request.delivery_address,
            contact_number=request.contact_number,
            delivery_lat=coordinates.lat if coordinates else None,
            delivery_lng=coordinates.lng if coordinates else None,
            delivery_instructions=request.instructions,
            order_date=datetime.utcnow(),
            idempotency_key=idempotency_key,
        )
        order_id = await tx.insert_order(order.model_dump(exclude={"id"}))

        items = [
            OrderItemDB(order_id=order_id, **line.model_dump()).model_dump(exclude={"id"})
            for line in lines
        ]
        await tx.insert_order_items(items)
        await tx.update_delivery_defaults(customer_id, delivery_defaults(request))

    logger.info(
        "Order placed",
        extra={"order_id": order_id, "customer_id": customer_id, "total_price": str(total)},
    )
    return CheckoutResult(order_id=order_id, total_price=total)
