from storefront_client.cart import CartEngine
from storefront_client.models import CartLine
from storefront_client.storage import LocalStorage
from storefront_client.session import Session
from storefront_client.api import StorefrontClient, DeliveryDetails
from storefront_client.errors import CheckoutError, ApiError

__all__ = [
    "CartEngine", "CartLine", "LocalStorage", "Session",
    "StorefrontClient", "DeliveryDetails", "CheckoutError", "ApiError",
]
