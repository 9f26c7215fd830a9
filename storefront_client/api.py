import logging
from typing import Optional, List, Type

import httpx
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from shared.constants import ItemSize
from storefront_client.cart import CartEngine
from storefront_client.errors import ApiError, CheckoutError
from storefront_client.session import Session

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"

# Keys of the saved session user refreshed after a profile update
USER_FIELDS = ("id", "email", "firstName", "lastName")

# Fallback error codes when the response body carries none
STATUS_CODES = {
    400: "VALIDATION_ERROR",
    401: "AUTH_ERROR",
    403: "AUTH_ERROR",
    404: "NOT_FOUND",
    422: "VALIDATION_ERROR",
}

class Coordinates(BaseModel):
    lat: float
    lng: float

class DeliveryDetails(BaseModel):
    contact_number: str
    delivery_address: str
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = None

    class Config:
        populate_by_name = True
        alias_generator = to_camel

class StorefrontClient:
    def __init__(
        self,
        session: Session,
        base_url: str = DEFAULT_BASE_URL,
        transport: Optional[httpx.BaseTransport] = None,
        timeout: float = 10.0,
    ):
        self.session = session
        self.http = httpx.Client(base_url=base_url, transport=transport, timeout=timeout)

    def close(self):
        self.http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @property
    def cart(self) -> CartEngine:
        return self.session.cart

    # --- Transport ---
    def _headers(self, extra: Optional[dict] = None) -> dict:
        headers = {}
        if self.session.token:
            headers["Authorization"] = f"Bearer {self.session.token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, error_cls: Type[ApiError] = ApiError, headers: Optional[dict] = None, **kwargs) -> dict:
        try:
            response = self.http.request(method, path, headers=self._headers(headers), **kwargs)
        except httpx.RequestError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise error_cls("NETWORK_ERROR", f"Could not reach the store: {e}") from e

        if response.is_error:
            code, message = self._parse_error(response)
            logger.warning("%s %s -> %s %s", method, path, response.status_code, code)
            raise error_cls(code, message, status_code=response.status_code)
        return response.json()

    @staticmethod
    def _parse_error(response: httpx.Response):
        fallback = STATUS_CODES.get(response.status_code, "TRANSACTION_ERROR" if response.status_code >= 500 else "SERVER_ERROR")
        try:
            body = response.json()
        except ValueError:
            return fallback, response.text or response.reason_phrase
        if not isinstance(body, dict):
            return fallback, str(body)
        message = body.get("error") or body.get("detail") or response.reason_phrase
        if not isinstance(message, str):
            message = str(message)
        return body.get("code") or fallback, message

    # --- Accounts ---
    def login(self, email: str, password: str) -> dict:
        data = self._request("POST", "/login", json={"email": email, "password": password})["data"]
        self.session.login(data["token"], data.get("user"))
        return data.get("user")

    def logout(self):
        self.session.logout()

    def get_profile(self) -> dict:
        return self._request("GET", "/profile")["data"]

    def update_profile(self, **changes) -> dict:
        """Update name, description or picture; keeps the saved user in step."""
        payload = {to_camel(key): value for key, value in changes.items()}
        profile = self._request("PUT", "/profile", json=payload)["data"]
        self.session.update_user({key: profile.get(key) for key in USER_FIELDS})
        return profile

    def delivery_prefill(self) -> Optional[DeliveryDetails]:
        """Delivery details from the last checkout, if any."""
        profile = self.get_profile()
        if not profile.get("defaultAddress") or not profile.get("defaultContactNumber"):
            return None
        return DeliveryDetails(
            delivery_address=profile["defaultAddress"],
            contact_number=profile["defaultContactNumber"],
            coordinates=profile.get("defaultCoordinates"),
            instructions=profile.get("defaultInstructions"),
        )

    # --- Catalogue ---
    def list_products(self) -> List[dict]:
        return self._request("GET", "/products")["data"]

    def featured_products(self) -> List[dict]:
        return self._request("GET", "/products/featured")["data"]

    def best_sellers(self) -> List[dict]:
        return self._request("GET", "/products/best-sellers")["data"]

    def products_in_category(self, category: str) -> List[dict]:
        return self._request("GET", f"/products/category/{category}")["data"]

    def get_product(self, product_id: str) -> dict:
        return self._request("GET", f"/products/{product_id}")["data"]

    def add_to_cart(self, product_id: str, quantity: int = 1, size: ItemSize = ItemSize.REGULAR):
        """Fetch the current catalogue record and add it to the cart."""
        self.cart.add_item(self.get_product(product_id), quantity=quantity, size=size)

    # --- Checkout ---
    def checkout(self, delivery: DeliveryDetails, idempotency_key: Optional[str] = None) -> str:
        """Submit the selected cart lines as an order and return its id.

        Only product ids, quantities and sizes are sent. On success the
        purchased lines are removed from the cart; on failure the cart is
        left as it was and ``CheckoutError`` is raised.
        """
        selected = self.cart.selected_lines
        if not selected:
            raise CheckoutError("VALIDATION_ERROR", "No items selected for checkout.")

        payload = delivery.model_dump(by_alias=True, exclude_none=True)
        payload["items"] = [
            {"id": line.product_id, "quantity": line.quantity, "size": line.size.value}
            for line in selected
        ]
        headers = {"Idempotency-Key": idempotency_key} if idempotency_key else None

        body = self._request("POST", "/checkout", error_cls=CheckoutError, headers=headers, json=payload)
        order_id = body["orderId"]
        self.cart.clear_selected()
        logger.info("Checkout complete, order %s", order_id)
        return order_id

    # --- Orders ---
    def list_orders(self) -> List[dict]:
        return self._request("GET", "/orders")["data"]

    def get_order(self, order_id: str) -> dict:
        return self._request("GET", f"/orders/{order_id}")["data"]

    def submit_feedback(
        self,
        order_id: str,
        received: bool,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
        issue: Optional[str] = None,
        request_redelivery: bool = False,
    ) -> dict:
        payload = {
            "received": received,
            "rating": rating,
            "feedback": feedback,
            "issue": issue,
            "requestRedelivery": request_redelivery,
        }
        return self._request("POST", f"/orders/{order_id}/feedback", json=payload)["data"]
