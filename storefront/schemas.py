from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from typing import Optional, List
from decimal import Decimal
from datetime import datetime

from shared.constants import ItemSize, OrderStatus
from shared.security_config import sanitize_input

class CamelModel(BaseModel):
    """Wire models use camelCase keys, Python code uses snake_case."""

    class Config:
        populate_by_name = True
        alias_generator = to_camel

class Coordinates(CamelModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)

# Products
class ProductResponse(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    image_url: Optional[str] = None
    is_featured: bool = False
    is_best_seller: bool = False

# Checkout
class CheckoutItem(CamelModel):
    id: str
    quantity: int = Field(..., ge=1)
    size: ItemSize = ItemSize.REGULAR

    @field_validator('id', mode='before')
    def coerce_id(cls, v):
        # Numeric ids from older clients
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

class CheckoutRequest(CamelModel):
    # Required fields are checked by the checkout handler so that a missing
    # field is reported as VALIDATION_ERROR rather than a schema error.
    items: Optional[List[CheckoutItem]] = None
    contact_number: Optional[str] = None
    delivery_address: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    instructions: Optional[str] = None

    @field_validator('contact_number', 'delivery_address', 'instructions')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class CheckoutResponse(CamelModel):
    success: bool = True
    message: str
    order_id: str

# Orders
class OrderResponse(CamelModel):
    id: str
    customer_id: str
    total_price: Decimal
    order_status: OrderStatus
    delivery_address: str
    contact_number: str
    delivery_coordinates: Optional[Coordinates] = None
    delivery_instructions: Optional[str] = None
    order_date: datetime
    rating: Optional[int] = None
    feedback: Optional[str] = None
    issue_reported: Optional[str] = None
    request_redelivery: bool = False

class OrderItemResponse(CamelModel):
    order_id: str
    product_id: str
    quantity: int
    size: ItemSize
    price_at_purchase: Decimal
    name: Optional[str] = None
    image_url: Optional[str] = None
    category: Optional[str] = None

class OrderDetailResponse(CamelModel):
    order: OrderResponse
    items: List[OrderItemResponse]

class AdminOrderResponse(OrderResponse):
    items: List[OrderItemResponse] = []
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None

class FeedbackRequest(CamelModel):
    received: bool
    rating: Optional[int] = Field(None, ge=1, le=5)
    feedback: Optional[str] = None
    issue: Optional[str] = None
    request_redelivery: bool = False

    @field_validator('feedback', 'issue')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

    @model_validator(mode='after')
    def check_outcome(self):
        if self.received and self.rating is None:
            raise ValueError('A rating is required when the order was received')
        if not self.received and not self.issue:
            raise ValueError('An issue description is required when the order was not received')
        return self

class OrderStatusUpdate(CamelModel):
    # Checked against OrderStatus by the handler so an unknown value is a 400
    status: str

# Accounts
class LoginRequest(CamelModel):
    email: EmailStr
    password: str

class AdminLoginRequest(CamelModel):
    username: str
    password: str

class UserResponse(CamelModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None

class TokenResponse(CamelModel):
    token: str
    user: Optional[UserResponse] = None

class ProfileUpdate(CamelModel):
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    profile_image_url: Optional[str] = None

    @field_validator('first_name', 'last_name', 'description', 'profile_image_url')
    def sanitize_fields(cls, v):
        return sanitize_input(v)

class ProfileResponse(UserResponse):
    description: Optional[str] = None
    profile_image_url: Optional[str] = None
    default_address: Optional[str] = None
    default_contact_number: Optional[str] = None
    default_coordinates: Optional[Coordinates] = None
    default_instructions: Optional[str] = None
    completed_orders: int = 0
    created_at: Optional[datetime] = None
