from datetime import datetime
from typing import Optional
from decimal import Decimal
from pydantic import BaseModel, Field

from shared.constants import ItemSize, OrderStatus

class ProductDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    name: str
    description: Optional[str] = None
    price: Decimal
    category: str
    image_url: Optional[str] = None
    is_featured: bool = False
    is_best_seller: bool = False
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

class UserDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    email: str
    password_hash: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    description: Optional[str] = None
    profile_image_url: Optional[str] = None
    default_address: Optional[str] = None
    default_contact_number: Optional[str] = None
    default_lat: Optional[float] = None
    default_lng: Optional[float] = None
    default_instructions: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        populate_by_name = True

class OrderDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    customer_id: str
    total_price: Decimal
    order_status: OrderStatus = OrderStatus.PENDING
    delivery_address: str
    contact_number: str
    delivery_lat: Optional[float] = None
    delivery_lng: Optional[float] = None
    delivery_instructions: Optional[str] = None
    order_date: datetime = Field(default_factory=datetime.utcnow)
    # Post-delivery feedback: rating xor issue_reported
    rating: Optional[int] = None
    feedback: Optional[str] = None
    issue_reported: Optional[str] = None
    request_redelivery: bool = False
    idempotency_key: Optional[str] = None

    class Config:
        populate_by_name = True

class OrderItemDB(BaseModel):
    id: Optional[str] = Field(None, alias="_id")
    order_id: str
    product_id: str
    quantity: int
    size: ItemSize
    price_at_purchase: Decimal # Snapshot, never recomputed

    class Config:
        populate_by_name = True
