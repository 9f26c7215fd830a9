from fastapi import FastAPI, Depends, HTTPException, status, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from datetime import datetime, timedelta
from typing import Optional, List

from shared.utils import (
    get_db_client, settings, SuccessResponse, HealthResponse,
    NotFoundException, UnauthorizedException, ValidationException,
    create_access_token, verify_password, require_customer, require_admin,
    setup_exception_handlers
)
from shared.constants import OrderStatus
from shared.logging_config import setup_logging, RequestLoggingMiddleware
from shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware, limiter

from storefront.checkout import place_order
from storefront.schemas import (
    ProductResponse, CheckoutRequest, CheckoutResponse,
    OrderResponse, OrderItemResponse, OrderDetailResponse, AdminOrderResponse,
    FeedbackRequest, OrderStatusUpdate,
    LoginRequest, AdminLoginRequest, TokenResponse, UserResponse, ProfileResponse, ProfileUpdate,
    Coordinates
)
from storefront.status import check_transition
from storefront.storage import MongoStorage

# Setup Logging
logger = setup_logging("storefront")

app = FastAPI(title="Flourever Storefront")

# Security Setup
setup_rate_limiting(app)
setup_exception_handlers(app)
app.add_middleware(SecurityHeadersMiddleware)

# Middleware
app.add_middleware(RequestLoggingMiddleware, service_name="storefront")

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup_db_client():
    app.storage = MongoStorage(get_db_client(), settings.DATABASE_NAME)
    await app.storage.create_indexes()

@app.on_event("shutdown")
async def shutdown_db_client():
    app.storage.close()

# --- Dependencies ---
def get_storage(request: Request):
    return request.app.storage

# --- Helpers ---
def coordinates_of(lat: Optional[float], lng: Optional[float]) -> Optional[Coordinates]:
    if lat is None or lng is None:
        return None
    return Coordinates(lat=lat, lng=lng)

def order_response(doc: dict) -> OrderResponse:
    return OrderResponse(
        delivery_coordinates=coordinates_of(doc.get("delivery_lat"), doc.get("delivery_lng")),
        **doc
    )

def user_response(doc: dict) -> UserResponse:
    return UserResponse(**doc)

# --- Endpoints ---

# Accounts
@app.post("/login", response_model=SuccessResponse[TokenResponse])
@limiter.limit("5/minute")
async def login(credentials: LoginRequest, request: Request, storage=Depends(get_storage)):
    user = await storage.find_user_by_email(credentials.email)
    if not user or not verify_password(credentials.password, user["password_hash"]):
        raise UnauthorizedException("Incorrect email or password")

    token = create_access_token(data={"sub": user["id"], "email": user["email"], "is_admin": False})
    return SuccessResponse(data=TokenResponse(token=token, user=user_response(user)), message="Login successful")

@app.post("/admin/login", response_model=SuccessResponse[TokenResponse])
@limiter.limit("5/minute")
async def admin_login(credentials: AdminLoginRequest, request: Request):
    if credentials.username != settings.ADMIN_USERNAME or credentials.password != settings.ADMIN_PASSWORD:
        raise UnauthorizedException("Invalid admin credentials")

    token = create_access_token(
        data={"sub": settings.ADMIN_USERNAME, "is_admin": True},
        expires_delta=timedelta(minutes=settings.ADMIN_TOKEN_EXPIRE_MINUTES)
    )
    return SuccessResponse(data=TokenResponse(token=token), message="Admin login successful!")

async def profile_response(storage, user_id: str) -> ProfileResponse:
    record = await storage.get_user(user_id)
    if not record:
        raise NotFoundException("User not found")

    completed = await storage.count_orders(user_id, OrderStatus.DELIVERED.value)
    return ProfileResponse(
        default_coordinates=coordinates_of(record.get("default_lat"), record.get("default_lng")),
        completed_orders=completed,
        **record
    )

@app.get("/profile", response_model=SuccessResponse[ProfileResponse])
async def get_profile(user: dict = Depends(require_customer), storage=Depends(get_storage)):
    return SuccessResponse(data=await profile_response(storage, user["sub"]))

@app.put("/profile", response_model=SuccessResponse[ProfileResponse])
async def update_profile(
    changes: ProfileUpdate,
    user: dict = Depends(require_customer),
    storage=Depends(get_storage)
):
    fields = changes.model_dump(exclude_unset=True)
    if fields and not await storage.update_user(user["sub"], fields):
        raise NotFoundException("User not found")
    logger.info("Profile updated", extra={"customer_id": user["sub"]})
    return SuccessResponse(data=await profile_response(storage, user["sub"]), message="Profile updated")

# Products
@app.get("/products", response_model=SuccessResponse[List[ProductResponse]])
@limiter.limit("60/minute")
async def list_products(request: Request, storage=Depends(get_storage)):
    products = await storage.list_products()
    return SuccessResponse(data=[ProductResponse(**p) for p in products])

@app.get("/products/featured", response_model=SuccessResponse[List[ProductResponse]])
@limiter.limit("60/minute")
async def featured_products(request: Request, storage=Depends(get_storage)):
    products = await storage.list_featured_products()
    return SuccessResponse(data=[ProductResponse(**p) for p in products])

@app.get("/products/best-sellers", response_model=SuccessResponse[List[ProductResponse]])
@limiter.limit("60/minute")
async def best_sellers(request: Request, storage=Depends(get_storage)):
    products = await storage.list_best_sellers()
    return SuccessResponse(data=[ProductResponse(**p) for p in products])

@app.get("/products/category/{category_name}", response_model=SuccessResponse[List[ProductResponse]])
@limiter.limit("60/minute")
async def products_in_category(category_name: str, request: Request, storage=Depends(get_storage)):
    products = await storage.list_products_by_category(category_name)
    return SuccessResponse(data=[ProductResponse(**p) for p in products])

@app.get("/products/{product_id}", response_model=SuccessResponse[ProductResponse])
@limiter.limit("60/minute")
async def get_product(product_id: str, request: Request, storage=Depends(get_storage)):
    product = await storage.get_product(product_id)
    if not product:
        raise NotFoundException("Product not found")
    return SuccessResponse(data=ProductResponse(**product))

# Checkout
@app.post("/checkout", response_model=CheckoutResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def checkout(
    order: CheckoutRequest,
    request: Request,
    user: dict = Depends(require_customer),
    storage=Depends(get_storage),
    idempotency_key: Optional[str] = Header(None)
):
    result = await place_order(storage, user["sub"], order, idempotency_key=idempotency_key)
    return CheckoutResponse(message="Order placed successfully!", order_id=result.order_id)

# Orders
@app.get("/orders", response_model=SuccessResponse[List[OrderResponse]])
async def list_orders(user: dict = Depends(require_customer), storage=Depends(get_storage)):
    orders = await storage.list_orders(customer_id=user["sub"])
    return SuccessResponse(data=[order_response(o) for o in orders])

@app.get("/orders/{order_id}", response_model=SuccessResponse[OrderDetailResponse])
async def get_order(order_id: str, user: dict = Depends(require_customer), storage=Depends(get_storage)):
    order = await storage.get_order(order_id, customer_id=user["sub"])
    if not order:
        raise NotFoundException("Order not found")
    items = await storage.list_order_items(order_id)
    return SuccessResponse(data=OrderDetailResponse(
        order=order_response(order),
        items=[OrderItemResponse(**i) for i in items]
    ))

@app.post("/orders/{order_id}/feedback", response_model=SuccessResponse[OrderResponse])
async def submit_feedback(
    order_id: str,
    feedback: FeedbackRequest,
    user: dict = Depends(require_customer),
    storage=Depends(get_storage)
):
    order = await storage.get_order(order_id, customer_id=user["sub"])
    if not order:
        raise NotFoundException("Order not found or unauthorized")

    if feedback.received:
        update = {"rating": feedback.rating, "feedback": feedback.feedback}
    else:
        update = {
            "issue_reported": feedback.issue,
            "feedback": feedback.feedback,
            "request_redelivery": feedback.request_redelivery,
        }
    await storage.update_order(order_id, update)
    logger.info("Feedback received", extra={"order_id": order_id, "customer_id": user["sub"]})

    updated = await storage.get_order(order_id)
    return SuccessResponse(data=order_response(updated), message="Feedback received. Thank you!")

# Admin
@app.get("/admin/orders", response_model=SuccessResponse[List[AdminOrderResponse]])
async def admin_list_orders(admin: dict = Depends(require_admin), storage=Depends(get_storage)):
    orders = []
    for doc in await storage.list_orders():
        items = await storage.list_order_items(doc["id"])
        customer = await storage.get_user(doc["customer_id"]) or {}
        name = " ".join(n for n in (customer.get("first_name"), customer.get("last_name")) if n)
        orders.append(AdminOrderResponse(
            delivery_coordinates=coordinates_of(doc.get("delivery_lat"), doc.get("delivery_lng")),
            items=[OrderItemResponse(**i) for i in items],
            customer_email=customer.get("email"),
            customer_name=name or None,
            **doc
        ))
    return SuccessResponse(data=orders)

@app.put("/admin/orders/{order_id}", response_model=SuccessResponse[OrderResponse])
async def update_order_status(
    order_id: str,
    status_update: OrderStatusUpdate,
    admin: dict = Depends(require_admin),
    storage=Depends(get_storage)
):
    try:
        new_status = OrderStatus(status_update.status)
    except ValueError:
        raise ValidationException("Invalid order status")

    order = await storage.get_order(order_id)
    if not order:
        raise NotFoundException("Order not found")

    check_transition(order, new_status, enforce=settings.ENFORCE_STATUS_TRANSITIONS)
    await storage.update_order(order_id, {"order_status": new_status})
    logger.info(
        f"Order status {order['order_status']} -> {new_status.value}",
        extra={"order_id": order_id}
    )

    updated = await storage.get_order(order_id)
    return SuccessResponse(
        data=order_response(updated),
        message=f"Order status updated to {new_status.value}"
    )

@app.get("/health", response_model=HealthResponse)
async def health_check(storage=Depends(get_storage)):
    db_status = "connected" if await storage.ping() else "disconnected"

    if db_status != "connected":
        logger.error(f"Health Check Failed: DB={db_status}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service Unhealthy"
        )

    return HealthResponse(
        service="storefront",
        status="healthy",
        timestamp=datetime.utcnow(),
        version="1.0.0",
        database=db_status
    )
