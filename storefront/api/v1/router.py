from fastapi import APIRouter

from storefront.api.v1.endpoints import (
    # Quotes
    pricing,
    # Orders
    checkout,
    orders,
    # Payment gateway callbacks
    payments,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Pricing (read-only quotes) ====================
api_router.include_router(
    pricing.router,
    prefix="/pricing",
    tags=["Pricing"]
)

# ==================== Checkout ====================
api_router.include_router(
    checkout.router,
    prefix="/checkout",
    tags=["Checkout"]
)

# ==================== Orders (lifecycle) ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Payment Notifications ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)
