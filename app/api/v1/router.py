from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Checkout
    checkout,
    # Orders & Disputes
    orders,
    # Logistics
    depot,
    delivery,
    # Promotions
    coupons,
    flash_sales,
    # Catalog
    products,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Checkout ====================
api_router.include_router(
    checkout.router,
    prefix="/checkout",
    tags=["Checkout"]
)

# ==================== Orders & Disputes ====================
api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

# ==================== Logistics ====================
api_router.include_router(
    depot.router,
    prefix="/depot",
    tags=["Depot"]
)
api_router.include_router(
    delivery.router,
    prefix="/delivery",
    tags=["Delivery"]
)

# ==================== Promotions ====================
api_router.include_router(
    coupons.router,
    prefix="/coupons",
    tags=["Coupons"]
)
api_router.include_router(
    flash_sales.router,
    prefix="/flash-sales",
    tags=["Flash Sales"]
)

# ==================== Catalog ====================
api_router.include_router(
    products.router,
    prefix="/products",
    tags=["Products"]
)
