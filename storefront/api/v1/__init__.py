"""API v1 routes aggregation"""

from fastapi import APIRouter

from .orders.router import router as orders_router
from .cart.router import router as cart_router
from .coupons.router import router as coupons_router, admin_router as coupons_admin_router
from .payments.router import router as payments_router

# Create v1 router
api_router = APIRouter()

# Include all routers
api_router.include_router(cart_router, prefix="/cart", tags=["Cart"])
api_router.include_router(coupons_router, prefix="/coupons", tags=["Coupons"])
api_router.include_router(coupons_admin_router, prefix="/admin/coupons", tags=["Admin"])
api_router.include_router(orders_router, prefix="/orders", tags=["Orders"])
api_router.include_router(payments_router, prefix="/payments", tags=["Payments"])
