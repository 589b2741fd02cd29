from fastapi import APIRouter

from backend.app.api.v1.endpoints.health import router as health_router
from backend.app.api.v1.endpoints.products import router as products_router
from backend.app.api.v1.endpoints.orders import router as orders_router
from backend.app.api.v1.endpoints.stock_movements import router as stock_movements_router
from backend.app.api.v1.endpoints.customers import router as customers_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(products_router, tags=["products"])
router.include_router(orders_router, tags=["orders"])
router.include_router(stock_movements_router, tags=["stock_movements"])
router.include_router(customers_router, tags=["customers"])
