from fastapi import APIRouter
from app.api.v1.routes.orders import router as orders_router
from app.api.v1.routes.payments import router as payments_router
from app.api.v1.routes.admin import router as admin_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(orders_router)
api_router.include_router(payments_router)
api_router.include_router(admin_router)
