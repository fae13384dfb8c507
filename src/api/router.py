from fastapi import APIRouter

from src.api.accounts.router import router as accounts_router
from src.api.admin.router import router as admin_router
from src.api.credits.router import router as credits_router
from src.api.health.router import router as health_router
from src.api.payments.router import router as payments_router
from src.api.payments.webhook import router as payment_webhook_router
from src.api.usage.router import router as usage_router

# V1 API router
v1_router = APIRouter(prefix="/v1")

# Include domain routers
v1_router.include_router(accounts_router)
v1_router.include_router(admin_router)
v1_router.include_router(credits_router)
v1_router.include_router(payments_router)
v1_router.include_router(usage_router)

# Main API router
api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(payment_webhook_router)
api_router.include_router(v1_router)
