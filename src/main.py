import asyncio
import contextlib
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.core.exceptions.base import register_exception_handlers
from src.api.core.middleware.auth import auth_middleware
from src.api.core.middleware.logging import logging_middleware
from src.api.router import api_router
from src.database.connection import AsyncSessionLocal
from src.modules.payments.gateway import PaymentGatewayClient
from src.modules.usage.inference import InferenceClient
from src.modules.usage.refund_worker import RefundRetryWorker
from src.utils.settings.app import AppSettings
from src.utils.settings.ledger import LedgerSettings
from src.utils.settings.payments import PaymentSettings
from src.utils.logger import setup_logging


is_production = AppSettings().ENVIRONMENT.upper() == "PROD"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger = setup_logging(is_production)
    logger.info("Starting credit ledger API...")
    AppSettings().validate_prod()

    app.state.session_factory = AsyncSessionLocal
    app.state.inference_client = InferenceClient()
    app.state.payment_gateway = (
        PaymentGatewayClient() if PaymentSettings().PAYMENT_GATEWAY_ENABLED else None
    )
    logger.info("Database session factory and collaborators added to app state")

    ledger_settings = LedgerSettings()
    refund_task = None
    if ledger_settings.REFUND_WORKER_ENABLED:
        worker = RefundRetryWorker(app.state.session_factory, ledger_settings)
        refund_task = asyncio.create_task(worker.run_forever())

    yield

    # Shutdown
    if refund_task is not None:
        refund_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await refund_task
    logger.info("Shutting down credit ledger API...")


# Create app with production settings
app = FastAPI(
    title="Credit Ledger API",
    description="Credit balances, paid service charging and payment reconciliation",
    version=AppSettings().API_VERSION,
    lifespan=lifespan,
    # Security: Disable docs in production
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
    openapi_url=None if is_production else "/openapi.json",
)

# Register global exception handlers
register_exception_handlers(app)


app_settings = AppSettings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

app.middleware("http")(auth_middleware)
app.middleware("http")(logging_middleware)

app.include_router(api_router)


def run_dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=True, access_log=False
    )


def run_prod_server():
    """Run production server."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=False, access_log=False
    )
