from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from shared.config.database import create_tables, engine
from shared.config.settings import settings
from shared.errors import StorefrontError, request_validation_handler, storefront_error_handler
from shared.observability import setup_observability
from shared.security import limiter
from shared.tasks import BackgroundTaskRunner

# IMPORTANT: import models so they register with Base
from services.order_service.models import ORDER_SCHEMA
from services.order_service.router import router as order_router, admin_router as order_admin_router
from services.payment_service.gateway import RazorpayGateway
from services.payment_service.router import router as payment_router
from services.notification_service.dispatcher import NotificationDispatcher
from services.notification_service.router import (
    router as notification_router,
    admin_router as notification_admin_router,
)

app = FastAPI(
    title="Storefront Orders",
    version="1.0.0",
    description="Order capture, gateway payment settlement and order confirmation emails.",
)

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "storefront_orders")

# --- SECURITY & ERRORS ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(StorefrontError, storefront_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

app.include_router(order_router)
app.include_router(order_admin_router)
app.include_router(payment_router)
app.include_router(notification_router)
app.include_router(notification_admin_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "storefront_orders", "status": "running"}


@app.on_event("startup")
async def startup_event():
    # Provider clients live for the whole process and are injected per request
    app.state.payment_gateway = RazorpayGateway.from_settings(settings)
    app.state.notifier = NotificationDispatcher.from_settings(settings)
    app.state.task_runner = BackgroundTaskRunner()
    await create_tables(engine, schemas=[ORDER_SCHEMA])


@app.on_event("shutdown")
async def shutdown_event():
    # Let queued confirmation emails finish before the clients close
    await app.state.task_runner.drain()
    await app.state.payment_gateway.aclose()
    await app.state.notifier.aclose()
    await engine.dispose()
