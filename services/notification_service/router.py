from datetime import datetime, timezone
from decimal import Decimal

import structlog
from fastapi import APIRouter, Depends, Query

from shared.dependencies import get_notifier
from shared.security import verify_internal_api_key

from .schemas import (
    EmailAddress,
    EmailLineItem,
    OrderConfirmationPayload,
    SampleEmailResponse,
    WelcomeEmailRequest,
    WelcomeEmailResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])
admin_router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post("/welcome", response_model=WelcomeEmailResponse)
async def send_welcome_email(payload: WelcomeEmailRequest, notifier=Depends(get_notifier)):
    """Sign-up welcome email. The sign-up itself never fails because of it."""
    result = await notifier.send_welcome_email(payload.customerName, payload.customerEmail)
    if not result.success:
        logger.warning("welcome_email_not_sent", error=result.error)
    return WelcomeEmailResponse(emailSent=result.success, error=result.error)


@admin_router.get("/test-email", response_model=SampleEmailResponse)
async def send_test_email(
    email: str = Query(default="test@example.com"),
    notifier=Depends(get_notifier),
):
    """Send a sample order confirmation to check provider credentials end to end."""
    payload = OrderConfirmationPayload(
        order_number="TEST-001",
        customer_name="Test Customer",
        customer_email=email,
        order_date=datetime.now(timezone.utc),
        items=[
            EmailLineItem(
                name="Test Product",
                size="Medium",
                quantity=1,
                unit_price=Decimal("20"),
                total_price=Decimal("20"),
            )
        ],
        subtotal=Decimal("20"),
        total_amount=Decimal("20"),
        payment_method="cash_on_delivery",
        shipping_address=EmailAddress(
            address="123 Test St",
            city="Test City",
            state="Test State",
            pincode="123456",
            country="India",
        ),
    )
    result = await notifier.send_order_confirmation(payload)
    return SampleEmailResponse(
        success=result.success,
        message="Test email sent!" if result.success else "Test email failed",
        error=result.error,
        attempts=result.attempts,
    )
