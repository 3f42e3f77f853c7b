from fastapi import APIRouter, Depends, Request

from services.order_service.dependencies import get_order_service
from services.order_service.service import OrderService, PaymentVerification
from shared.security import GATEWAY_SESSION_LIMIT, PAYMENT_VERIFY_LIMIT, limiter

from .schemas import (
    GatewaySessionRequest,
    GatewaySessionResponse,
    PaymentVerificationRequest,
    PaymentVerificationResponse,
    VerifiedOrder,
)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-order", response_model=GatewaySessionResponse)
@limiter.limit(GATEWAY_SESSION_LIMIT)
async def create_gateway_order(
    request: Request,
    payload: GatewaySessionRequest,
    service: OrderService = Depends(get_order_service),
):
    session = await service.initiate_gateway_payment(payload.orderId)
    return GatewaySessionResponse(
        gatewayOrderId=session.gateway_order_id,
        amount=session.amount,
        currency=session.currency,
    )


@router.post("/verify", response_model=PaymentVerificationResponse)
@limiter.limit(PAYMENT_VERIFY_LIMIT)
async def verify_payment(
    request: Request,
    payload: PaymentVerificationRequest,
    service: OrderService = Depends(get_order_service),
):
    order = await service.confirm_gateway_payment(
        PaymentVerification(
            order_id=payload.orderId,
            gateway_order_id=payload.gatewayOrderId,
            gateway_payment_id=payload.gatewayPaymentId,
            gateway_signature=payload.gatewaySignature,
        )
    )
    return PaymentVerificationResponse(order=VerifiedOrder(id=order.id, orderNumber=order.order_number))
