from typing import Optional

from pydantic import BaseModel, Field


class GatewaySessionRequest(BaseModel):
    orderId: str = Field(min_length=1)


class GatewaySessionResponse(BaseModel):
    success: bool = True
    gatewayOrderId: str
    amount: int
    currency: str


class PaymentVerificationRequest(BaseModel):
    # All optional here: absent fields are reported by the service as one error
    orderId: Optional[str] = None
    gatewayOrderId: Optional[str] = None
    gatewayPaymentId: Optional[str] = None
    gatewaySignature: Optional[str] = None


class VerifiedOrder(BaseModel):
    id: str
    orderNumber: str


class PaymentVerificationResponse(BaseModel):
    success: bool = True
    order: VerifiedOrder
