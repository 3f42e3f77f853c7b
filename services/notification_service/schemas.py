from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field


class EmailLineItem(BaseModel):
    name: str
    image: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class EmailAddress(BaseModel):
    address: str
    city: str
    state: str
    pincode: str
    country: str


class OrderConfirmationPayload(BaseModel):
    """Everything the order confirmation email renders, captured at send time."""

    order_number: str
    customer_name: str
    customer_email: str
    order_date: datetime
    items: List[EmailLineItem]
    subtotal: Decimal
    tax: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    total_amount: Decimal
    payment_method: str
    shipping_address: EmailAddress

    @classmethod
    def from_order(cls, order, items) -> "OrderConfirmationPayload":
        return cls(
            order_number=order.order_number,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            order_date=order.created_at or datetime.now(),
            items=[
                EmailLineItem(
                    name=item.product_name,
                    image=item.product_image,
                    size=item.size,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                for item in items
            ],
            subtotal=order.subtotal,
            tax=order.tax,
            shipping_cost=order.shipping_cost,
            total_amount=order.total_amount,
            payment_method=order.payment_method,
            shipping_address=EmailAddress(
                address=order.shipping_address,
                city=order.shipping_city,
                state=order.shipping_state,
                pincode=order.shipping_pincode,
                country=order.shipping_country,
            ),
        )


class WelcomeEmailRequest(BaseModel):
    customerName: str = Field(min_length=1)
    customerEmail: EmailStr


class WelcomeEmailResponse(BaseModel):
    success: bool = True
    emailSent: bool
    error: Optional[str] = None


class SampleEmailResponse(BaseModel):
    success: bool
    message: str
    error: Optional[str] = None
    attempts: int = 0
