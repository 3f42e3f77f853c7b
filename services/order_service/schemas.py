from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, EmailStr, Field, StringConstraints, field_validator
from pydantic.alias_generators import to_camel

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    """Wire format is camelCase (storefront JSON), attributes stay snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class OrderItemIn(CamelModel):
    product_id: NonEmptyStr
    name: NonEmptyStr
    image: Optional[str] = None
    size: Optional[str] = None
    quantity: int = Field(gt=0)
    price: Decimal = Field(ge=0)

    @field_validator("product_id", mode="before")
    @classmethod
    def _product_id_as_str(cls, value):
        # Catalog ids arrive as numbers from some clients
        return str(value) if isinstance(value, int) else value


class OrderIntake(CamelModel):
    customer_name: NonEmptyStr
    customer_email: EmailStr
    customer_phone: NonEmptyStr
    shipping_address: NonEmptyStr
    shipping_city: NonEmptyStr
    shipping_state: NonEmptyStr
    shipping_pincode: NonEmptyStr
    shipping_country: Optional[str] = None
    payment_method: NonEmptyStr
    items: List[OrderItemIn] = Field(min_length=1)
    subtotal: Optional[Decimal] = Field(default=None, ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    total_amount: Decimal = Field(gt=0)  # charged as-is, not recomputed from items
    special_instructions: Optional[str] = None


class OrderSummary(CamelModel):
    id: str
    order_number: str
    status: str
    payment_method: str


class CreateOrderResponse(CamelModel):
    success: bool = True
    order: OrderSummary


class OrderItemOut(CamelModel):
    id: int
    product_id: str
    product_name: str
    product_image: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    unit_price: float
    total_price: float


class OrderOut(CamelModel):
    id: str
    order_number: str
    user_id: Optional[str] = None
    status: str
    payment_method: str
    payment_status: str
    customer_name: str
    customer_email: str
    customer_phone: str
    shipping_address: str
    shipping_city: str
    shipping_state: str
    shipping_pincode: str
    shipping_country: str
    subtotal: float
    tax: float
    shipping_cost: float
    total_amount: float
    special_instructions: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut] = []


class OrderDetailResponse(CamelModel):
    success: bool = True
    order: OrderOut


class MyOrdersResponse(CamelModel):
    success: bool = True
    orders: List[OrderOut]


class CancelOrderResponse(CamelModel):
    message: str = "Order cancelled"
    status: str
