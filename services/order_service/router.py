from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status

from shared.security import ORDER_INTAKE_LIMIT, get_current_user, get_optional_user, limiter, verify_internal_api_key

from .dependencies import get_order_service
from .schemas import (
    CancelOrderResponse,
    CreateOrderResponse,
    MyOrdersResponse,
    OrderDetailResponse,
    OrderIntake,
    OrderOut,
    OrderSummary,
)
from .service import OrderService

router = APIRouter(prefix="/orders", tags=["Orders"])

# Administrative routes: internal API key required
admin_router = APIRouter(
    prefix="/orders",
    tags=["Orders"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post(
    "/create",
    response_model=CreateOrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Place an order (cash on delivery or gateway)",
)
@limiter.limit(ORDER_INTAKE_LIMIT)
async def create_order(
    request: Request,
    intake: OrderIntake,
    user_id: Optional[str] = Depends(get_optional_user),
    service: OrderService = Depends(get_order_service),
):
    order, _ = await service.create_order(intake, user_id=user_id)
    return CreateOrderResponse(order=OrderSummary.model_validate(order))


@router.get(
    "/my-orders",
    response_model=MyOrdersResponse,
    summary="Orders owned by the signed-in user, newest first",
)
async def my_orders(
    user_id: str = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    orders = await service.list_orders_for_user(user_id)
    return MyOrdersResponse(orders=[OrderOut.model_validate(order) for order in orders])


@router.get(
    "/number/{order_number}",
    response_model=OrderDetailResponse,
    summary="Look up an order by its order number (confirmation page)",
)
async def get_order_by_number(
    order_number: str,
    email: Optional[str] = Query(default=None, description="Customer email the order was placed with"),
    user_id: Optional[str] = Depends(get_optional_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.get_order_by_number(order_number, email=email, user_id=user_id)
    return OrderDetailResponse(order=OrderOut.model_validate(order))


# Manual cancellation of an unpaid order; cancelled is terminal
@admin_router.patch("/{order_id}/cancel", response_model=CancelOrderResponse)
async def cancel_order(order_id: str, service: OrderService = Depends(get_order_service)):
    order = await service.cancel_order(order_id)
    return CancelOrderResponse(status=order.status)
