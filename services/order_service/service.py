"""
Order lifecycle: intake, gateway payment, payment confirmation, cancellation.

State only ever moves forward:

    cash_on_delivery intake -> confirmed/completed
    gateway intake          -> pending_payment/pending
    pending_payment  --(valid gateway signature)-->  confirmed/completed
    pending_payment  --(administrative cancel)---->  cancelled

Nothing other than `confirm_gateway_payment`, after the signature check,
may set payment_status to completed on a gateway order.
"""
import secrets
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from services.notification_service.schemas import OrderConfirmationPayload
from services.payment_service.signature import verify_payment_signature
from shared.config.settings import Settings, settings as default_settings
from shared.errors import (
    ConfigurationError,
    ConflictError,
    GatewayError,
    NotFoundError,
    PersistenceError,
    SignatureError,
    ValidationError,
    WrongPaymentMethodError,
)
from shared.observability import (
    ecomm_gateway_sessions_total,
    ecomm_order_creation_duration_seconds,
    ecomm_orders_created_total,
    ecomm_payment_verifications_total,
)

from .intake_saga import PERSIST_ITEMS, build_intake_saga
from .models import Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from .repository import OrderRepository
from .saga import SagaFailed
from .schemas import OrderIntake

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class GatewaySession:
    gateway_order_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class PaymentVerification:
    order_id: Optional[str]
    gateway_order_id: Optional[str]
    gateway_payment_id: Optional[str]
    gateway_signature: Optional[str]


def fallback_order_number() -> str:
    """Used when the store's sequence is unavailable. Small collision risk, accepted."""
    millis = str(int(time.time() * 1000))[-10:]
    return f"ORD-{millis}{secrets.randbelow(10_000):04d}"


def to_minor_units(amount: Decimal) -> int:
    """Rupees -> paise, rounded half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class OrderService:

    def __init__(
        self,
        db: AsyncSession,
        gateway=None,
        notifier=None,
        task_runner=None,
        settings: Settings = default_settings,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier
        self.task_runner = task_runner
        self.settings = settings

    # --- INTAKE ---

    async def create_order(self, intake: OrderIntake, user_id: Optional[str] = None) -> Tuple[Order, List[OrderItem]]:
        if intake.payment_method not in PaymentMethod.ALL:
            raise ValidationError("Invalid payment method", details=f"expected one of {', '.join(PaymentMethod.ALL)}")

        with ecomm_order_creation_duration_seconds.time():
            order_number = await OrderRepository.next_order_number(self.db)
            if order_number is None:
                order_number = fallback_order_number()
                logger.warning("order_number_fallback_used", order_number=order_number)

            is_cod = intake.payment_method == PaymentMethod.CASH_ON_DELIVERY
            order_id = str(uuid.uuid4())
            items = [
                OrderItem(
                    order_id=order_id,
                    product_id=item.product_id,
                    product_name=item.name,
                    product_image=item.image,
                    size=item.size,
                    quantity=item.quantity,
                    unit_price=item.price,
                    total_price=item.price * item.quantity,
                )
                for item in intake.items
            ]
            subtotal = intake.subtotal
            if subtotal is None:
                subtotal = sum((item.total_price for item in items), Decimal("0"))

            order = Order(
                id=order_id,
                order_number=order_number,
                user_id=user_id,
                status=OrderStatus.CONFIRMED if is_cod else OrderStatus.PENDING_PAYMENT,
                payment_method=intake.payment_method,
                payment_status=PaymentStatus.COMPLETED if is_cod else PaymentStatus.PENDING,
                customer_name=intake.customer_name,
                customer_email=intake.customer_email,
                customer_phone=intake.customer_phone,
                shipping_address=intake.shipping_address,
                shipping_city=intake.shipping_city,
                shipping_state=intake.shipping_state,
                shipping_pincode=intake.shipping_pincode,
                shipping_country=intake.shipping_country or self.settings.default_country,
                subtotal=subtotal,
                tax=intake.tax,
                shipping_cost=intake.shipping_cost,
                total_amount=intake.total_amount,
                special_instructions=intake.special_instructions or None,
            )

            ctx = {"db": self.db, "order": order, "items": items}
            try:
                await build_intake_saga().execute(ctx)
            except SagaFailed as e:
                if e.compensation_failures:
                    logger.critical("orphaned_order_left_behind", order_id=order_id, order_number=order_number)
                if e.step_name == PERSIST_ITEMS:
                    raise PersistenceError("Failed to create order items", details=str(e.cause)) from e
                raise PersistenceError("Failed to create order", details=str(e.cause)) from e

        order, items = ctx["order"], ctx["items"]
        ecomm_orders_created_total.labels(payment_method=order.payment_method).inc()
        logger.info(
            "order_created",
            order_id=order.id,
            order_number=order.order_number,
            payment_method=order.payment_method,
            item_count=len(items),
        )

        # Gateway orders are confirmed by email once the payment is verified
        if is_cod:
            self._schedule_confirmation(order, items)
        return order, items

    # --- GATEWAY PAYMENT ---

    async def initiate_gateway_payment(self, order_id: str) -> GatewaySession:
        order = await self._get_order_or_404(order_id)
        if order.payment_method != PaymentMethod.GATEWAY:
            raise WrongPaymentMethodError("Order is not set for gateway payment")
        if order.payment_status == PaymentStatus.COMPLETED:
            raise ConflictError("Order is already paid")
        if order.status == OrderStatus.CANCELLED:
            raise ConflictError("Order is cancelled")
        if self.gateway is None:
            raise ConfigurationError("Payment gateway not configured")

        # A failed commit below expires `order`; only these locals are used after the gateway call
        order_id, order_number = order.id, order.order_number
        amount = to_minor_units(order.total_amount)

        # Reopened checkout: the recorded gateway order stays the one the callback must match
        if order.gateway_order_id:
            logger.info("gateway_order_reused", order_id=order_id, gateway_order_id=order.gateway_order_id)
            return GatewaySession(
                gateway_order_id=order.gateway_order_id, amount=amount, currency=self.settings.currency
            )

        try:
            remote = await self.gateway.open_transaction(
                amount_minor_units=amount,
                currency=self.settings.currency,
                receipt_id=order_number,
                metadata={"orderId": order_id},
            )
        except GatewayError as e:
            ecomm_gateway_sessions_total.labels(status="failed").inc()
            logger.error(
                "gateway_order_failed",
                order_id=order_id,
                error=e.message,
                upstream_status=e.upstream_status,
                provider_code=e.provider_code,
            )
            raise
        ecomm_gateway_sessions_total.labels(status="success").inc()

        # Best-effort: the payment can proceed without it; verification takes the id from the callback
        try:
            await OrderRepository.update_order(self.db, order_id, {"gateway_order_id": remote.id})
        except SQLAlchemyError as e:
            logger.error("gateway_order_id_not_saved", order_id=order_id, gateway_order_id=remote.id, error=str(e))

        return GatewaySession(gateway_order_id=remote.id, amount=remote.amount, currency=remote.currency)

    async def confirm_gateway_payment(self, request: PaymentVerification) -> Order:
        if not all(
            (request.order_id, request.gateway_order_id, request.gateway_payment_id, request.gateway_signature)
        ):
            raise ValidationError("Missing payment verification fields")

        secret = self.settings.razorpay_key_secret
        if not secret:
            ecomm_payment_verifications_total.labels(result="error").inc()
            raise ConfigurationError("Payment gateway secret not configured")

        order = await self._get_order_or_404(request.order_id)
        order_id = order.id
        log = logger.bind(order_id=order_id, gateway_order_id=request.gateway_order_id)

        if order.gateway_order_id and order.gateway_order_id != request.gateway_order_id:
            ecomm_payment_verifications_total.labels(result="invalid_signature").inc()
            log.error("gateway_order_mismatch", recorded_gateway_order_id=order.gateway_order_id)
            raise SignatureError("Invalid payment signature", details="Gateway order does not belong to this order")

        if not verify_payment_signature(
            request.gateway_order_id, request.gateway_payment_id, secret, request.gateway_signature
        ):
            ecomm_payment_verifications_total.labels(result="invalid_signature").inc()
            log.error("payment_signature_mismatch", gateway_payment_id=request.gateway_payment_id)
            raise SignatureError("Invalid payment signature")

        if order.status == OrderStatus.CANCELLED:
            log.critical("payment_for_cancelled_order", gateway_payment_id=request.gateway_payment_id)
            raise ConflictError("Order is cancelled", details="Payment captured for a cancelled order; refund required")

        if order.payment_status == PaymentStatus.COMPLETED:
            # Duplicate callback: state is rewritten unchanged and the email goes out again
            log.warning("payment_already_confirmed", gateway_payment_id=request.gateway_payment_id)

        try:
            updated = await OrderRepository.update_order(
                self.db,
                order_id,
                {
                    "payment_status": PaymentStatus.COMPLETED,
                    "status": OrderStatus.CONFIRMED,
                    "gateway_order_id": request.gateway_order_id,
                    "gateway_payment_id": request.gateway_payment_id,
                    "gateway_signature": request.gateway_signature,
                },
            )
        except SQLAlchemyError as e:
            ecomm_payment_verifications_total.labels(result="error").inc()
            log.critical("payment_state_update_failed", error=str(e))
            raise PersistenceError("Failed to update order after payment", details=str(e)) from e
        if updated is None:
            ecomm_payment_verifications_total.labels(result="error").inc()
            raise PersistenceError("Failed to update order after payment", details="order disappeared during update")

        ecomm_payment_verifications_total.labels(result="verified").inc()
        log.info("payment_verified", gateway_payment_id=request.gateway_payment_id)
        try:
            items = await OrderRepository.list_order_items(self.db, order_id)
        except SQLAlchemyError as e:
            log.error("order_confirmation_skipped", reason="could not load order items", error=str(e))
        else:
            self._schedule_confirmation(updated, items)
        return updated

    # --- ADMINISTRATION & QUERIES ---

    async def cancel_order(self, order_id: str) -> Order:
        order = await self._get_order_or_404(order_id)
        if order.status != OrderStatus.PENDING_PAYMENT:
            raise ConflictError(f"Cannot cancel an order in status '{order.status}'")
        order_number = order.order_number
        try:
            updated = await OrderRepository.update_order(self.db, order_id, {"status": OrderStatus.CANCELLED})
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to cancel order", details=str(e)) from e
        logger.info("order_cancelled", order_id=order_id, order_number=order_number)
        return updated

    async def get_order(self, order_id: str) -> Order:
        return await self._get_order_or_404(order_id)

    async def get_order_by_number(
        self, order_number: str, email: Optional[str] = None, user_id: Optional[str] = None
    ) -> Order:
        """Confirmation page lookup. The caller proves ownership with the owning
        user's token or the customer email; otherwise the order is reported missing."""
        order = await OrderRepository.get_order_by_number(self.db, order_number)
        if not order:
            raise NotFoundError("Order not found")
        owner = user_id is not None and order.user_id == user_id
        same_email = bool(email) and email.strip().lower() == order.customer_email.lower()
        if not (owner or same_email):
            logger.warning("order_lookup_denied", order_number=order_number)
            raise NotFoundError("Order not found")
        return order

    async def list_orders_for_user(self, user_id: str) -> List[Order]:
        try:
            return await OrderRepository.list_orders_for_user(self.db, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to fetch orders", details=str(e)) from e

    async def _get_order_or_404(self, order_id: str) -> Order:
        try:
            order = await OrderRepository.get_order(self.db, order_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to fetch order", details=str(e)) from e
        if not order:
            raise NotFoundError("Order not found")
        return order

    # --- NOTIFICATION ---

    def _schedule_confirmation(self, order: Order, items: List[OrderItem]) -> None:
        """Queue the confirmation email without waiting for it."""
        if self.notifier is None or self.task_runner is None:
            logger.warning("order_confirmation_skipped", order_number=order.order_number, reason="no notifier")
            return
        # Snapshot now; the request's session is gone by the time the task runs
        payload = OrderConfirmationPayload.from_order(order, items)
        self.task_runner.spawn(
            self._send_confirmation(payload),
            name=f"order_confirmation:{order.order_number}",
        )

    async def _send_confirmation(self, payload: OrderConfirmationPayload) -> None:
        result = await self.notifier.send_order_confirmation(payload)
        if not result.success:
            logger.warning(
                "order_confirmation_not_delivered",
                order_number=payload.order_number,
                error=result.error,
                error_code=result.error_code,
                attempts=result.attempts,
            )
