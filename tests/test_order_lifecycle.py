"""Order lifecycle through OrderService against an in-memory store."""

import dataclasses
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError

from conftest import GATEWAY_SECRET, make_intake
from services.order_service.models import Order, OrderItem, OrderStatus, PaymentStatus
from services.order_service.repository import OrderRepository
from services.order_service.service import (
    OrderService,
    PaymentVerification,
    fallback_order_number,
    to_minor_units,
)
from services.payment_service.signature import generate_payment_signature
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


async def _count(db, model):
    return await db.scalar(select(func.count()).select_from(model))


def _verification(order, gateway_order_id="order_G1", payment_id="pay_P1", signature=None):
    if signature is None:
        signature = generate_payment_signature(gateway_order_id, payment_id, GATEWAY_SECRET)
    return PaymentVerification(
        order_id=order.id,
        gateway_order_id=gateway_order_id,
        gateway_payment_id=payment_id,
        gateway_signature=signature,
    )


class TestHelpers:
    def test_fallback_order_number_shape(self):
        assert re.fullmatch(r"ORD-\d{14}", fallback_order_number())

    @pytest.mark.parametrize(
        "amount, expected",
        [(Decimal("200"), 20000), (Decimal("1234.56"), 123456), (Decimal("0.005"), 1), (Decimal("10.10"), 1010)],
    )
    def test_minor_units(self, amount, expected):
        assert to_minor_units(amount) == expected


class TestCreateOrder:
    async def test_cash_on_delivery_is_confirmed_immediately(self, service, db, notifier, task_runner):
        order, items = await service.create_order(make_intake())

        assert order.status == OrderStatus.CONFIRMED
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.shipping_country == "India"
        assert len(items) == 1
        assert items[0].order_id == order.id
        assert items[0].total_price == Decimal("200")

        await task_runner.drain()
        assert [p.order_number for p in notifier.sent] == [order.order_number]
        assert notifier.sent[0].customer_email == "asha@example.com"

    async def test_gateway_order_waits_for_payment(self, service, notifier, task_runner):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        assert order.status == OrderStatus.PENDING_PAYMENT
        assert order.payment_status == PaymentStatus.PENDING

        await task_runner.drain()
        assert notifier.sent == []

    async def test_order_numbers_are_unique(self, service):
        first, _ = await service.create_order(make_intake())
        second, _ = await service.create_order(make_intake())

        assert first.order_number != second.order_number
        assert first.id != second.id

    async def test_falls_back_when_sequence_unavailable(self, service):
        # The in-memory store has no sequences
        order, _ = await service.create_order(make_intake())
        assert re.fullmatch(r"ORD-\d{14}", order.order_number)

    async def test_client_total_is_stored_as_given(self, service):
        order, _ = await service.create_order(make_intake(totalAmount=250, tax=18, shippingCost=32))

        assert order.total_amount == Decimal("250")
        assert order.subtotal == Decimal("200")
        assert order.tax == Decimal("18")
        assert order.shipping_cost == Decimal("32")

    async def test_subtotal_defaults_to_item_sum(self, service):
        payload = make_intake(subtotal=None)
        order, _ = await service.create_order(payload)
        assert order.subtotal == Decimal("200")

    async def test_items_keep_purchase_time_details(self, service, db):
        intake = make_intake(
            items=[
                {"productId": 7, "name": "Sunset Clock", "size": "Small", "quantity": 1, "price": 150},
                {"productId": "clock-ocean", "name": "Ocean Wall Clock", "quantity": 3, "price": "99.50"},
            ],
            totalAmount=448.5,
        )
        order, _ = await service.create_order(intake)

        items = await OrderRepository.list_order_items(db, order.id)
        assert [(i.product_id, i.quantity, i.total_price) for i in items] == [
            ("7", 1, Decimal("150")),
            ("clock-ocean", 3, Decimal("298.50")),
        ]
        assert items[1].size is None

    async def test_owner_comes_only_from_token(self, service):
        order, _ = await service.create_order(make_intake(userId="body-user"), user_id="token-user")
        assert order.user_id == "token-user"

    async def test_body_cannot_claim_an_owner(self, service):
        order, _ = await service.create_order(make_intake(userId="someone-else"))
        assert order.user_id is None
        assert await service.list_orders_for_user("someone-else") == []

    async def test_guest_checkout_has_no_owner(self, service):
        order, _ = await service.create_order(make_intake())
        assert order.user_id is None

    async def test_unknown_payment_method_rejected(self, service, db):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_order(make_intake(paymentMethod="bitcoin"))

        assert exc_info.value.message == "Invalid payment method"
        assert await _count(db, Order) == 0

    async def test_item_failure_removes_the_order(self, service, db, notifier, task_runner, monkeypatch):
        async def broken(db, items):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(OrderRepository, "create_order_items", staticmethod(broken))

        with pytest.raises(PersistenceError) as exc_info:
            await service.create_order(make_intake())

        assert exc_info.value.message == "Failed to create order items"
        assert await _count(db, Order) == 0
        assert await _count(db, OrderItem) == 0
        await task_runner.drain()
        assert notifier.sent == []

    async def test_item_failure_still_reported_when_cleanup_fails(self, service, monkeypatch):
        async def broken_items(db, items):
            raise SQLAlchemyError("disk full")

        async def broken_delete(db, order_id):
            raise SQLAlchemyError("connection lost")

        monkeypatch.setattr(OrderRepository, "create_order_items", staticmethod(broken_items))
        monkeypatch.setattr(OrderRepository, "delete_order", staticmethod(broken_delete))

        with pytest.raises(PersistenceError) as exc_info:
            await service.create_order(make_intake())

        assert exc_info.value.message == "Failed to create order items"

    async def test_rejected_item_batch_removes_the_order(self, service, db, monkeypatch):
        real = OrderRepository.create_order_items

        async def missing_name(db, items):
            items[0].product_name = None  # NOT NULL, the store rejects the batch
            return await real(db, items)

        monkeypatch.setattr(OrderRepository, "create_order_items", staticmethod(missing_name))

        with pytest.raises(PersistenceError) as exc_info:
            await service.create_order(make_intake())

        assert exc_info.value.message == "Failed to create order items"
        assert await _count(db, Order) == 0
        assert await _count(db, OrderItem) == 0

    async def test_order_failure_reported(self, service, monkeypatch):
        async def broken(db, order):
            raise SQLAlchemyError("constraint")

        monkeypatch.setattr(OrderRepository, "create_order", staticmethod(broken))

        with pytest.raises(PersistenceError) as exc_info:
            await service.create_order(make_intake())

        assert exc_info.value.message == "Failed to create order"


class TestInitiateGatewayPayment:
    async def test_opens_session_in_minor_units(self, service, db, gateway):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway", totalAmount="1234.56"))

        session = await service.initiate_gateway_payment(order.id)

        assert session.amount == 123456
        assert session.currency == "INR"
        assert gateway.calls == [
            {"amount": 123456, "currency": "INR", "receipt": order.order_number, "notes": {"orderId": order.id}}
        ]
        stored = await OrderRepository.get_order(db, order.id)
        assert stored.gateway_order_id == session.gateway_order_id

    async def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            await service.initiate_gateway_payment("does-not-exist")

    async def test_cash_on_delivery_order_rejected(self, service, gateway):
        order, _ = await service.create_order(make_intake())

        with pytest.raises(WrongPaymentMethodError):
            await service.initiate_gateway_payment(order.id)
        assert gateway.calls == []

    async def test_paid_order_rejected(self, service, gateway):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        await service.confirm_gateway_payment(_verification(order))

        with pytest.raises(ConflictError):
            await service.initiate_gateway_payment(order.id)
        assert gateway.calls == []

    async def test_cancelled_order_rejected(self, service):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        await service.cancel_order(order.id)

        with pytest.raises(ConflictError):
            await service.initiate_gateway_payment(order.id)

    async def test_gateway_failure_propagates(self, service, gateway):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        gateway.fail_with(GatewayError("Failed to create gateway order", upstream_status=400, provider_code="BAD_REQUEST_ERROR"))

        with pytest.raises(GatewayError) as exc_info:
            await service.initiate_gateway_payment(order.id)

        assert exc_info.value.provider_code == "BAD_REQUEST_ERROR"

    async def test_session_survives_failure_to_record_gateway_id(self, service, monkeypatch):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        async def broken(db, order_id, patch):
            raise SQLAlchemyError("read only")

        monkeypatch.setattr(OrderRepository, "update_order", staticmethod(broken))

        session = await service.initiate_gateway_payment(order.id)
        assert session.gateway_order_id.startswith("order_")

    async def test_session_survives_rolled_back_commit(self, service, db, monkeypatch):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        async def rolled_back(db, order_id, patch):
            await db.rollback()
            raise SQLAlchemyError("store down")

        monkeypatch.setattr(OrderRepository, "update_order", staticmethod(rolled_back))

        session = await service.initiate_gateway_payment(order.id)

        assert session.gateway_order_id.startswith("order_")
        assert session.amount == 20000

    async def test_reopened_checkout_reuses_gateway_order(self, service, gateway):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        first = await service.initiate_gateway_payment(order.id)
        second = await service.initiate_gateway_payment(order.id)

        assert second.gateway_order_id == first.gateway_order_id
        assert second.amount == first.amount
        assert len(gateway.calls) == 1

        confirmed = await service.confirm_gateway_payment(
            _verification(order, gateway_order_id=first.gateway_order_id)
        )
        assert confirmed.payment_status == PaymentStatus.COMPLETED

    async def test_no_gateway_configured(self, db, test_settings):
        service = OrderService(db, gateway=None, settings=test_settings)
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        with pytest.raises(ConfigurationError):
            await service.initiate_gateway_payment(order.id)


class TestConfirmGatewayPayment:
    async def test_valid_signature_confirms_order(self, service, db, notifier, task_runner):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        confirmed = await service.confirm_gateway_payment(_verification(order))

        assert confirmed.status == OrderStatus.CONFIRMED
        assert confirmed.payment_status == PaymentStatus.COMPLETED
        assert confirmed.gateway_order_id == "order_G1"
        assert confirmed.gateway_payment_id == "pay_P1"
        assert confirmed.total_amount == Decimal("200")

        await task_runner.drain()
        assert len(notifier.sent) == 1
        assert notifier.sent[0].payment_method == "gateway"
        assert [i.name for i in notifier.sent[0].items] == ["Ocean Wall Clock"]

    async def test_invalid_signature_leaves_order_untouched(self, service, db, notifier, task_runner):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        with pytest.raises(SignatureError):
            await service.confirm_gateway_payment(_verification(order, signature="0" * 64))

        stored = await OrderRepository.get_order(db, order.id)
        assert stored.status == OrderStatus.PENDING_PAYMENT
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.gateway_payment_id is None
        await task_runner.drain()
        assert notifier.sent == []

    @pytest.mark.parametrize("missing", ["order_id", "gateway_order_id", "gateway_payment_id", "gateway_signature"])
    async def test_missing_field(self, service, missing):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        request = dataclasses.replace(_verification(order), **{missing: None})

        with pytest.raises(ValidationError):
            await service.confirm_gateway_payment(request)

    async def test_unknown_order(self, service):
        request = PaymentVerification("nope", "order_G1", "pay_P1", generate_payment_signature("order_G1", "pay_P1", GATEWAY_SECRET))
        with pytest.raises(NotFoundError):
            await service.confirm_gateway_payment(request)

    async def test_missing_secret(self, db, gateway, test_settings):
        service = OrderService(db, gateway=gateway, settings=dataclasses.replace(test_settings, razorpay_key_secret=""))
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        with pytest.raises(ConfigurationError):
            await service.confirm_gateway_payment(_verification(order))

    async def test_rolled_back_update_reported(self, service, notifier, task_runner, monkeypatch):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        request = _verification(order)

        async def rolled_back(db, order_id, patch):
            await db.rollback()
            raise SQLAlchemyError("store down")

        monkeypatch.setattr(OrderRepository, "update_order", staticmethod(rolled_back))

        with pytest.raises(PersistenceError) as exc_info:
            await service.confirm_gateway_payment(request)

        assert exc_info.value.message == "Failed to update order after payment"
        await task_runner.drain()
        assert notifier.sent == []

    async def test_signature_for_another_gateway_order_rejected(self, service, db):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        session = await service.initiate_gateway_payment(order.id)

        # Valid signature, but for a gateway order opened for something else
        with pytest.raises(SignatureError):
            await service.confirm_gateway_payment(_verification(order, gateway_order_id="order_OTHER"))

        stored = await OrderRepository.get_order(db, order.id)
        assert stored.payment_status == PaymentStatus.PENDING
        assert stored.gateway_order_id == session.gateway_order_id

    async def test_recorded_gateway_order_confirms(self, service):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        session = await service.initiate_gateway_payment(order.id)

        confirmed = await service.confirm_gateway_payment(
            _verification(order, gateway_order_id=session.gateway_order_id)
        )
        assert confirmed.payment_status == PaymentStatus.COMPLETED

    async def test_duplicate_callback_sends_email_again(self, service, notifier, task_runner):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        await service.confirm_gateway_payment(_verification(order))
        again = await service.confirm_gateway_payment(_verification(order))

        assert again.status == OrderStatus.CONFIRMED
        assert again.payment_status == PaymentStatus.COMPLETED
        await task_runner.drain()
        assert len(notifier.sent) == 2

    async def test_cancelled_order_not_confirmed(self, service, db):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))
        await service.cancel_order(order.id)

        with pytest.raises(ConflictError):
            await service.confirm_gateway_payment(_verification(order))

        stored = await OrderRepository.get_order(db, order.id)
        assert stored.status == OrderStatus.CANCELLED
        assert stored.payment_status == PaymentStatus.PENDING

    async def test_update_failure_is_reported(self, service, monkeypatch):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        async def broken(db, order_id, patch):
            raise SQLAlchemyError("deadlock")

        monkeypatch.setattr(OrderRepository, "update_order", staticmethod(broken))

        with pytest.raises(PersistenceError):
            await service.confirm_gateway_payment(_verification(order))

    async def test_email_failure_does_not_affect_payment(self, service, db, notifier, task_runner):
        notifier.raise_error = RuntimeError("provider exploded")
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        confirmed = await service.confirm_gateway_payment(_verification(order))
        await task_runner.drain()

        assert confirmed.payment_status == PaymentStatus.COMPLETED
        stored = await OrderRepository.get_order(db, order.id)
        assert stored.status == OrderStatus.CONFIRMED


class TestCancelOrder:
    async def test_pending_order_cancelled(self, service):
        order, _ = await service.create_order(make_intake(paymentMethod="gateway"))

        cancelled = await service.cancel_order(order.id)

        assert cancelled.status == OrderStatus.CANCELLED

    async def test_confirmed_order_cannot_be_cancelled(self, service):
        order, _ = await service.create_order(make_intake())

        with pytest.raises(ConflictError):
            await service.cancel_order(order.id)

    async def test_unknown_order(self, service):
        with pytest.raises(NotFoundError):
            await service.cancel_order("nope")


class TestQueries:
    async def test_orders_for_user_newest_first(self, service, db):
        older, _ = await service.create_order(make_intake(), user_id="user-1")
        newer, _ = await service.create_order(make_intake(), user_id="user-1")
        await service.create_order(make_intake(), user_id="user-2")

        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        await db.execute(update(Order).where(Order.id == older.id).values(created_at=base))
        await db.execute(update(Order).where(Order.id == newer.id).values(created_at=base + timedelta(days=1)))
        await db.commit()

        orders = await service.list_orders_for_user("user-1")

        assert [o.id for o in orders] == [newer.id, older.id]

    async def test_no_orders(self, service):
        assert await service.list_orders_for_user("nobody") == []

    async def test_lookup_by_number_with_email(self, service):
        order, _ = await service.create_order(make_intake())

        found = await service.get_order_by_number(order.order_number, email=" Asha@Example.com ")

        assert found.id == order.id

    async def test_lookup_by_number_as_owner(self, service):
        order, _ = await service.create_order(make_intake(), user_id="user-1")

        found = await service.get_order_by_number(order.order_number, user_id="user-1")

        assert found.id == order.id

    @pytest.mark.parametrize(
        "proof",
        [{}, {"email": "someone@example.com"}, {"email": ""}, {"user_id": "user-2"}],
    )
    async def test_lookup_without_matching_proof_hidden(self, service, proof):
        order, _ = await service.create_order(make_intake(), user_id="user-1")

        with pytest.raises(NotFoundError) as exc_info:
            await service.get_order_by_number(order.order_number, **proof)

        assert exc_info.value.message == "Order not found"

    async def test_guest_order_not_claimed_by_any_user(self, service):
        order, _ = await service.create_order(make_intake())

        with pytest.raises(NotFoundError):
            await service.get_order_by_number(order.order_number, user_id="user-1")

    async def test_lookup_by_unknown_number(self, service):
        with pytest.raises(NotFoundError):
            await service.get_order_by_number("ORD-0", email="asha@example.com")


class TestRepositoryGuards:
    async def test_amounts_cannot_be_rewritten(self, service, db):
        order, _ = await service.create_order(make_intake())

        with pytest.raises(ValueError):
            await OrderRepository.update_order(db, order.id, {"total_amount": Decimal("1")})

    async def test_update_of_missing_order_returns_none(self, db):
        assert await OrderRepository.update_order(db, "missing", {"status": OrderStatus.CANCELLED}) is None

    async def test_delete_reports_whether_a_row_was_removed(self, service, db):
        order, _ = await service.create_order(make_intake())

        assert await OrderRepository.delete_order(db, order.id) is True
        assert await OrderRepository.delete_order(db, order.id) is False
