from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Order, OrderItem, order_number_seq

logger = structlog.get_logger(__name__)

# Columns fixed at intake. Payment confirmation only moves status fields.
IMMUTABLE_ORDER_FIELDS = frozenset(
    {"id", "order_number", "subtotal", "tax", "shipping_cost", "total_amount", "created_at"}
)


class OrderRepository:
    """Store adapter for orders and their items.

    Every write commits on its own. Nothing here spans the order row and its
    item rows, callers compensate when the second write fails.
    """

    @staticmethod
    async def next_order_number(db: AsyncSession) -> Optional[str]:
        """Next value from the order number sequence, or None if the generator is unavailable."""
        try:
            value = await db.scalar(select(order_number_seq.next_value()))
        except (SQLAlchemyError, NotImplementedError) as e:
            logger.warning("order_number_generator_unavailable", error=str(e))
            await db.rollback()
            return None
        if value is None:
            return None
        return f"ORD-{datetime.now(timezone.utc):%Y%m%d}-{value:06d}"

    @staticmethod
    async def create_order(db: AsyncSession, order: Order) -> Order:
        db.add(order)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        await db.refresh(order)
        return order

    @staticmethod
    async def create_order_items(db: AsyncSession, items: Sequence[OrderItem]) -> List[OrderItem]:
        db.add_all(items)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        for item in items:
            await db.refresh(item)
        return list(items)

    @staticmethod
    async def delete_order(db: AsyncSession, order_id: str) -> bool:
        try:
            # No session sync: after a failed item commit the order instance is expired
            await db.execute(
                delete(OrderItem).where(OrderItem.order_id == order_id).execution_options(synchronize_session=False)
            )
            result = await db.execute(
                delete(Order).where(Order.id == order_id).execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        return result.rowcount > 0

    @staticmethod
    async def get_order(db: AsyncSession, order_id: str) -> Optional[Order]:
        result = await db.execute(
            select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def get_order_by_number(db: AsyncSession, order_number: str) -> Optional[Order]:
        result = await db.execute(
            select(Order).where(Order.order_number == order_number).execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def update_order(db: AsyncSession, order_id: str, patch: dict) -> Optional[Order]:
        frozen = IMMUTABLE_ORDER_FIELDS.intersection(patch)
        if frozen:
            raise ValueError(f"Order fields are immutable after creation: {', '.join(sorted(frozen))}")
        try:
            result = await db.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(**patch, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        if result.rowcount == 0:
            return None
        return await OrderRepository.get_order(db, order_id)

    @staticmethod
    async def list_order_items(db: AsyncSession, order_id: str) -> List[OrderItem]:
        result = await db.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_orders_for_user(db: AsyncSession, user_id: str) -> List[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
