"""
Order intake as a two-step saga.

The store gives no transaction spanning the order row and its item rows, so
the order is written first and deleted again if the item batch fails.
"""
import structlog

from .repository import OrderRepository
from .saga import SagaOrchestrator

logger = structlog.get_logger(__name__)

PERSIST_ORDER = "persist_order"
PERSIST_ITEMS = "persist_items"


# --- ACTIONS ---

async def persist_order(ctx: dict):
    order = await OrderRepository.create_order(ctx["db"], ctx["order"])
    ctx["order"] = order
    # Plain values: a failed item commit rolls back and expires the instance
    ctx["order_id"] = order.id
    ctx["order_number"] = order.order_number

async def persist_items(ctx: dict):
    ctx["items"] = await OrderRepository.create_order_items(ctx["db"], ctx["items"])


# --- COMPENSATIONS (Rollbacks) ---

async def rollback_order(ctx: dict):
    logger.warning("order_rollback", order_id=ctx["order_id"], order_number=ctx["order_number"])
    await OrderRepository.delete_order(ctx["db"], ctx["order_id"])


# --- BUILDER FACTORY ---

def build_intake_saga() -> SagaOrchestrator:
    saga = SagaOrchestrator()
    saga.add_step(PERSIST_ORDER, persist_order, rollback_order)
    saga.add_step(PERSIST_ITEMS, persist_items, None)  # last step, nothing after it to undo
    return saga
