from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import get_db
from shared.dependencies import get_notifier, get_payment_gateway, get_settings, get_task_runner

from .service import OrderService


async def get_order_service(
    db: AsyncSession = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier=Depends(get_notifier),
    task_runner=Depends(get_task_runner),
    settings=Depends(get_settings),
) -> OrderService:
    return OrderService(db, gateway=gateway, notifier=notifier, task_runner=task_runner, settings=settings)
