from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from servicebook.vehicle.models import Vehicle
from servicebook.workorder.models import (
    QUALIFYING_STATUSES,
    SaleItem,
    WorkOrder,
)


async def get_vehicle(session: AsyncSession, vehicle_id: UUID) -> Vehicle | None:
    return await session.get(Vehicle, vehicle_id)


async def qualifying_history(
    session: AsyncSession, vehicle_id: UUID, limit: int | None = None
) -> Sequence[WorkOrder]:
    """Completed/delivered work orders for a vehicle, newest first.

    Line items (with their products) and the service are loaded eagerly;
    callers never trigger lazy loads on the async session.
    """
    stmt = (
        select(WorkOrder)
        .where(
            WorkOrder.vehicle_id == vehicle_id,
            WorkOrder.status.in_(QUALIFYING_STATUSES),
        )
        .options(
            selectinload(WorkOrder.sale_items).selectinload(SaleItem.product),
            selectinload(WorkOrder.service),
        )
        .order_by(WorkOrder.date.desc(), WorkOrder.created_at.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return (await session.execute(stmt)).scalars().all()


async def latest_qualifying(
    session: AsyncSession, vehicle_id: UUID
) -> WorkOrder | None:
    history = await qualifying_history(session, vehicle_id, limit=1)
    return history[0] if history else None
