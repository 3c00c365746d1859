"""
Estimate synthesizer.

Builds a draft quote from the last resolved service of a vehicle, limited to
the categories of a preset, and commits accepted quotes as a pending work
order in one transaction.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicebook.base.models import utcnow
from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.maintenance.categories import (
    CATEGORY_TABLE,
    FILTER_CATEGORIES,
    CategoryRule,
    MaintenanceCategory,
    classify,
)
from servicebook.maintenance.resolver import ResolvedItem, resolve_last_service
from servicebook.vehicle.models import LearnedChoice, Vehicle, VehicleSpecifications
from servicebook.workorder.models import (
    ItemType,
    PaymentMethod,
    Sale,
    SaleItem,
    Service,
    WorkOrder,
    WorkOrderStatus,
)

logger = logging.getLogger(__name__)


class Preset(enum.Enum):
    BASIC = "BASIC"
    FULL = "FULL"


PRESET_CATEGORIES: dict[Preset, tuple[MaintenanceCategory, ...]] = {
    Preset.BASIC: (MaintenanceCategory.ENGINE_OIL, MaintenanceCategory.OIL_FILTER),
    Preset.FULL: (
        MaintenanceCategory.ENGINE_OIL,
        MaintenanceCategory.OIL_FILTER,
        MaintenanceCategory.AIR_FILTER,
        MaintenanceCategory.FUEL_FILTER,
        MaintenanceCategory.CABIN_FILTER,
    ),
}

LEARNABLE_CATEGORIES = FILTER_CATEGORIES | {MaintenanceCategory.ENGINE_OIL}


@dataclass(frozen=True)
class EstimateLine:
    name: str
    quantity: float
    price: float
    found: bool
    category: MaintenanceCategory
    product_id: UUID | None = None
    code: str | None = None
    stock: int | None = None
    type: ItemType = ItemType.PRODUCT

    @classmethod
    def from_resolved(
        cls, item: ResolvedItem, category: MaintenanceCategory
    ) -> EstimateLine:
        return cls(
            name=item.name,
            quantity=item.quantity,
            price=item.price,
            found=item.found,
            category=category,
            product_id=item.product_id,
            code=item.code,
            stock=item.stock,
            type=item.type,
        )

    @property
    def subtotal(self) -> float:
        return round(self.price * self.quantity, 2)

    @property
    def needs_review(self) -> bool:
        return not self.found or (self.stock is not None and self.stock <= 0)


@dataclass(frozen=True)
class DraftEstimate:
    vehicle_id: UUID
    preset: Preset
    source_work_order_id: UUID
    lines: list[EstimateLine] = field(default_factory=list)

    @property
    def total(self) -> float:
        return round(sum(line.subtotal for line in self.lines), 2)


@dataclass(frozen=True)
class CommittedEstimate:
    work_order_id: UUID
    sale_id: UUID
    total: float
    learned: list[MaintenanceCategory] = field(default_factory=list)


def select_lines(
    items: Sequence[ResolvedItem],
    preset: Preset,
    table: Sequence[CategoryRule] = CATEGORY_TABLE,
) -> list[EstimateLine]:
    """First item per target category, in item order.

    Items the keyword table cannot place fall back to the category they were
    recorded under, so unmatched detail-bag entries still reach review.
    """
    targets = PRESET_CATEGORIES[preset]
    seen: set[MaintenanceCategory] = set()
    lines: list[EstimateLine] = []

    for item in items:
        category = classify(item.name, table)
        if category is MaintenanceCategory.OTHER and item.category_hint is not None:
            category = item.category_hint
        if category not in targets or category in seen:
            continue
        seen.add(category)
        lines.append(EstimateLine.from_resolved(item, category))

    return lines


async def synthesize_estimate(
    session: AsyncSession,
    vehicle_id: UUID,
    preset: Preset = Preset.BASIC,
    table: Sequence[CategoryRule] = CATEGORY_TABLE,
) -> Result[DraftEstimate]:
    last = await resolve_last_service(session, vehicle_id)
    if not isinstance(last, Found):
        return last
    if not last.value.items:
        return NotFound("no qualifying service history")

    lines = select_lines(last.value.items, preset, table)
    logger.info(
        "Drafted %s estimate for vehicle %s with %d lines",
        preset.value,
        vehicle_id,
        len(lines),
    )
    return Found(
        DraftEstimate(
            vehicle_id=vehicle_id,
            preset=preset,
            source_work_order_id=last.value.work_order_id,
            lines=lines,
        )
    )


def learned_choices(
    lines: Sequence[EstimateLine], now: datetime
) -> dict[str, LearnedChoice]:
    learned: dict[str, LearnedChoice] = {}
    for line in lines:
        if line.product_id is None or line.category not in LEARNABLE_CATEGORIES:
            continue
        learned[line.category.value] = LearnedChoice(
            product_id=line.product_id,
            code=line.code or "",
            name=line.name,
            learned_at=now,
        )
    return learned


async def default_service(session: AsyncSession) -> Service | None:
    """The shop's general service, or any active one."""
    stmt = (
        select(Service)
        .where(Service.active.is_(True), Service.name.icontains("service"))
        .order_by(Service.name)
        .limit(1)
    )
    service = (await session.execute(stmt)).scalars().first()
    if service is not None:
        return service

    stmt = select(Service).where(Service.active.is_(True)).order_by(Service.name)
    return (await session.execute(stmt)).scalars().first()


async def commit_estimate(
    session_factory: async_sessionmaker[AsyncSession],
    vehicle_id: UUID,
    lines: Sequence[EstimateLine],
    mileage: int | None = None,
    operator: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Result[CommittedEstimate]:
    """Write sale, pending work order, line items and learned specs atomically.

    Runs in its own session; nothing is persisted unless every row is.
    """
    now = now or utcnow()
    total = round(sum(line.subtotal for line in lines), 2)

    try:
        async with session_factory() as session:
            async with session.begin():
                vehicle = await session.get(Vehicle, vehicle_id)
                if vehicle is None:
                    return NotFound("vehicle not found")

                service = await default_service(session)
                sale = Sale(
                    date=now,
                    total=total,
                    payment_method=PaymentMethod.QUOTE,
                    operator=operator,
                )
                work_order = WorkOrder(
                    vehicle_id=vehicle.id,
                    client_id=vehicle.client_id,
                    service=service,
                    sale=sale,
                    status=WorkOrderStatus.PENDING,
                    date=now,
                    mileage=mileage,
                    price=total,
                    notes=notes,
                )
                session.add_all([sale, work_order])
                session.add_all(
                    SaleItem(
                        work_order=work_order,
                        sale=sale,
                        product_id=line.product_id,
                        type=line.type,
                        position=position,
                        description=line.name,
                        quantity=line.quantity,
                        unit_price=line.price,
                        subtotal=line.subtotal,
                    )
                    for position, line in enumerate(lines)
                )

                if mileage is not None:
                    vehicle.mileage = mileage

                learned = learned_choices(lines, now)
                if learned:
                    current = vehicle.specifications or VehicleSpecifications()
                    vehicle.specifications = current.model_copy(
                        update={
                            "learned": {**current.learned, **learned},
                            "learned_updated_at": now,
                        }
                    )

                await session.flush()
                committed = CommittedEstimate(
                    work_order_id=work_order.id,
                    sale_id=sale.id,
                    total=total,
                    learned=[MaintenanceCategory(k) for k in learned],
                )
    except SQLAlchemyError as e:
        logger.exception("Failed to commit estimate for vehicle %s", vehicle_id)
        return Failure("could not save the estimate", str(e))

    logger.info(
        "Committed estimate as work order %s (total %.2f)",
        committed.work_order_id,
        committed.total,
    )
    return Found(committed)
