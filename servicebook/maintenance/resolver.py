"""
History resolver.

Turns the most recent qualifying work order of a vehicle into a list of items
priced against the live catalog. Historical prices and stock are never
trusted; every item is re-resolved.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.catalog.lookup import (
    find_active_by_code,
    find_active_by_name,
    get_active_product,
)
from servicebook.catalog.models import Product
from servicebook.catalog.normalizer import normalize
from servicebook.maintenance.categories import MaintenanceCategory
from servicebook.workorder.details import FILTER_SLOTS, ServiceDetails
from servicebook.workorder.history import get_vehicle, latest_qualifying
from servicebook.workorder.models import ItemType, WorkOrder

logger = logging.getLogger(__name__)


class ResolutionTier(enum.Enum):
    PRODUCT_REFERENCE = "product_reference"
    NAME_MATCH = "name_match"
    NORMALIZED_CODE = "normalized_code"


@dataclass(frozen=True)
class RawItem:
    description: str
    quantity: float
    unit_price: float
    product_id: UUID | None = None
    type: ItemType = ItemType.PRODUCT
    category: MaintenanceCategory | None = None


@dataclass(frozen=True)
class ResolvedItem:
    found: bool
    description: str
    quantity: float
    # Current catalog price when found, historical unit price otherwise.
    price: float
    name: str
    product_id: UUID | None = None
    code: str | None = None
    product_category: str | None = None
    stock: int | None = None
    type: ItemType = ItemType.PRODUCT
    category_hint: MaintenanceCategory | None = None
    tier: ResolutionTier | None = None


@dataclass(frozen=True)
class LastService:
    work_order_id: UUID
    service_date: datetime
    odometer: int | None
    items: list[ResolvedItem]


def items_from_details(details: ServiceDetails) -> list[RawItem]:
    """Synthetic items for hand-entered tickets that have no line items."""
    items: list[RawItem] = []

    if details.oil is not None and details.oil.type:
        items.append(
            RawItem(
                description=details.oil.type,
                quantity=details.oil.liters or 1,
                unit_price=0,
                category=MaintenanceCategory.ENGINE_OIL,
            )
        )

    for slot, category in FILTER_SLOTS.items():
        code = details.filter_code(slot)
        if code:
            items.append(
                RawItem(description=code, quantity=1, unit_price=0, category=category)
            )

    return items


def raw_items(work_order: WorkOrder) -> list[RawItem]:
    if work_order.sale_items:
        return [
            RawItem(
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                product_id=item.product_id,
                type=item.type,
            )
            for item in work_order.sale_items
        ]
    if work_order.service_details is not None:
        return items_from_details(work_order.service_details)
    return []


async def match_product(
    session: AsyncSession, item: RawItem
) -> tuple[Product, ResolutionTier] | None:
    if item.product_id is not None:
        product = await get_active_product(session, item.product_id)
        if product is not None:
            return product, ResolutionTier.PRODUCT_REFERENCE

    product = await find_active_by_name(session, item.description)
    if product is not None:
        return product, ResolutionTier.NAME_MATCH

    code = normalize(item.description, item.category)
    if code is not None:
        product = await find_active_by_code(session, code)
        if product is not None:
            return product, ResolutionTier.NORMALIZED_CODE

    return None


async def resolve_item(session: AsyncSession, item: RawItem) -> ResolvedItem:
    match = await match_product(session, item)
    if match is None:
        logger.debug("No catalog match for %r", item.description)
        return ResolvedItem(
            found=False,
            description=item.description,
            quantity=item.quantity,
            price=item.unit_price,
            name=item.description,
            type=item.type,
            category_hint=item.category,
        )

    product, tier = match
    return ResolvedItem(
        found=True,
        description=item.description,
        quantity=item.quantity,
        price=product.price,
        name=product.name,
        product_id=product.id,
        code=product.code,
        product_category=product.category,
        stock=product.stock,
        type=item.type,
        category_hint=item.category,
        tier=tier,
    )


async def resolve_last_service(
    session: AsyncSession, vehicle_id: UUID
) -> Result[LastService]:
    try:
        vehicle = await get_vehicle(session, vehicle_id)
        if vehicle is None:
            return NotFound("vehicle not found")

        work_order = await latest_qualifying(session, vehicle_id)
        if work_order is None:
            return NotFound("no qualifying service history")

        items = [await resolve_item(session, raw) for raw in raw_items(work_order)]
    except SQLAlchemyError as e:
        logger.exception("Failed to resolve last service of vehicle %s", vehicle_id)
        return Failure("could not read service history", str(e))

    logger.info(
        "Resolved %d/%d items from work order %s",
        sum(1 for i in items if i.found),
        len(items),
        work_order.id,
    )
    return Found(
        LastService(
            work_order_id=work_order.id,
            service_date=work_order.date,
            odometer=work_order.mileage,
            items=items,
        )
    )
