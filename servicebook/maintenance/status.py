"""
Maintenance status deriver.

Reads the qualifying history of a vehicle directly (no catalog resolution)
and reports, for every category of the keyword table, when it was last
performed and whether that is stale.
"""

from __future__ import annotations

import enum
import logging
import os
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.models import utcnow
from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.maintenance.categories import (
    CATEGORY_TABLE,
    CategoryGroup,
    CategoryRule,
    MaintenanceCategory,
    fold,
)
from servicebook.workorder.history import get_vehicle, qualifying_history
from servicebook.workorder.models import WorkOrder

logger = logging.getLogger(__name__)

STALE_AFTER_DAYS = int(os.environ.get("SERVICEBOOK_STALE_AFTER_DAYS", "365"))


class Status(enum.Enum):
    OK = "ok"
    WARNING = "warning"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class CategoryStatus:
    category: MaintenanceCategory
    label: str
    group: CategoryGroup
    status: Status
    last_date: datetime | None = None
    last_mileage: int | None = None
    days_ago: int | None = None
    detail: str | None = None


@dataclass(frozen=True)
class MaintenanceReport:
    categories: list[CategoryStatus] = field(default_factory=list)
    oil_capacity_hint: float | None = None
    battery_voltage: float | None = None

    def by_group(self, group: CategoryGroup) -> list[CategoryStatus]:
        return [c for c in self.categories if c.group is group]

    def get(self, category: MaintenanceCategory) -> CategoryStatus | None:
        for status in self.categories:
            if status.category is category:
                return status
        return None


def _record_texts(work_order: WorkOrder) -> list[str]:
    texts = [item.description for item in work_order.sale_items]
    if work_order.notes:
        texts.append(work_order.notes)
    if work_order.service is not None:
        texts.append(work_order.service.name)
    if work_order.service_details is not None:
        texts.append(work_order.service_details.search_text())
    return texts


def _hit_detail(rule: CategoryRule, work_order: WorkOrder) -> str | None:
    if work_order.service_details is not None:
        structured = work_order.service_details.structured_detail(rule.category)
        if structured:
            return structured
    for item in work_order.sale_items:
        if rule.matches(fold(item.description)):
            return item.description
    return None


def category_status(
    rule: CategoryRule,
    history: Sequence[WorkOrder],
    now: datetime,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> CategoryStatus:
    for work_order in history:
        if not rule.matches_any(_record_texts(work_order)):
            continue

        days_ago = (now - work_order.date).days
        return CategoryStatus(
            category=rule.category,
            label=rule.label,
            group=rule.group,
            status=Status.WARNING if days_ago > stale_after_days else Status.OK,
            last_date=work_order.date,
            last_mileage=work_order.mileage,
            days_ago=days_ago,
            detail=_hit_detail(rule, work_order),
        )

    return CategoryStatus(
        category=rule.category,
        label=rule.label,
        group=rule.group,
        status=Status.UNKNOWN,
    )


def oil_capacity_hint(history: Sequence[WorkOrder]) -> float | None:
    for work_order in history:
        if work_order.service_details is None:
            continue
        capacity = work_order.service_details.oil_capacity()
        if capacity:
            return capacity
    return None


def battery_voltage(history: Sequence[WorkOrder]) -> float | None:
    for work_order in history:
        details = work_order.service_details
        if details is not None and details.battery is not None:
            if details.battery.voltage:
                return details.battery.voltage
    return None


def derive_status_from_history(
    history: Sequence[WorkOrder],
    now: datetime,
    table: Sequence[CategoryRule] = CATEGORY_TABLE,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> MaintenanceReport:
    """`history` must be ordered newest first."""
    return MaintenanceReport(
        categories=[
            category_status(rule, history, now, stale_after_days) for rule in table
        ],
        oil_capacity_hint=oil_capacity_hint(history),
        battery_voltage=battery_voltage(history),
    )


async def derive_status(
    session: AsyncSession,
    vehicle_id: UUID,
    now: datetime | None = None,
    table: Sequence[CategoryRule] = CATEGORY_TABLE,
    stale_after_days: int = STALE_AFTER_DAYS,
) -> Result[MaintenanceReport]:
    now = now or utcnow()
    try:
        if await get_vehicle(session, vehicle_id) is None:
            return NotFound("vehicle not found")
        history = await qualifying_history(session, vehicle_id)
    except SQLAlchemyError as e:
        logger.exception("Failed to load history of vehicle %s", vehicle_id)
        return Failure("could not read service history", str(e))

    return Found(derive_status_from_history(history, now, table, stale_after_days))
