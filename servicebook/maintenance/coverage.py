"""
Mapping coverage report.

Measures how much of the hand-entered history the normalizer can tie back to
the current catalog, and lists the most frequent descriptors it cannot.
"""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.result import Failure, Found, Result
from servicebook.catalog.lookup import existing_codes
from servicebook.catalog.normalizer import normalize
from servicebook.maintenance.categories import MaintenanceCategory
from servicebook.workorder.details import FILTER_SLOTS, ServiceDetails
from servicebook.workorder.models import WorkOrder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoverageReport:
    total: int
    mapped: int
    unmapped: dict[MaintenanceCategory, list[tuple[str, int]]] = field(
        default_factory=dict
    )

    @property
    def unmapped_total(self) -> int:
        return self.total - self.mapped

    @property
    def ratio(self) -> float:
        return self.mapped / self.total if self.total else 1.0


def descriptors(details: ServiceDetails) -> Iterator[tuple[MaintenanceCategory, str]]:
    if details.oil is not None and details.oil.type:
        yield MaintenanceCategory.ENGINE_OIL, details.oil.type
    for slot, category in FILTER_SLOTS.items():
        code = details.filter_code(slot)
        if code:
            yield category, code


def measure(
    bags: Iterable[ServiceDetails], codes: set[str], top: int = 20
) -> CoverageReport:
    total = 0
    mapped = 0
    misses: dict[MaintenanceCategory, Counter[str]] = {}

    for details in bags:
        for category, text in descriptors(details):
            total += 1
            code = normalize(text, category)
            if code is not None and code in codes:
                mapped += 1
                continue
            misses.setdefault(category, Counter())[text.strip().upper()] += 1

    return CoverageReport(
        total=total,
        mapped=mapped,
        unmapped={
            category: counter.most_common(top) for category, counter in misses.items()
        },
    )


async def mapping_coverage(session: AsyncSession, top: int = 20) -> Result[CoverageReport]:
    try:
        codes = await existing_codes(session)
        stmt = select(WorkOrder.service_details).where(
            WorkOrder.service_details.is_not(None)
        )
        bags = [b for b in (await session.execute(stmt)).scalars() if b is not None]
    except SQLAlchemyError as e:
        logger.exception("Failed to load data for the coverage report")
        return Failure("could not read service history", str(e))

    report = measure(bags, codes, top)
    logger.info(
        "Mapped %d of %d historical descriptors (%.1f%%)",
        report.mapped,
        report.total,
        report.ratio * 100,
    )
    return Found(report)
