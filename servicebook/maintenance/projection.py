"""
Mileage projector.

Keeps a rolling average of daily distance per vehicle and predicts when the
next service falls due.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.models import utcnow
from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.vehicle.models import Vehicle
from servicebook.workorder.models import WorkOrder, WorkOrderStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionSettings:
    service_interval: float = 10_000
    min_daily_distance: float = 5
    max_daily_distance: float = 200
    default_daily_distance: float = 30
    default_horizon_days: int = 333

    @classmethod
    def from_env(cls) -> ProjectionSettings:
        return cls(
            service_interval=float(
                os.environ.get("SERVICEBOOK_SERVICE_INTERVAL", cls.service_interval)
            ),
            min_daily_distance=float(
                os.environ.get("SERVICEBOOK_MIN_DAILY_DISTANCE", cls.min_daily_distance)
            ),
            max_daily_distance=float(
                os.environ.get("SERVICEBOOK_MAX_DAILY_DISTANCE", cls.max_daily_distance)
            ),
            default_daily_distance=float(
                os.environ.get(
                    "SERVICEBOOK_DEFAULT_DAILY_DISTANCE", cls.default_daily_distance
                )
            ),
            default_horizon_days=int(
                os.environ.get(
                    "SERVICEBOOK_DEFAULT_HORIZON_DAYS", cls.default_horizon_days
                )
            ),
        )


@dataclass(frozen=True)
class OdometerReading:
    odometer: int
    date: datetime


@dataclass(frozen=True)
class Projection:
    average_daily_distance: float
    predicted_next_service: datetime
    recomputed: bool


def compute_projection(
    previous: OdometerReading | None,
    new_odometer: int,
    now: datetime,
    prior_average: float | None = None,
    settings: ProjectionSettings = ProjectionSettings(),
) -> Projection:
    average = prior_average or settings.default_daily_distance

    if previous is not None:
        delta_distance = new_odometer - previous.odometer
        delta_days = (now - previous.date) / timedelta(days=1)
        # Same-day readings say nothing about daily usage.
        if delta_distance > 0 and delta_days >= 1:
            average = min(
                settings.max_daily_distance,
                max(settings.min_daily_distance, delta_distance / delta_days),
            )
            return Projection(
                average_daily_distance=average,
                predicted_next_service=now
                + timedelta(days=settings.service_interval / average),
                recomputed=True,
            )

    return Projection(
        average_daily_distance=average,
        predicted_next_service=now + timedelta(days=settings.default_horizon_days),
        recomputed=False,
    )


async def previous_reading(
    session: AsyncSession,
    vehicle_id: UUID,
    now: datetime,
    exclude_work_order_id: UUID | None = None,
) -> OdometerReading | None:
    stmt = (
        select(WorkOrder.mileage, WorkOrder.date)
        .where(
            WorkOrder.vehicle_id == vehicle_id,
            WorkOrder.status == WorkOrderStatus.DELIVERED,
            WorkOrder.mileage.is_not(None),
            WorkOrder.date <= now,
        )
        .order_by(WorkOrder.date.desc())
        .limit(1)
    )
    if exclude_work_order_id is not None:
        stmt = stmt.where(WorkOrder.id != exclude_work_order_id)

    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    return OdometerReading(odometer=row.mileage, date=row.date)


async def project_vehicle(
    session: AsyncSession,
    vehicle_id: UUID,
    new_odometer: int,
    now: datetime | None = None,
    exclude_work_order_id: UUID | None = None,
    settings: ProjectionSettings | None = None,
) -> Result[Projection]:
    """Record a new odometer reading and refresh the vehicle's projection.

    The caller owns the transaction.
    """
    now = now or utcnow()
    settings = settings or ProjectionSettings.from_env()

    try:
        vehicle = await session.get(Vehicle, vehicle_id)
        if vehicle is None:
            return NotFound("vehicle not found")

        previous = await previous_reading(
            session, vehicle_id, now, exclude_work_order_id
        )
        projection = compute_projection(
            previous, new_odometer, now, vehicle.average_daily_distance, settings
        )

        vehicle.mileage = new_odometer
        vehicle.last_service_date = now
        vehicle.last_service_mileage = new_odometer
        vehicle.average_daily_distance = projection.average_daily_distance
        vehicle.predicted_next_service = projection.predicted_next_service
        await session.flush()
    except SQLAlchemyError as e:
        logger.exception("Failed to project mileage of vehicle %s", vehicle_id)
        return Failure("could not update vehicle projection", str(e))

    logger.info(
        "Vehicle %s: %.1f/day, next service %s (recomputed=%s)",
        vehicle_id,
        projection.average_daily_distance,
        projection.predicted_next_service.date(),
        projection.recomputed,
    )
    return Found(projection)
