"""Usage trend from a least-squares fit over recent odometer readings."""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.maintenance.projection import OdometerReading, ProjectionSettings
from servicebook.vehicle.models import Vehicle
from servicebook.workorder.models import QUALIFYING_STATUSES, WorkOrder

logger = logging.getLogger(__name__)

MIN_POINTS = 2


class Confidence(enum.Enum):
    HIGH = "high"
    LOW = "low"


@dataclass(frozen=True)
class UsageTrend:
    average_daily_distance: float
    predicted_next_service: datetime
    confidence: Confidence
    points: int
    last_reading: OdometerReading


def fit_slope(readings: Sequence[OdometerReading]) -> float | None:
    """Distance per day through `readings` (oldest first), None if undefined."""
    if len(readings) < MIN_POINTS:
        return None

    origin = readings[0].date
    xs = [(r.date - origin).days for r in readings]
    ys = [r.odometer for r in readings]
    n = len(readings)

    sum_x = sum(xs)
    sum_y = sum(ys)
    sum_xy = sum(x * y for x, y in zip(xs, ys))
    sum_xx = sum(x * x for x in xs)

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return None
    return (n * sum_xy - sum_x * sum_y) / denominator


def trend_from_readings(
    readings: Sequence[OdometerReading],
    settings: ProjectionSettings = ProjectionSettings(),
) -> UsageTrend | None:
    slope = fit_slope(readings)
    if slope is None or slope <= 0:
        return None

    last = readings[-1]
    days = math.ceil(settings.service_interval / slope)
    return UsageTrend(
        average_daily_distance=slope,
        predicted_next_service=last.date + timedelta(days=days),
        confidence=Confidence.HIGH if len(readings) >= 3 else Confidence.LOW,
        points=len(readings),
        last_reading=last,
    )


async def recent_readings(
    session: AsyncSession, vehicle_id: UUID, window: int
) -> list[OdometerReading]:
    stmt = (
        select(WorkOrder.mileage, WorkOrder.date)
        .where(
            WorkOrder.vehicle_id == vehicle_id,
            WorkOrder.status.in_(QUALIFYING_STATUSES),
            WorkOrder.mileage.is_not(None),
        )
        .order_by(WorkOrder.date.desc())
        .limit(window)
    )
    rows = (await session.execute(stmt)).all()
    return [OdometerReading(odometer=r.mileage, date=r.date) for r in reversed(rows)]


async def estimate_usage_trend(
    session: AsyncSession,
    vehicle_id: UUID,
    window: int = 5,
    apply: bool = False,
    settings: ProjectionSettings | None = None,
) -> Result[UsageTrend]:
    settings = settings or ProjectionSettings.from_env()

    try:
        vehicle = await session.get(Vehicle, vehicle_id)
        if vehicle is None:
            return NotFound("vehicle not found")

        readings = await recent_readings(session, vehicle_id, window)
        trend = trend_from_readings(readings, settings)
        if trend is None:
            logger.info(
                "Not enough usable history for vehicle %s (%d readings)",
                vehicle_id,
                len(readings),
            )
            return NotFound("not enough odometer history")

        if apply:
            vehicle.average_daily_distance = trend.average_daily_distance
            vehicle.last_service_date = trend.last_reading.date
            vehicle.last_service_mileage = trend.last_reading.odometer
            vehicle.predicted_next_service = trend.predicted_next_service
            await session.flush()
    except SQLAlchemyError as e:
        logger.exception("Failed to estimate usage of vehicle %s", vehicle_id)
        return Failure("could not read odometer history", str(e))

    return Found(trend)
