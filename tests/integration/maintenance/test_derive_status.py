from datetime import timedelta
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from servicebook.base.models import utcnow
from servicebook.base.result import Found, NotFound
from servicebook.maintenance.categories import CategoryGroup, MaintenanceCategory
from servicebook.maintenance.status import Status, derive_status
from servicebook.vehicle.models import Vehicle
from servicebook.workorder.models import SaleItem, Service, WorkOrderStatus


class TestDeriveStatus:
    async def test_report_from_stored_history(
        self, db_session: AsyncSession, vehicle: Vehicle, add_work_order
    ) -> None:
        now = utcnow()
        await add_work_order(
            date=now - timedelta(days=30),
            mileage=47_000,
            items=[
                SaleItem(
                    description="Filtro de aceite MAP 3614", quantity=1, unit_price=0
                )
            ],
            details={
                "oil": {"brand": "Elaion", "type": "F30", "liters": "4,5"},
                "battery": {"voltage": "12,6"},
            },
        )
        await add_work_order(
            date=now - timedelta(days=400),
            status=WorkOrderStatus.DELIVERED,
            notes="Cambio de filtro de combustible",
            service=Service(name="Full Service"),
        )

        result = await derive_status(db_session, vehicle.id, now=now)

        assert isinstance(result, Found)
        report = result.value
        oil = report.get(MaintenanceCategory.ENGINE_OIL)
        assert oil is not None
        assert oil.status is Status.OK
        assert oil.days_ago == 30
        assert oil.last_mileage == 47_000
        assert oil.detail == "Elaion F30"

        oil_filter = report.get(MaintenanceCategory.OIL_FILTER)
        assert oil_filter is not None
        assert oil_filter.status is Status.OK
        assert oil_filter.detail == "Filtro de aceite MAP 3614"

        fuel = report.get(MaintenanceCategory.FUEL_FILTER)
        assert fuel is not None
        assert fuel.status is Status.WARNING
        assert fuel.days_ago == 400

        air = report.get(MaintenanceCategory.AIR_FILTER)
        assert air is not None
        assert air.status is Status.UNKNOWN
        assert air.last_date is None

        assert report.oil_capacity_hint == pytest.approx(4.5)
        assert report.battery_voltage == pytest.approx(12.6)
        assert {c.category for c in report.by_group(CategoryGroup.FILTERS)} == {
            MaintenanceCategory.OIL_FILTER,
            MaintenanceCategory.AIR_FILTER,
            MaintenanceCategory.FUEL_FILTER,
            MaintenanceCategory.CABIN_FILTER,
        }

    async def test_ignores_pending_and_cancelled(
        self, db_session: AsyncSession, vehicle: Vehicle, add_work_order
    ) -> None:
        now = utcnow()
        await add_work_order(
            date=now - timedelta(days=2),
            status=WorkOrderStatus.PENDING,
            notes="Filtro de aire",
        )
        await add_work_order(
            date=now - timedelta(days=1),
            status=WorkOrderStatus.CANCELLED,
            items=[
                SaleItem(description="Filtro habitaculo HM 220", quantity=1, unit_price=0)
            ],
        )

        result = await derive_status(db_session, vehicle.id, now=now)

        assert isinstance(result, Found)
        assert all(c.status is Status.UNKNOWN for c in result.value.categories)
        assert result.value.oil_capacity_hint is None

    async def test_unknown_vehicle(self, db_session: AsyncSession) -> None:
        result = await derive_status(db_session, uuid4())
        assert result == NotFound("vehicle not found")
