import os
from collections.abc import AsyncGenerator, Awaitable, Callable, Generator, Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from testcontainers.postgres import PostgresContainer

from servicebook.base.models import BaseDbModel
from servicebook.catalog.models import Product
from servicebook.vehicle.models import Client, Vehicle
from servicebook.workorder.details import ServiceDetails
from servicebook.workorder.models import SaleItem, Service, WorkOrder, WorkOrderStatus

# SQLite keeps the suite self-contained; set to 1 to run against PostgreSQL.
USE_POSTGRES = os.environ.get("SERVICEBOOK_TEST_POSTGRES") == "1"


@pytest.fixture(scope="session")
def postgres_url() -> Generator[str]:
    with PostgresContainer("postgres:17") as pg:
        # Convert sync URL to async (postgresql:// -> postgresql+asyncpg://)
        sync_url = pg.get_connection_url()
        yield sync_url.replace("postgresql+psycopg2://", "postgresql+asyncpg://")


@pytest.fixture
def database_url(request: pytest.FixtureRequest, tmp_path: Path) -> str:
    if USE_POSTGRES:
        return str(request.getfixturevalue("postgres_url"))
    return f"sqlite+aiosqlite:///{tmp_path / 'servicebook.db'}"


@pytest.fixture
async def db_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(BaseDbModel.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(BaseDbModel.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def vehicle(db_session: AsyncSession) -> Vehicle:
    client = Client(name="Marta Giménez", phone="+54 9 351 555 0101")
    v = Vehicle(
        client=client,
        plate="AB123CD",
        brand="Volkswagen",
        model="Gol Trend",
        mileage=48_000,
    )
    db_session.add(v)
    await db_session.flush()
    return v


@pytest.fixture
async def catalog(db_session: AsyncSession) -> dict[str, Product]:
    products = [
        Product(
            code="ELAION-F30-1L",
            name="Aceite Elaion F30 10W40 1L",
            category="Lubricantes",
            price=12_500,
            stock=40,
        ),
        Product(
            code="ELAION-F30-SUELTO",
            name="Aceite Elaion F30 suelto x litro",
            category="Lubricantes",
            price=9_800,
            stock=200,
        ),
        Product(
            code="MAP-3614",
            name="Filtro de aceite MAP 3614",
            category="Filtros",
            price=8_900,
            stock=12,
        ),
        Product(
            code="AMPI-1154",
            name="Filtro de aire AMPI 1154",
            category="Filtros",
            price=15_300,
            stock=0,
        ),
        Product(
            code="HM-220",
            name="Filtro habitaculo HM 220",
            category="Filtros",
            price=11_000,
            stock=5,
        ),
        Product(
            code="G10230",
            name="Filtro de combustible G10230",
            category="Filtros",
            price=14_000,
            stock=3,
        ),
        Product(
            code="MAP-1000",
            name="Filtro de aceite discontinuado",
            category="Filtros",
            price=1_000,
            stock=0,
            active=False,
        ),
    ]
    db_session.add_all(products)
    await db_session.flush()
    return {p.code: p for p in products}


@pytest.fixture
def add_work_order(
    db_session: AsyncSession, vehicle: Vehicle
) -> Callable[..., Awaitable[WorkOrder]]:
    async def _add(
        *,
        date: datetime,
        status: WorkOrderStatus = WorkOrderStatus.COMPLETED,
        items: Sequence[SaleItem] = (),
        details: dict[str, Any] | None = None,
        mileage: int | None = None,
        notes: str | None = None,
        service: Service | None = None,
        target: Vehicle | None = None,
    ) -> WorkOrder:
        owner = target or vehicle
        for position, item in enumerate(items):
            item.position = position
        wo = WorkOrder(
            vehicle_id=owner.id,
            client_id=owner.client_id,
            status=status,
            date=date,
            mileage=mileage,
            notes=notes,
            service=service,
            service_details=(
                ServiceDetails.model_validate(details) if details is not None else None
            ),
            sale_items=list(items),
        )
        db_session.add(wo)
        await db_session.flush()
        return wo

    return _add
