from collections.abc import AsyncGenerator
from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import uuid4

import httpx
import pytest
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicebook.base.dependencies import get_session, get_session_factory
from servicebook.base.models import utcnow
from servicebook.base.result import Failure
from servicebook.catalog.models import Product
from servicebook.maintenance.router import router
from servicebook.vehicle.models import Vehicle
from servicebook.workorder.models import SaleItem, WorkOrderStatus


@pytest.fixture
def app(
    db_session: AsyncSession, session_factory: async_sessionmaker[AsyncSession]
) -> FastAPI:
    test_app = FastAPI()
    test_app.include_router(router)

    async def override_session() -> AsyncSession:  # type: ignore[misc]
        yield db_session  # type: ignore[misc]

    test_app.dependency_overrides[get_session] = override_session
    test_app.dependency_overrides[get_session_factory] = lambda: session_factory
    return test_app


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient]:
    transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
async def serviced(
    vehicle: Vehicle, catalog: dict[str, Product], add_work_order
) -> Vehicle:
    await add_work_order(
        date=utcnow() - timedelta(days=40),
        status=WorkOrderStatus.DELIVERED,
        mileage=45_000,
        items=[
            SaleItem(description="Aceite Elaion F30", quantity=4, unit_price=9_000),
            SaleItem(description="AMBI 1154", quantity=1, unit_price=7_000),
            SaleItem(description="Mano de obra", quantity=1, unit_price=20_000),
        ],
    )
    return vehicle


class TestLastService:
    async def test_returns_resolved_items(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.get(f"/vehicles/{serviced.id}/last-service")

        assert resp.status_code == 200
        data = resp.json()
        assert data["odometer"] == 45_000
        assert [i["code"] for i in data["items"]] == [
            "ELAION-F30-1L",
            "AMPI-1154",
            None,
        ]
        assert [i["tier"] for i in data["items"]] == [
            "name_match",
            "normalized_code",
            None,
        ]
        labour = data["items"][2]
        assert labour["found"] is False
        assert labour["price"] == 20_000

    async def test_unknown_vehicle(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(f"/vehicles/{uuid4()}/last-service")

        assert resp.status_code == 404
        assert resp.json()["detail"] == "vehicle not found"

    async def test_no_history(
        self, client: httpx.AsyncClient, vehicle: Vehicle
    ) -> None:
        resp = await client.get(f"/vehicles/{vehicle.id}/last-service")

        assert resp.status_code == 404
        assert resp.json()["detail"] == "no qualifying service history"


class TestMaintenance:
    async def test_returns_every_category(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.get(f"/vehicles/{serviced.id}/maintenance")

        assert resp.status_code == 200
        by_category = {c["category"]: c for c in resp.json()["categories"]}
        assert by_category["engine_oil"]["status"] == "ok"
        assert by_category["engine_oil"]["last_mileage"] == 45_000
        assert by_category["air_filter"]["status"] == "unknown"
        assert "other" not in by_category

    async def test_storage_failure(
        self, client: httpx.AsyncClient, vehicle: Vehicle
    ) -> None:
        failure = Failure("could not read service history", "connection reset")
        with patch(
            "servicebook.maintenance.router.derive_status",
            AsyncMock(return_value=failure),
        ):
            resp = await client.get(f"/vehicles/{vehicle.id}/maintenance")

        assert resp.status_code == 503
        assert resp.json()["detail"] == "could not read service history"


class TestEstimate:
    async def test_full_preset(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.post(
            f"/vehicles/{serviced.id}/estimate", json={"preset": "FULL"}
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["preset"] == "FULL"
        assert [line["category"] for line in data["lines"]] == [
            "engine_oil",
            "air_filter",
        ]
        assert data["lines"][0]["subtotal"] == 50_000
        # AMPI-1154 is out of stock
        assert data["lines"][1]["needs_review"] is True
        assert data["total"] == 65_300

    async def test_defaults_to_basic(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.post(f"/vehicles/{serviced.id}/estimate", json={})

        assert resp.status_code == 200
        assert resp.json()["preset"] == "BASIC"

    async def test_rejects_unknown_preset(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.post(
            f"/vehicles/{serviced.id}/estimate", json={"preset": "DELUXE"}
        )
        assert resp.status_code == 422

    async def test_commit(
        self,
        client: httpx.AsyncClient,
        db_session: AsyncSession,
        vehicle: Vehicle,
        catalog: dict[str, Product],
    ) -> None:
        await db_session.commit()
        oil_filter = catalog["MAP-3614"]

        resp = await client.post(
            f"/vehicles/{vehicle.id}/estimate/commit",
            json={
                "lines": [
                    {
                        "name": oil_filter.name,
                        "quantity": 1,
                        "price": oil_filter.price,
                        "category": "oil_filter",
                        "product_id": str(oil_filter.id),
                        "code": oil_filter.code,
                    },
                    {"name": "Mano de obra", "quantity": 1, "price": 20_000},
                ],
                "mileage": 49_000,
            },
        )

        assert resp.status_code == 201
        data = resp.json()
        assert data["total"] == 28_900
        assert data["learned"] == ["oil_filter"]

    async def test_commit_requires_lines(
        self, client: httpx.AsyncClient, vehicle: Vehicle
    ) -> None:
        resp = await client.post(
            f"/vehicles/{vehicle.id}/estimate/commit", json={"lines": []}
        )
        assert resp.status_code == 422


class TestOdometer:
    async def test_records_reading(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.post(
            f"/vehicles/{serviced.id}/odometer", json={"odometer": 47_000}
        )

        assert resp.status_code == 200
        data = resp.json()
        assert data["recomputed"] is True
        assert data["average_daily_distance"] == pytest.approx(50, rel=0.01)

    async def test_rejects_negative_reading(
        self, client: httpx.AsyncClient, vehicle: Vehicle
    ) -> None:
        resp = await client.post(
            f"/vehicles/{vehicle.id}/odometer", json={"odometer": -1}
        )
        assert resp.status_code == 422


class TestUsageTrend:
    async def test_not_enough_history(
        self, client: httpx.AsyncClient, serviced: Vehicle
    ) -> None:
        resp = await client.get(f"/vehicles/{serviced.id}/usage-trend")

        assert resp.status_code == 404
        assert resp.json()["detail"] == "not enough odometer history"

    @pytest.mark.parametrize("window", [-1, 0, 1, 51])
    async def test_rejects_window_out_of_range(
        self, client: httpx.AsyncClient, vehicle: Vehicle, window: int
    ) -> None:
        resp = await client.get(
            f"/vehicles/{vehicle.id}/usage-trend", params={"window": window}
        )
        assert resp.status_code == 422


class TestNormalize:
    async def test_reports_rule(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/catalog/normalize",
            params={"description": "F3614", "hint": "oil_filter"},
        )

        assert resp.status_code == 200
        assert resp.json() == {
            "description": "F3614",
            "code": "MAP-3614",
            "rule": "numeric_filter",
        }

    async def test_unmapped(self, client: httpx.AsyncClient) -> None:
        resp = await client.get(
            "/catalog/normalize", params={"description": "Mano de obra"}
        )

        assert resp.status_code == 200
        assert resp.json()["code"] is None
        assert resp.json()["rule"] is None


class TestHealth:
    async def test_health(self) -> None:
        from servicebook.app import app

        transport = httpx.ASGITransport(app=app)  # type: ignore[arg-type]
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
            resp = await c.get("/health")

        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
