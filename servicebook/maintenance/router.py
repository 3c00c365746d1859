from datetime import datetime
from typing import Any, NoReturn, TypeVar
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicebook.base.dependencies import get_session, get_session_factory
from servicebook.base.result import Failure, Found, NotFound, Result
from servicebook.catalog.normalizer import explain
from servicebook.maintenance.categories import CategoryGroup, MaintenanceCategory
from servicebook.maintenance.estimate import (
    EstimateLine,
    Preset,
    commit_estimate,
    synthesize_estimate,
)
from servicebook.maintenance.projection import project_vehicle
from servicebook.maintenance.resolver import ResolutionTier, resolve_last_service
from servicebook.maintenance.status import Status, derive_status
from servicebook.maintenance.trend import Confidence, estimate_usage_trend
from servicebook.workorder.models import ItemType

router = APIRouter()

M = TypeVar("M", bound=BaseModel)


class ResolvedItemResponse(BaseModel):
    model_config = {"from_attributes": True}

    found: bool
    description: str
    name: str
    quantity: float
    price: float
    product_id: UUID | None
    code: str | None
    product_category: str | None
    stock: int | None
    type: ItemType
    tier: ResolutionTier | None


class LastServiceResponse(BaseModel):
    model_config = {"from_attributes": True}

    work_order_id: UUID
    service_date: datetime
    odometer: int | None
    items: list[ResolvedItemResponse]


class CategoryStatusResponse(BaseModel):
    model_config = {"from_attributes": True}

    category: MaintenanceCategory
    label: str
    group: CategoryGroup
    status: Status
    last_date: datetime | None
    last_mileage: int | None
    days_ago: int | None
    detail: str | None


class MaintenanceResponse(BaseModel):
    model_config = {"from_attributes": True}

    categories: list[CategoryStatusResponse]
    oil_capacity_hint: float | None
    battery_voltage: float | None


class EstimateRequest(BaseModel):
    preset: Preset = Preset.BASIC


class EstimateLineBody(BaseModel):
    model_config = {"from_attributes": True}

    name: str
    quantity: float = Field(gt=0)
    price: float = Field(ge=0)
    found: bool = True
    category: MaintenanceCategory = MaintenanceCategory.OTHER
    product_id: UUID | None = None
    code: str | None = None
    stock: int | None = None
    type: ItemType = ItemType.PRODUCT


class EstimateLineResponse(EstimateLineBody):
    subtotal: float
    needs_review: bool


class EstimateResponse(BaseModel):
    model_config = {"from_attributes": True}

    preset: Preset
    source_work_order_id: UUID
    lines: list[EstimateLineResponse]
    total: float


class CommitRequest(BaseModel):
    lines: list[EstimateLineBody] = Field(min_length=1)
    mileage: int | None = Field(default=None, ge=0)
    operator: str | None = None
    notes: str | None = None


class CommitResponse(BaseModel):
    model_config = {"from_attributes": True}

    work_order_id: UUID
    sale_id: UUID
    total: float
    learned: list[MaintenanceCategory]


class OdometerRequest(BaseModel):
    odometer: int = Field(ge=0)
    work_order_id: UUID | None = None


class ProjectionResponse(BaseModel):
    model_config = {"from_attributes": True}

    average_daily_distance: float
    predicted_next_service: datetime
    recomputed: bool


class UsageTrendResponse(BaseModel):
    model_config = {"from_attributes": True}

    average_daily_distance: float
    predicted_next_service: datetime
    confidence: Confidence
    points: int


class NormalizeResponse(BaseModel):
    description: str
    code: str | None
    rule: str | None


def _raise_for(result: NotFound | Failure) -> NoReturn:
    if isinstance(result, NotFound):
        raise HTTPException(status_code=404, detail=result.reason)
    raise HTTPException(status_code=503, detail=result.reason)


def _respond(result: Result[Any], model: type[M]) -> M:
    if isinstance(result, Found):
        return model.model_validate(result.value)
    _raise_for(result)


@router.get("/vehicles/{vehicle_id}/last-service", response_model=LastServiceResponse)
async def get_last_service(
    vehicle_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> LastServiceResponse:
    return _respond(await resolve_last_service(session, vehicle_id), LastServiceResponse)


@router.get("/vehicles/{vehicle_id}/maintenance", response_model=MaintenanceResponse)
async def get_maintenance(
    vehicle_id: UUID,
    session: AsyncSession = Depends(get_session),
) -> MaintenanceResponse:
    return _respond(await derive_status(session, vehicle_id), MaintenanceResponse)


@router.post("/vehicles/{vehicle_id}/estimate", response_model=EstimateResponse)
async def create_estimate(
    vehicle_id: UUID,
    body: EstimateRequest,
    session: AsyncSession = Depends(get_session),
) -> EstimateResponse:
    result = await synthesize_estimate(session, vehicle_id, body.preset)
    return _respond(result, EstimateResponse)


@router.post(
    "/vehicles/{vehicle_id}/estimate/commit",
    response_model=CommitResponse,
    status_code=201,
)
async def commit(
    vehicle_id: UUID,
    body: CommitRequest,
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> CommitResponse:
    lines = [EstimateLine(**line.model_dump()) for line in body.lines]
    result = await commit_estimate(
        session_factory,
        vehicle_id,
        lines,
        mileage=body.mileage,
        operator=body.operator,
        notes=body.notes,
    )
    return _respond(result, CommitResponse)


@router.post("/vehicles/{vehicle_id}/odometer", response_model=ProjectionResponse)
async def record_odometer(
    vehicle_id: UUID,
    body: OdometerRequest,
    session: AsyncSession = Depends(get_session),
) -> ProjectionResponse:
    result = await project_vehicle(
        session,
        vehicle_id,
        body.odometer,
        exclude_work_order_id=body.work_order_id,
    )
    return _respond(result, ProjectionResponse)


@router.get("/vehicles/{vehicle_id}/usage-trend", response_model=UsageTrendResponse)
async def get_usage_trend(
    vehicle_id: UUID,
    window: int = Query(5, ge=2, le=50),
    session: AsyncSession = Depends(get_session),
) -> UsageTrendResponse:
    result = await estimate_usage_trend(session, vehicle_id, window=window)
    return _respond(result, UsageTrendResponse)


@router.get("/catalog/normalize", response_model=NormalizeResponse)
async def normalize_descriptor(
    description: str,
    hint: MaintenanceCategory | None = None,
) -> NormalizeResponse:
    match = explain(description, hint)
    return NormalizeResponse(
        description=description,
        code=match.code if match else None,
        rule=match.rule if match else None,
    )
