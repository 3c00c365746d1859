from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from servicebook.base.models import BaseDbModel, UTCDateTime
from servicebook.base.schemas import PydanticJSONB


class LearnedChoice(BaseModel):
    """Product the shop confirmed for one maintenance category of a vehicle."""

    product_id: UUID
    code: str
    name: str
    learned_at: datetime


# Older front-office versions wrote flat keys ("lastUpdated",
# "oilFilterProductId") and camelCase entries under `learned`. Entries that
# are not a LearnedChoice are kept exactly as stored.
LearnedEntry = Annotated[Union[LearnedChoice, Any], Field(union_mode="left_to_right")]


class VehicleSpecifications(BaseModel):
    # Front-office tools keep their own keys in here; preserve them.
    model_config = ConfigDict(extra="allow")

    learned: dict[str, LearnedEntry] = Field(default_factory=dict)
    learned_updated_at: datetime | None = None

    def learned_choice(self, key: str) -> LearnedChoice | None:
        entry = self.learned.get(key)
        return entry if isinstance(entry, LearnedChoice) else None


class Client(BaseDbModel):
    __tablename__ = "clients"

    name: Mapped[str] = mapped_column(String, nullable=False)
    phone: Mapped[str | None] = mapped_column(String, nullable=True)

    vehicles: Mapped[list[Vehicle]] = relationship(back_populates="client")


class Vehicle(BaseDbModel):
    __tablename__ = "vehicles"

    client_id: Mapped[UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    plate: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    brand: Mapped[str | None] = mapped_column(String, nullable=True)
    model: Mapped[str | None] = mapped_column(String, nullable=True)
    mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # ── Projection (written by the mileage projector) ──
    last_service_date: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )
    last_service_mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    average_daily_distance: Mapped[float | None] = mapped_column(Float, nullable=True)
    predicted_next_service: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True
    )

    specifications: Mapped[VehicleSpecifications | None] = mapped_column(
        PydanticJSONB(VehicleSpecifications), nullable=True
    )

    client: Mapped[Client] = relationship(back_populates="vehicles")
