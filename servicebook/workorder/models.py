from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Enum, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from servicebook.base.models import BaseDbModel, UTCDateTime
from servicebook.base.schemas import PydanticJSONB
from servicebook.catalog.models import Product
from servicebook.vehicle.models import Client, Vehicle
from servicebook.workorder.details import ServiceDetails


class WorkOrderStatus(enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


QUALIFYING_STATUSES = (WorkOrderStatus.COMPLETED, WorkOrderStatus.DELIVERED)


class PaymentMethod(enum.Enum):
    CASH = "cash"
    CARD = "card"
    TRANSFER = "transfer"
    ACCOUNT = "account"
    QUOTE = "quote"


class ItemType(enum.Enum):
    PRODUCT = "product"
    SERVICE = "service"


class Service(BaseDbModel):
    """Labour service offered by the shop ("Full service", "Alineación")."""

    __tablename__ = "services"

    name: Mapped[str] = mapped_column(String, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Sale(BaseDbModel):
    __tablename__ = "sales"

    date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    total: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod), nullable=False
    )
    operator: Mapped[str | None] = mapped_column(String, nullable=True)

    items: Mapped[list[SaleItem]] = relationship(back_populates="sale")


class WorkOrder(BaseDbModel):
    __tablename__ = "work_orders"
    __table_args__ = (
        Index("ix_work_orders_vehicle_status_date", "vehicle_id", "status", "date"),
    )

    vehicle_id: Mapped[UUID] = mapped_column(ForeignKey("vehicles.id"), nullable=False)
    client_id: Mapped[UUID] = mapped_column(ForeignKey("clients.id"), nullable=False)
    service_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("services.id"), nullable=True
    )
    sale_id: Mapped[UUID | None] = mapped_column(ForeignKey("sales.id"), nullable=True)
    status: Mapped[WorkOrderStatus] = mapped_column(
        Enum(WorkOrderStatus), nullable=False, default=WorkOrderStatus.PENDING
    )
    date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    mileage: Mapped[int | None] = mapped_column(Integer, nullable=True)
    price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    service_details: Mapped[ServiceDetails | None] = mapped_column(
        PydanticJSONB(ServiceDetails), nullable=True
    )

    vehicle: Mapped[Vehicle] = relationship()
    client: Mapped[Client] = relationship()
    service: Mapped[Service | None] = relationship()
    sale: Mapped[Sale | None] = relationship()
    sale_items: Mapped[list[SaleItem]] = relationship(
        back_populates="work_order", order_by="SaleItem.position"
    )


class SaleItem(BaseDbModel):
    __tablename__ = "sale_items"

    work_order_id: Mapped[UUID] = mapped_column(
        ForeignKey("work_orders.id"), nullable=False
    )
    sale_id: Mapped[UUID | None] = mapped_column(ForeignKey("sales.id"), nullable=True)
    product_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("products.id"), nullable=True
    )
    type: Mapped[ItemType] = mapped_column(
        Enum(ItemType), nullable=False, default=ItemType.PRODUCT
    )
    # Line order on the ticket; "first item wins" rules depend on it.
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    description: Mapped[str] = mapped_column(String, nullable=False)
    quantity: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    unit_price: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    subtotal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    work_order: Mapped[WorkOrder] = relationship(back_populates="sale_items")
    sale: Mapped[Sale | None] = relationship(back_populates="items")
    product: Mapped[Product | None] = relationship()
