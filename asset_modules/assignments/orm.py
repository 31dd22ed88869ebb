"""
SQLAlchemy ORM persistence models for the Assignments module.

Invariants enforced
-------------------
* ``ticket_number`` is unique; ``status`` limited by a check constraint.
* Delivery tickets and asset movements are written once by the assignment
  operation and never updated or deleted here (ORM listeners).
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import Base
from asset_kernel.db.types import UUIDString
from asset_kernel.exceptions import ImmutabilityViolationError
from asset_modules.assignments.models import (
    AssetMovement,
    DeliveryStatus,
    DeliveryTicket,
)


class DeliveryTicketModel(Base):
    """A delivery ticket raised for an assignment."""

    __tablename__ = "asset_delivery_tickets"

    __table_args__ = (
        UniqueConstraint("ticket_number", name="uq_delivery_ticket_number"),
        CheckConstraint(
            "status IN ("
            + ", ".join(f"'{s.value}'" for s in DeliveryStatus)
            + ")",
            name="ck_delivery_tickets_status",
        ),
        Index("idx_delivery_tickets_requisition", "requisition_id"),
    )

    ticket_number: Mapped[str] = mapped_column(String(50), nullable=False)
    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("asset_requisitions.id"), nullable=False,
    )
    asset_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("assets.id"), nullable=False,
    )
    asset_tag: Mapped[str] = mapped_column(String(100), nullable=False)
    recipient_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    delivery_type: Mapped[str] = mapped_column(String(50), nullable=False)
    scheduled_delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    delivered_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    delivered_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    delivery_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<DeliveryTicket {self.ticket_number} ({self.status})>"

    def to_dto(self) -> DeliveryTicket:
        return DeliveryTicket(
            id=self.id,
            ticket_number=self.ticket_number,
            requisition_id=self.requisition_id,
            asset_id=self.asset_id,
            asset_tag=self.asset_tag,
            recipient_id=self.recipient_id,
            recipient_name=self.recipient_name,
            delivery_type=self.delivery_type,
            scheduled_delivery_date=self.scheduled_delivery_date,
            delivered_by=self.delivered_by,
            delivered_by_name=self.delivered_by_name,
            status=DeliveryStatus(self.status),
            created_at=self.created_at,
            created_by_id=self.created_by_id,
            delivery_notes=self.delivery_notes,
        )


class AssetMovementModel(Base):
    """Append-only record of an asset changing hands or location."""

    __tablename__ = "asset_movements"

    __table_args__ = (
        Index("idx_asset_movements_asset_date", "asset_id", "movement_date"),
    )

    asset_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("assets.id"), nullable=False,
    )
    asset_tag: Mapped[str] = mapped_column(String(100), nullable=False)
    assigned_to: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    assigned_to_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location_id: Mapped[UUID | None]
    location_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    previous_user_id: Mapped[UUID | None]
    previous_user_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    previous_location_id: Mapped[UUID | None]
    previous_location_name: Mapped[str | None] = mapped_column(
        String(200), nullable=True,
    )
    movement_type: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    performed_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    performed_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    movement_date: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> AssetMovement:
        return AssetMovement(
            id=self.id,
            asset_id=self.asset_id,
            asset_tag=self.asset_tag,
            assigned_to=self.assigned_to,
            assigned_to_name=self.assigned_to_name,
            movement_type=self.movement_type,
            status=self.status,
            reason=self.reason,
            performed_by=self.performed_by,
            performed_by_name=self.performed_by_name,
            movement_date=self.movement_date,
            location_id=self.location_id,
            location_name=self.location_name,
            previous_user_id=self.previous_user_id,
            previous_user_name=self.previous_user_name,
            previous_location_id=self.previous_location_id,
            previous_location_name=self.previous_location_name,
            notes=self.notes,
        )


def _refuse(entity_type: str, verb: str):
    def listener(mapper, connection, target):
        raise ImmutabilityViolationError(
            entity_type=entity_type,
            entity_id=str(target.id),
            reason=f"{entity_type} records are write-once -- cannot {verb}",
        )
    return listener


event.listen(DeliveryTicketModel, "before_update", _refuse("DeliveryTicket", "modify"))
event.listen(DeliveryTicketModel, "before_delete", _refuse("DeliveryTicket", "delete"))
event.listen(AssetMovementModel, "before_update", _refuse("AssetMovement", "modify"))
event.listen(AssetMovementModel, "before_delete", _refuse("AssetMovement", "delete"))
