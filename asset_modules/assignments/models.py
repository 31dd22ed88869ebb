"""
Assignment Domain Models.

The records produced when a coordinator assigns an asset to an approved
requisition: the delivery ticket and the asset movement.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from uuid import UUID


class DeliveryStatus(Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class AssetStatus(Enum):
    """Asset register statuses the workflow reads or writes."""
    AVAILABLE = "available"
    IN_TRANSIT = "in_transit"
    ASSIGNED = "assigned"


@dataclass(frozen=True)
class DeliveryTicket:
    id: UUID
    ticket_number: str
    requisition_id: UUID
    asset_id: UUID
    asset_tag: str
    recipient_id: UUID
    recipient_name: str
    delivery_type: str
    scheduled_delivery_date: date
    delivered_by: UUID
    delivered_by_name: str
    status: DeliveryStatus
    created_at: datetime
    created_by_id: UUID
    delivery_notes: str | None = None


@dataclass(frozen=True)
class AssetMovement:
    id: UUID
    asset_id: UUID
    asset_tag: str
    assigned_to: UUID
    assigned_to_name: str
    movement_type: str
    status: str
    reason: str
    performed_by: UUID
    performed_by_name: str
    movement_date: datetime
    location_id: UUID | None = None
    location_name: str | None = None
    previous_user_id: UUID | None = None
    previous_user_name: str | None = None
    previous_location_id: UUID | None = None
    previous_location_name: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AssignmentResult:
    """Everything ``assign_asset`` produced, in one value."""
    requisition_id: UUID
    requisition_number: str
    delivery_ticket: DeliveryTicket
    asset_id: UUID
    asset_tag: str
    engineer_id: UUID
    engineer_name: str
    movement_id: UUID
    installation_scheduled_date: date
