"""
Requisition Domain Models.

The nouns of the requisition workflow: requisitions, approval snapshots,
assignment and cancellation payloads, and approval-history entries.

``status`` is the single source of truth for where a requisition is.  The
optional payloads are attached only in the states where they exist:

* ``dept_head_decision``  -- once the department level is decided
* ``it_head_decision``    -- once the IT level is decided
* ``assignment``          -- ``assigned``, ``delivered``, ``completed``
* ``cancellation``        -- ``cancelled``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID


class RequisitionStatus(Enum):
    """Requisition lifecycle states."""
    PENDING_DEPT_HEAD = "pending_dept_head"
    APPROVED_BY_DEPT_HEAD = "approved_by_dept_head"  # transient
    REJECTED_BY_DEPT_HEAD = "rejected_by_dept_head"
    PENDING_IT_HEAD = "pending_it_head"
    APPROVED_BY_IT_HEAD = "approved_by_it_head"  # transient
    REJECTED_BY_IT_HEAD = "rejected_by_it_head"
    PENDING_ASSIGNMENT = "pending_assignment"
    ASSIGNED = "assigned"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.REJECTED_BY_DEPT_HEAD,
    RequisitionStatus.REJECTED_BY_IT_HEAD,
    RequisitionStatus.COMPLETED,
    RequisitionStatus.CANCELLED,
})

ASSIGNED_STATUSES: frozenset[RequisitionStatus] = frozenset({
    RequisitionStatus.ASSIGNED,
    RequisitionStatus.DELIVERED,
    RequisitionStatus.COMPLETED,
})


class Urgency(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ApprovalLevel(Enum):
    """Who recorded a history entry."""
    EMPLOYEE = "employee"
    DEPT_HEAD = "dept_head"
    IT_HEAD = "it_head"
    COORDINATOR = "coordinator"


class HistoryAction(Enum):
    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    CANCELLED = "cancelled"


class DecisionStatus(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ApprovalSnapshot:
    """A recorded approval-level decision."""
    approver_id: UUID
    approver_name: str
    status: DecisionStatus
    decided_at: datetime
    comments: str | None = None


@dataclass(frozen=True)
class AssignmentDetails:
    coordinator_id: UUID
    coordinator_name: str
    asset_id: UUID
    asset_tag: str
    engineer_id: UUID
    engineer_name: str
    installation_scheduled_date: date
    delivery_ticket_id: UUID
    assigned_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class CancellationDetails:
    reason: str
    cancelled_at: datetime


@dataclass(frozen=True)
class RequisitionDetails:
    """Caller-supplied request details for ``create``."""
    purpose: str
    urgency: Urgency | str
    quantity: int = 1
    asset_category_id: UUID | None = None
    product_type_id: UUID | None = None
    requested_product_id: UUID | None = None
    justification: str | None = None
    required_by_date: date | None = None
    specifications: str | None = None


@dataclass(frozen=True)
class Requisition:
    """An asset requisition."""
    id: UUID
    requisition_number: str
    requested_by: UUID
    requester_name: str
    department_id: UUID
    department_name: str
    purpose: str
    urgency: Urgency
    status: RequisitionStatus
    created_at: datetime
    quantity: int = 1
    asset_category_id: UUID | None = None
    product_type_id: UUID | None = None
    requested_product_id: UUID | None = None
    justification: str | None = None
    required_by_date: date | None = None
    specifications: str | None = None
    # Routed approver until decided, then the actual decider.
    dept_head_id: UUID | None = None
    dept_head_name: str | None = None
    it_head_id: UUID | None = None
    it_head_name: str | None = None
    dept_head_decision: ApprovalSnapshot | None = None
    it_head_decision: ApprovalSnapshot | None = None
    assignment: AssignmentDetails | None = None
    cancellation: CancellationDetails | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class ApprovalHistoryEntry:
    """One append-only audit record of an action on a requisition."""
    id: UUID
    requisition_id: UUID
    seq: int
    approval_level: ApprovalLevel
    approver_id: UUID
    approver_name: str
    approver_role: str
    action: HistoryAction
    new_status: RequisitionStatus
    action_timestamp: datetime
    previous_status: RequisitionStatus | None = None
    comments: str | None = None


@dataclass(frozen=True)
class RequisitionDetail:
    """A requisition with its ordered approval history."""
    requisition: Requisition
    history: tuple[ApprovalHistoryEntry, ...] = ()


class WorkflowEventType(Enum):
    """Events emitted after a workflow transaction commits."""
    REQUISITION_CREATED = "requisition_created"
    DEPT_HEAD_APPROVED = "dept_head_approved"
    DEPT_HEAD_REJECTED = "dept_head_rejected"
    IT_HEAD_APPROVED = "it_head_approved"
    IT_HEAD_REJECTED = "it_head_rejected"
    ASSET_ASSIGNED = "asset_assigned"
    REQUISITION_CANCELLED = "requisition_cancelled"


@dataclass(frozen=True)
class WorkflowEvent:
    """A committed state change, handed to the event sink for notification.

    ``previous_status`` is the status before the operation.  ``details``
    carries event-specific values (asset tag, engineer, schedule).
    """
    event_type: WorkflowEventType
    requisition: Requisition
    actor_id: UUID
    actor_name: str
    previous_status: RequisitionStatus | None = None
    comments: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
