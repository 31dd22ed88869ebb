"""
SQLAlchemy ORM persistence models for the Requisitions module.

Responsibility
--------------
Database-backed persistence for asset requisitions and their append-only
approval history.

Architecture position
---------------------
**Modules layer** -- ORM models consumed by ``RequisitionService``,
``AssignmentService`` and the selectors.  Inherits from ``TrackedBase`` /
``Base`` (kernel db layer).

Invariants enforced
-------------------
* ``status``, ``urgency``, ``approval_level`` and ``action`` are limited to
  their enum values by DB check constraints.
* The assignment payload is present exactly when the status is
  ``assigned``, ``delivered`` or ``completed``; the cancellation payload
  exactly when it is ``cancelled`` (DB check constraints).
* ``requisition_number`` is unique.  History ``seq`` is unique.
* A requisition whose stored status is terminal cannot be updated, and no
  requisition can be deleted (ORM listeners).
* History entries can be neither updated nor deleted (ORM listeners).

Failure modes
-------------
* IntegrityError on duplicate requisition number or constraint violation.
* ImmutabilityViolationError on a forbidden UPDATE/DELETE.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    event,
    inspect,
)
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import Base, TrackedBase
from asset_kernel.db.types import UUIDString
from asset_kernel.exceptions import ImmutabilityViolationError
from asset_modules.requisitions.models import (
    ASSIGNED_STATUSES,
    TERMINAL_STATUSES,
    ApprovalHistoryEntry,
    ApprovalLevel,
    ApprovalSnapshot,
    AssignmentDetails,
    CancellationDetails,
    DecisionStatus,
    HistoryAction,
    Requisition,
    RequisitionStatus,
    Urgency,
)


def _sql_in(values) -> str:
    return ", ".join(f"'{v.value}'" for v in values)


_STATUS_VALUES = _sql_in(RequisitionStatus)
_ASSIGNED_VALUES = _sql_in(sorted(ASSIGNED_STATUSES, key=lambda s: s.value))
_TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)


# ---------------------------------------------------------------------------
# RequisitionModel
# ---------------------------------------------------------------------------


class RequisitionModel(TrackedBase):
    """
    An asset requisition.

    Maps to the ``Requisition`` DTO in ``asset_modules.requisitions.models``.

    Guarantees:
        - ``requisition_number`` is unique.
        - Name columns are snapshots taken when the row was written; they do
          not follow later directory renames.
    """

    __tablename__ = "asset_requisitions"

    __table_args__ = (
        UniqueConstraint("requisition_number", name="uq_asset_requisition_number"),
        CheckConstraint(
            f"status IN ({_STATUS_VALUES})",
            name="ck_asset_requisitions_status",
        ),
        CheckConstraint(
            f"urgency IN ({_sql_in(Urgency)})",
            name="ck_asset_requisitions_urgency",
        ),
        CheckConstraint("quantity >= 1", name="ck_asset_requisitions_quantity"),
        CheckConstraint(
            f"(status IN ({_ASSIGNED_VALUES})"
            " AND assigned_asset_id IS NOT NULL"
            " AND assigned_engineer_id IS NOT NULL"
            " AND delivery_ticket_id IS NOT NULL"
            " AND assigned_at IS NOT NULL)"
            f" OR (status NOT IN ({_ASSIGNED_VALUES})"
            " AND assigned_asset_id IS NULL"
            " AND delivery_ticket_id IS NULL"
            " AND assigned_at IS NULL)",
            name="ck_asset_requisitions_assignment_payload",
        ),
        CheckConstraint(
            "(status = 'cancelled'"
            " AND cancellation_reason IS NOT NULL AND cancelled_at IS NOT NULL)"
            " OR (status <> 'cancelled'"
            " AND cancellation_reason IS NULL AND cancelled_at IS NULL)",
            name="ck_asset_requisitions_cancellation_payload",
        ),
        Index("idx_asset_requisitions_requester", "requested_by"),
        Index("idx_asset_requisitions_department_status", "department_id", "status"),
        Index("idx_asset_requisitions_status_created", "status", "created_at"),
    )

    requisition_number: Mapped[str] = mapped_column(String(50), nullable=False)

    requested_by: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=False,
    )
    requester_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=False,
    )
    department_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Catalogue references (owned elsewhere, no FK)
    asset_category_id: Mapped[UUID | None]
    product_type_id: Mapped[UUID | None]
    requested_product_id: Mapped[UUID | None]

    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    justification: Mapped[str | None] = mapped_column(Text, nullable=True)
    urgency: Mapped[str] = mapped_column(String(50), nullable=False)
    required_by_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    specifications: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(50), nullable=False)

    # Department level
    dept_head_id: Mapped[UUID | None]
    dept_head_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    dept_head_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    dept_head_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    dept_head_decided_at: Mapped[datetime | None]

    # IT level
    it_head_id: Mapped[UUID | None]
    it_head_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    it_head_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    it_head_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    it_head_decided_at: Mapped[datetime | None]

    # Assignment payload
    assigned_coordinator_id: Mapped[UUID | None]
    assigned_coordinator_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    assigned_asset_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("assets.id"), nullable=True,
    )
    assigned_asset_tag: Mapped[str | None] = mapped_column(String(100), nullable=True)
    assigned_engineer_id: Mapped[UUID | None]
    assigned_engineer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    installation_scheduled_date: Mapped[date | None] = mapped_column(
        Date, nullable=True,
    )
    # No FK: the ticket row references the requisition.
    delivery_ticket_id: Mapped[UUID | None]
    assignment_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    assigned_at: Mapped[datetime | None]

    # Cancellation payload
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None]

    def __repr__(self) -> str:
        return f"<Requisition {self.requisition_number} ({self.status})>"

    @property
    def ref(self) -> str:
        return self.requisition_number or str(self.id)

    def _decision(self, level: str) -> ApprovalSnapshot | None:
        status = getattr(self, f"{level}_status")
        if status is None:
            return None
        return ApprovalSnapshot(
            approver_id=getattr(self, f"{level}_id"),
            approver_name=getattr(self, f"{level}_name"),
            status=DecisionStatus(status),
            decided_at=getattr(self, f"{level}_decided_at"),
            comments=getattr(self, f"{level}_comments"),
        )

    def to_dto(self) -> Requisition:
        status = RequisitionStatus(self.status)

        assignment = None
        if status in ASSIGNED_STATUSES:
            assignment = AssignmentDetails(
                coordinator_id=self.assigned_coordinator_id,
                coordinator_name=self.assigned_coordinator_name,
                asset_id=self.assigned_asset_id,
                asset_tag=self.assigned_asset_tag,
                engineer_id=self.assigned_engineer_id,
                engineer_name=self.assigned_engineer_name,
                installation_scheduled_date=self.installation_scheduled_date,
                delivery_ticket_id=self.delivery_ticket_id,
                assigned_at=self.assigned_at,
                notes=self.assignment_notes,
            )

        cancellation = None
        if status is RequisitionStatus.CANCELLED:
            cancellation = CancellationDetails(
                reason=self.cancellation_reason,
                cancelled_at=self.cancelled_at,
            )

        return Requisition(
            id=self.id,
            requisition_number=self.requisition_number,
            requested_by=self.requested_by,
            requester_name=self.requester_name,
            department_id=self.department_id,
            department_name=self.department_name,
            purpose=self.purpose,
            urgency=Urgency(self.urgency),
            status=status,
            created_at=self.created_at,
            quantity=self.quantity,
            asset_category_id=self.asset_category_id,
            product_type_id=self.product_type_id,
            requested_product_id=self.requested_product_id,
            justification=self.justification,
            required_by_date=self.required_by_date,
            specifications=self.specifications,
            dept_head_id=self.dept_head_id,
            dept_head_name=self.dept_head_name,
            it_head_id=self.it_head_id,
            it_head_name=self.it_head_name,
            dept_head_decision=self._decision("dept_head"),
            it_head_decision=self._decision("it_head"),
            assignment=assignment,
            cancellation=cancellation,
            updated_at=self.updated_at,
        )


@event.listens_for(RequisitionModel, "before_update")
def prevent_terminal_requisition_update(mapper, connection, target):
    """Refuse updates once the persisted status is terminal."""
    history = inspect(target).attrs.status.history
    previous = history.deleted[0] if history.deleted else target.status
    if previous in _TERMINAL_VALUES:
        raise ImmutabilityViolationError(
            entity_type="Requisition",
            entity_id=target.ref,
            reason=f"Requisition is in terminal status '{previous}' -- cannot modify",
        )


@event.listens_for(RequisitionModel, "before_delete")
def prevent_requisition_delete(mapper, connection, target):
    """Requisitions are never deleted; cancel them instead."""
    raise ImmutabilityViolationError(
        entity_type="Requisition",
        entity_id=target.ref,
        reason="Requisitions cannot be deleted",
    )


# ---------------------------------------------------------------------------
# ApprovalHistoryModel
# ---------------------------------------------------------------------------


class ApprovalHistoryModel(Base):
    """
    One append-only audit record per requisition action.

    Maps to the ``ApprovalHistoryEntry`` DTO.

    Guarantees:
        - ``seq`` is allocated from the sequence service and totally orders
          entries in the order they were written.
        - Rejections and cancellations carry a non-blank comment.
    """

    __tablename__ = "requisition_approval_history"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_requisition_history_seq"),
        CheckConstraint(
            f"approval_level IN ({_sql_in(ApprovalLevel)})",
            name="ck_requisition_history_level",
        ),
        CheckConstraint(
            f"action IN ({_sql_in(HistoryAction)})",
            name="ck_requisition_history_action",
        ),
        CheckConstraint(
            "action NOT IN ('rejected', 'cancelled')"
            " OR (comments IS NOT NULL AND length(trim(comments)) > 0)",
            name="ck_requisition_history_comment_required",
        ),
        Index("idx_requisition_history_requisition_seq", "requisition_id", "seq"),
    )

    requisition_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("asset_requisitions.id"), nullable=False,
    )
    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)
    approval_level: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approver_name: Mapped[str] = mapped_column(String(200), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    new_status: Mapped[str] = mapped_column(String(50), nullable=False)
    action_timestamp: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<ApprovalHistory #{self.seq} {self.action} -> {self.new_status}>"

    def to_dto(self) -> ApprovalHistoryEntry:
        return ApprovalHistoryEntry(
            id=self.id,
            requisition_id=self.requisition_id,
            seq=self.seq,
            approval_level=ApprovalLevel(self.approval_level),
            approver_id=self.approver_id,
            approver_name=self.approver_name,
            approver_role=self.approver_role,
            action=HistoryAction(self.action),
            new_status=RequisitionStatus(self.new_status),
            action_timestamp=self.action_timestamp,
            previous_status=(
                RequisitionStatus(self.previous_status)
                if self.previous_status is not None else None
            ),
            comments=self.comments,
        )


@event.listens_for(ApprovalHistoryModel, "before_update")
def prevent_history_update(mapper, connection, target):
    """Prevent updates to approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot modify",
    )


@event.listens_for(ApprovalHistoryModel, "before_delete")
def prevent_history_delete(mapper, connection, target):
    """Prevent deletion of approval history records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalHistory",
        entity_id=str(target.id),
        reason="Approval history is append-only -- cannot delete",
    )
