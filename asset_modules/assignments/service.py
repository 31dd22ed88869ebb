"""
Assignment Module Service (``asset_modules.assignments.service``).

Responsibility
--------------
Fulfils an approved requisition: reserves a physical asset, names the
installing engineer, raises a delivery ticket and records the asset
movement, all in one transaction.

Invariants enforced
-------------------
* One transaction: the delivery ticket, requisition update, asset status
  change, movement record and history entry commit together or not at all.
* The requisition row and the asset row are locked (``FOR UPDATE``) before
  their statuses are read.
* The asset leaves ``available`` through a compare-and-swap UPDATE
  (``WHERE status = 'available'``); a zero row count aborts the operation.
  Of two concurrent assignments of the same asset exactly one succeeds.

Failure modes
-------------
* ``RequisitionNotFoundError`` / ``AssetNotFoundError`` /
  ``EngineerNotFoundError`` -- nothing written.
* ``InvalidAssignmentStateError`` -- requisition not ``pending_assignment``.
* ``AssetNotAvailableError`` -- asset not ``available`` (message carries the
  actual status).
* ``TransactionError`` / ``LockTimeoutError`` -- storage failure; rolled back.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from asset_config.schema import WorkflowConfig
from asset_kernel.db.transaction import atomic
from asset_kernel.domain.actor import Actor, Role
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import (
    AssetNotAvailableError,
    AssetNotFoundError,
    EngineerNotFoundError,
    InvalidAssignmentStateError,
    InvalidRequisitionInputError,
)
from asset_kernel.logging_config import LogContext, get_logger
from asset_kernel.models.directory import Asset
from asset_kernel.selectors.directory_selector import DirectorySelector
from asset_kernel.services.sequence_service import DocumentNumberAllocator
from asset_modules.assignments.models import (
    AssetStatus,
    AssignmentResult,
    DeliveryStatus,
)
from asset_modules.assignments.orm import AssetMovementModel, DeliveryTicketModel
from asset_modules.requisitions.history import ApprovalHistoryLog
from asset_modules.requisitions.models import (
    ApprovalLevel,
    HistoryAction,
    RequisitionStatus,
    WorkflowEvent,
    WorkflowEventType,
)
from asset_modules.requisitions.service import (
    EventSink,
    emit_event,
    lock_requisition,
)
from asset_modules.requisitions.workflows import is_valid_transition

logger = get_logger("modules.assignments.service")


class AssignmentService:
    """
    Asset assignment for approved requisitions.

    Transaction boundary: ``assign_asset`` commits on success and rolls back
    on failure.  The ``asset_assigned`` event is emitted after the commit.
    """

    def __init__(
        self,
        session: Session,
        config: WorkflowConfig,
        clock: Clock | None = None,
        event_sink: EventSink | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._event_sink = event_sink
        self._directory = DirectorySelector(session)
        self._numbers = DocumentNumberAllocator(
            session, width=config.numbering.sequence_width,
        )
        self._history = ApprovalHistoryLog(session)

    def _lock_asset(self, asset_id: UUID) -> Asset:
        asset = self._session.execute(
            select(Asset)
            .where(Asset.id == asset_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if asset is None:
            raise AssetNotFoundError(str(asset_id))
        return asset

    def assign_asset(
        self,
        requisition_id: UUID,
        asset_id: UUID,
        engineer_id: UUID,
        scheduled_date: date,
        notes: str | None,
        actor: Actor,
    ) -> AssignmentResult:
        """
        Assign ``asset_id`` and ``engineer_id`` to a requisition awaiting
        assignment, raising a delivery ticket and an asset movement.

        Postconditions:
            - requisition ``assigned`` with the full assignment payload
            - asset ``in_transit`` with no holder
            - one delivery ticket (``in_transit``), one movement, one
              ``assigned`` history entry
        """
        operation = "assignment.assign_asset"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("asset_assignment_started", extra={
                "asset_id": str(asset_id),
                "engineer_id": str(engineer_id),
            })

            with atomic(self._session, operation):
                if not isinstance(scheduled_date, date):
                    raise InvalidRequisitionInputError(
                        "installation_scheduled_date", "must be a date",
                    )

                # 1. Requisition
                row = lock_requisition(self._session, requisition_id)
                previous = RequisitionStatus(row.status)
                if not is_valid_transition(previous, RequisitionStatus.ASSIGNED):
                    raise InvalidAssignmentStateError(row.ref, previous.value)

                # 2. Asset
                asset = self._lock_asset(asset_id)
                if asset.status != AssetStatus.AVAILABLE.value:
                    raise AssetNotAvailableError(str(asset.id), asset.asset_tag, asset.status)

                # 3. Engineer
                engineer = self._directory.get_user(engineer_id)
                if (
                    engineer is None
                    or engineer.role != Role.ENGINEER.value
                    or not engineer.is_active
                ):
                    raise EngineerNotFoundError(str(engineer_id))

                now = self._clock.now()
                asset_tag = asset.asset_tag

                # 4. Delivery ticket
                ticket = DeliveryTicketModel(
                    ticket_number=self._numbers.next_number(
                        self._config.numbering.delivery_ticket_prefix, now,
                    ),
                    requisition_id=row.id,
                    asset_id=asset.id,
                    asset_tag=asset_tag,
                    recipient_id=row.requested_by,
                    recipient_name=row.requester_name,
                    delivery_type=self._config.assignment.delivery_type,
                    scheduled_delivery_date=scheduled_date,
                    delivered_by=engineer.id,
                    delivered_by_name=engineer.display_name,
                    delivery_notes=notes,
                    status=DeliveryStatus.IN_TRANSIT.value,
                    created_at=now,
                    created_by_id=actor.id,
                )
                self._session.add(ticket)
                self._session.flush()

                # 5. Requisition payload
                row.assigned_coordinator_id = actor.id
                row.assigned_coordinator_name = actor.display_name
                row.assigned_asset_id = asset.id
                row.assigned_asset_tag = asset_tag
                row.assigned_engineer_id = engineer.id
                row.assigned_engineer_name = engineer.display_name
                row.installation_scheduled_date = scheduled_date
                row.delivery_ticket_id = ticket.id
                row.assignment_notes = notes
                row.assigned_at = now
                row.status = RequisitionStatus.ASSIGNED.value
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()

                # 6. Asset compare-and-swap
                swapped = self._session.execute(
                    update(Asset)
                    .where(
                        Asset.id == asset.id,
                        Asset.status == AssetStatus.AVAILABLE.value,
                    )
                    .values(status=AssetStatus.IN_TRANSIT.value, assigned_to=None)
                    .execution_options(synchronize_session="fetch")
                )
                if swapped.rowcount != 1:
                    current = self._session.execute(
                        select(Asset.status).where(Asset.id == asset.id)
                    ).scalar_one()
                    raise AssetNotAvailableError(str(asset.id), asset_tag, current)

                # 7. Movement, at the requester's current location
                requester = self._directory.get_user(row.requested_by)
                location = (
                    self._directory.get_location(requester.location_id)
                    if requester is not None and requester.location_id is not None
                    else None
                )
                movement = AssetMovementModel(
                    asset_id=asset.id,
                    asset_tag=asset_tag,
                    assigned_to=row.requested_by,
                    assigned_to_name=row.requester_name,
                    location_id=location.id if location else None,
                    location_name=location.name if location else None,
                    movement_type=self._config.assignment.movement_type,
                    status=self._config.assignment.movement_type,
                    reason=f"Asset assigned via requisition {row.requisition_number}",
                    notes=notes,
                    performed_by=actor.id,
                    performed_by_name=actor.display_name,
                    movement_date=now,
                )
                self._session.add(movement)
                self._session.flush()

                # 8. History
                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.COORDINATOR,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=Role.COORDINATOR.value,
                    action=HistoryAction.ASSIGNED,
                    previous_status=previous,
                    new_status=RequisitionStatus.ASSIGNED,
                    timestamp=now,
                    comments=notes or (
                        f"Asset assigned to {row.requester_name}. "
                        f"Engineer {engineer.display_name} assigned for installation."
                    ),
                )

                requisition = row.to_dto()
                result = AssignmentResult(
                    requisition_id=row.id,
                    requisition_number=row.requisition_number,
                    delivery_ticket=ticket.to_dto(),
                    asset_id=asset.id,
                    asset_tag=asset_tag,
                    engineer_id=engineer.id,
                    engineer_name=engineer.display_name,
                    movement_id=movement.id,
                    installation_scheduled_date=scheduled_date,
                )

            logger.info("asset_assigned", extra={
                "requisition_number": result.requisition_number,
                "asset_tag": result.asset_tag,
                "ticket_number": result.delivery_ticket.ticket_number,
                "engineer_id": str(result.engineer_id),
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=WorkflowEventType.ASSET_ASSIGNED,
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=notes,
            details={
                "asset_tag": result.asset_tag,
                "engineer_id": result.engineer_id,
                "engineer_name": result.engineer_name,
                "installation_scheduled_date": scheduled_date,
                "ticket_number": result.delivery_ticket.ticket_number,
            },
        ))
        return result
