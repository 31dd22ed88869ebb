"""
Requisition Module Service (``asset_modules.requisitions.service``).

Responsibility
--------------
Creates requisitions and records department-head, IT-head and cancellation
decisions: status transitions, approver snapshots, approval history and
post-commit workflow events.

Architecture position
---------------------
**Modules layer**.  ``RequisitionService`` is the sole public entry point
for requisition state changes.  It composes the kernel
``DirectorySelector`` and ``DocumentNumberAllocator`` with the module's
``ApprovalHistoryLog``.

Invariants enforced
-------------------
* Each public method owns the transaction boundary (``db.atomic``:
  commit on success, rollback on any failure).
* Checks run in the order input, existence, authorization, state, and
  nothing is written before all of them pass.
* Every hop of a multi-hop move (through the transient ``approved_by_*``
  states) is validated against the transition table first.
* The requisition row is locked (``SELECT ... FOR UPDATE``) before its
  status is read, so concurrent decisions serialize.

Failure modes
-------------
* ``ValidationError`` / ``NotFoundError`` / ``AuthorizationError`` /
  ``StateConflictError`` -- raised before any write; session rolled back.
* ``TransactionError`` / ``LockTimeoutError`` -- storage failure; rolled back.

Audit relevance
---------------
Structured log events are emitted at operation start and commit; the
transaction boundary logs every rollback with its error code.  Every state
change also writes an approval-history entry in the same transaction.

Usage::

    service = RequisitionService(session, config, clock=clock, event_sink=publisher)
    requisition = service.create(actor, RequisitionDetails(purpose="Laptop", urgency="high"))
"""

from __future__ import annotations

from collections.abc import Callable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_config.schema import WorkflowConfig
from asset_kernel.db.transaction import atomic
from asset_kernel.domain.actor import Actor, Role
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.exceptions import (
    CommentRequiredError,
    DepartmentNotFoundError,
    DepartmentScopeError,
    InvalidRequisitionInputError,
    MissingDepartmentError,
    NotRequesterError,
    RequisitionNotFoundError,
    UserNotFoundError,
)
from asset_kernel.logging_config import LogContext, get_logger
from asset_kernel.selectors.directory_selector import DirectorySelector
from asset_kernel.services.sequence_service import DocumentNumberAllocator
from asset_modules.requisitions.history import ApprovalHistoryLog
from asset_modules.requisitions.models import (
    ApprovalLevel,
    DecisionStatus,
    HistoryAction,
    Requisition,
    RequisitionDetails,
    RequisitionStatus,
    Urgency,
    WorkflowEvent,
    WorkflowEventType,
)
from asset_modules.requisitions.orm import RequisitionModel
from asset_modules.requisitions.workflows import (
    initial_route,
    require_transition_path,
)

logger = get_logger("modules.requisitions.service")

EventSink = Callable[[WorkflowEvent], None]

S = RequisitionStatus


def lock_requisition(session: Session, requisition_id: UUID) -> RequisitionModel:
    """Load a requisition with a row lock held until the transaction ends.

    Raises:
        RequisitionNotFoundError: no requisition with that id.
    """
    row = session.execute(
        select(RequisitionModel)
        .where(RequisitionModel.id == requisition_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if row is None:
        raise RequisitionNotFoundError(str(requisition_id))
    return row


def emit_event(sink: EventSink | None, event: WorkflowEvent) -> None:
    """Hand a committed event to the sink.  Sink failures never propagate."""
    if sink is None:
        return
    try:
        sink(event)
    except Exception:
        logger.warning(
            "workflow_event_sink_failed",
            extra={
                "event_type": event.event_type.value,
                "requisition_number": event.requisition.requisition_number,
            },
            exc_info=True,
        )


def _require_comment(comments: str | None, action: HistoryAction) -> str:
    if comments is None or not comments.strip():
        raise CommentRequiredError(action.value)
    return comments


class RequisitionService:
    """
    Requisition lifecycle operations.

    Transaction boundary: every public method commits on success and rolls
    back on failure.  Events are emitted only after the commit.
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

    # =========================================================================
    # Creation
    # =========================================================================

    def _validate_details(self, details: RequisitionDetails) -> tuple[str, Urgency, int]:
        purpose = details.purpose
        if not isinstance(purpose, str) or not purpose.strip():
            raise InvalidRequisitionInputError("purpose", "must not be blank")
        try:
            urgency = Urgency(details.urgency)
        except ValueError:
            raise InvalidRequisitionInputError(
                "urgency",
                "must be one of " + ", ".join(u.value for u in Urgency),
            ) from None
        quantity = details.quantity
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise InvalidRequisitionInputError("quantity", "must be an integer >= 1")
        return purpose.strip(), urgency, quantity

    def create(self, requester: Actor, details: RequisitionDetails) -> Requisition:
        """
        Raise a new requisition and route it by the requester's role.

        Department heads and coordinators skip the department level; IT
        heads skip both levels.  Each skipped level gets a synthetic
        ``approved`` history entry with the configured auto-approval comment.
        """
        operation = "requisition.create"
        with LogContext.bind(actor_id=str(requester.id), operation=operation):
            logger.info("requisition_create_started", extra={
                "requester_role": requester.role,
                "urgency": str(getattr(details.urgency, "value", details.urgency)),
            })

            with atomic(self._session, operation):
                purpose, urgency, quantity = self._validate_details(details)
                if requester.department_id is None:
                    raise MissingDepartmentError(str(requester.id))

                department = self._directory.get_department(requester.department_id)
                if department is None:
                    raise DepartmentNotFoundError(str(requester.department_id))
                if self._directory.get_user(requester.id) is None:
                    raise UserNotFoundError(str(requester.id))

                route = initial_route(requester.role)
                dept_head = self._directory.department_head_for(department.id)
                it_head = self._directory.it_head()
                now = self._clock.now()

                number = self._numbers.next_number(
                    self._config.numbering.requisition_prefix, now,
                )
                row = RequisitionModel(
                    requisition_number=number,
                    requested_by=requester.id,
                    requester_name=requester.display_name,
                    department_id=department.id,
                    department_name=department.name,
                    asset_category_id=details.asset_category_id,
                    product_type_id=details.product_type_id,
                    requested_product_id=details.requested_product_id,
                    quantity=quantity,
                    purpose=purpose,
                    justification=details.justification,
                    urgency=urgency.value,
                    required_by_date=details.required_by_date,
                    specifications=details.specifications,
                    status=route.status.value,
                    dept_head_id=dept_head.id if dept_head else None,
                    dept_head_name=dept_head.display_name if dept_head else None,
                    it_head_id=it_head.id if it_head else None,
                    it_head_name=it_head.display_name if it_head else None,
                    created_at=now,
                    updated_at=now,
                    created_by_id=requester.id,
                )
                self._session.add(row)
                self._session.flush()

                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.EMPLOYEE,
                    approver_id=requester.id,
                    approver_name=requester.display_name,
                    approver_role=requester.role,
                    action=HistoryAction.CREATED,
                    new_status=route.status,
                    timestamp=now,
                    comments=self._config.approvals.creation_comment,
                )

                approvals = self._config.approvals
                it_shortcut = route.bypasses(ApprovalLevel.IT_HEAD)
                auto_comment = (
                    approvals.it_head_auto_approval_comment
                    if it_shortcut
                    else approvals.dept_head_auto_approval_comment
                )
                if route.bypasses(ApprovalLevel.DEPT_HEAD):
                    self._record_auto_approval(row, "dept_head", requester, auto_comment, now)
                    self._history.record(
                        requisition_id=row.id,
                        level=ApprovalLevel.DEPT_HEAD,
                        approver_id=requester.id,
                        approver_name=requester.display_name,
                        approver_role=requester.role,
                        action=HistoryAction.APPROVED,
                        previous_status=S.PENDING_DEPT_HEAD,
                        new_status=S.PENDING_IT_HEAD,
                        timestamp=now,
                        comments=auto_comment,
                    )
                if it_shortcut:
                    self._record_auto_approval(row, "it_head", requester, auto_comment, now)
                    self._history.record(
                        requisition_id=row.id,
                        level=ApprovalLevel.IT_HEAD,
                        approver_id=requester.id,
                        approver_name=requester.display_name,
                        approver_role=requester.role,
                        action=HistoryAction.APPROVED,
                        previous_status=S.PENDING_IT_HEAD,
                        new_status=S.PENDING_ASSIGNMENT,
                        timestamp=now,
                        comments=auto_comment,
                    )
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_created", extra={
                "requisition_id": str(requisition.id),
                "requisition_number": requisition.requisition_number,
                "status": requisition.status.value,
                "auto_approved_levels": [lvl.value for lvl in route.auto_approved_levels],
            })

        if route.status is S.PENDING_ASSIGNMENT:
            event_type = WorkflowEventType.IT_HEAD_APPROVED
        elif route.status is S.PENDING_IT_HEAD:
            event_type = WorkflowEventType.DEPT_HEAD_APPROVED
        else:
            event_type = WorkflowEventType.REQUISITION_CREATED
        emit_event(self._event_sink, WorkflowEvent(
            event_type=event_type,
            requisition=requisition,
            actor_id=requester.id,
            actor_name=requester.display_name,
        ))
        return requisition

    def _record_decision(
        self,
        row: RequisitionModel,
        level: str,
        decider,
        decision: DecisionStatus,
        comments: str | None,
        when,
    ) -> None:
        """Overwrite the routed approver with the actual decider."""
        setattr(row, f"{level}_id", decider.id)
        setattr(row, f"{level}_name", decider.display_name)
        setattr(row, f"{level}_status", decision.value)
        setattr(row, f"{level}_comments", comments)
        setattr(row, f"{level}_decided_at", when)

    def _record_auto_approval(
        self,
        row: RequisitionModel,
        level: str,
        requester,
        comments: str,
        when,
    ) -> None:
        """Mark a level approved at creation, keeping the routed approver.

        The requester stands in only when no approver was routed; the
        history entry names the requester either way.
        """
        if getattr(row, f"{level}_id") is None:
            setattr(row, f"{level}_id", requester.id)
            setattr(row, f"{level}_name", requester.display_name)
        setattr(row, f"{level}_status", DecisionStatus.APPROVED.value)
        setattr(row, f"{level}_comments", comments)
        setattr(row, f"{level}_decided_at", when)

    def _require_department_scope(self, row: RequisitionModel, actor: Actor) -> None:
        if actor.department_id is None or actor.department_id != row.department_id:
            raise DepartmentScopeError(str(actor.id), row.ref)

    # =========================================================================
    # Department head decisions
    # =========================================================================

    def approve_at_dept_head(
        self,
        requisition_id: UUID,
        actor: Actor,
        comments: str | None = None,
    ) -> Requisition:
        """
        Approve at the department level and route to the IT head.

        When the requester's current directory role is ``it_head`` the IT
        level is auto-approved in the same transaction and the requisition
        lands in ``pending_assignment``.
        """
        operation = "requisition.approve_dept_head"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("requisition_dept_approval_started")

            with atomic(self._session, operation):
                row = lock_requisition(self._session, requisition_id)
                self._require_department_scope(row, actor)

                previous = S(row.status)
                requester = self._directory.get_user(row.requested_by)
                auto_it = requester is not None and requester.role == Role.IT_HEAD.value
                path = [S.APPROVED_BY_DEPT_HEAD, S.PENDING_IT_HEAD]
                if auto_it:
                    path += [S.APPROVED_BY_IT_HEAD, S.PENDING_ASSIGNMENT]
                require_transition_path(previous, *path, requisition_ref=row.ref)

                now = self._clock.now()
                self._record_decision(row, "dept_head", actor, DecisionStatus.APPROVED,
                                      comments, now)
                it_head = self._directory.it_head()
                row.it_head_id = it_head.id if it_head else None
                row.it_head_name = it_head.display_name if it_head else None

                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.DEPT_HEAD,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=actor.role,
                    action=HistoryAction.APPROVED,
                    previous_status=S.PENDING_DEPT_HEAD,
                    new_status=S.PENDING_IT_HEAD,
                    timestamp=now,
                    comments=comments,
                )

                if auto_it:
                    auto_comment = self._config.approvals.it_head_auto_approval_comment
                    self._record_decision(row, "it_head", requester, DecisionStatus.APPROVED,
                                          auto_comment, now)
                    self._history.record(
                        requisition_id=row.id,
                        level=ApprovalLevel.IT_HEAD,
                        approver_id=requester.id,
                        approver_name=requester.display_name,
                        approver_role=Role.IT_HEAD.value,
                        action=HistoryAction.APPROVED,
                        previous_status=S.PENDING_IT_HEAD,
                        new_status=S.PENDING_ASSIGNMENT,
                        timestamp=now,
                        comments=auto_comment,
                    )

                row.status = path[-1].value
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_dept_head_approved", extra={
                "requisition_number": requisition.requisition_number,
                "status": requisition.status.value,
                "it_level_auto_approved": auto_it,
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=(
                WorkflowEventType.IT_HEAD_APPROVED if auto_it
                else WorkflowEventType.DEPT_HEAD_APPROVED
            ),
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=comments,
        ))
        return requisition

    def reject_at_dept_head(
        self,
        requisition_id: UUID,
        actor: Actor,
        comments: str | None,
    ) -> Requisition:
        """Reject at the department level.  A comment is required."""
        operation = "requisition.reject_dept_head"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("requisition_dept_rejection_started")

            with atomic(self._session, operation):
                comments = _require_comment(comments, HistoryAction.REJECTED)
                row = lock_requisition(self._session, requisition_id)
                self._require_department_scope(row, actor)
                previous = S(row.status)
                require_transition_path(
                    previous, S.REJECTED_BY_DEPT_HEAD, requisition_ref=row.ref,
                )

                now = self._clock.now()
                self._record_decision(row, "dept_head", actor, DecisionStatus.REJECTED,
                                      comments, now)
                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.DEPT_HEAD,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=actor.role,
                    action=HistoryAction.REJECTED,
                    previous_status=previous,
                    new_status=S.REJECTED_BY_DEPT_HEAD,
                    timestamp=now,
                    comments=comments,
                )
                row.status = S.REJECTED_BY_DEPT_HEAD.value
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_dept_head_rejected", extra={
                "requisition_number": requisition.requisition_number,
                "status": requisition.status.value,
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=WorkflowEventType.DEPT_HEAD_REJECTED,
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=comments,
        ))
        return requisition

    # =========================================================================
    # IT head decisions
    # =========================================================================

    def approve_at_it_head(
        self,
        requisition_id: UUID,
        actor: Actor,
        comments: str | None = None,
    ) -> Requisition:
        """Approve at the IT level and release the requisition for assignment.

        No organisational scope check applies at this level.
        """
        operation = "requisition.approve_it_head"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("requisition_it_approval_started")

            with atomic(self._session, operation):
                row = lock_requisition(self._session, requisition_id)
                previous = S(row.status)
                require_transition_path(
                    previous, S.APPROVED_BY_IT_HEAD, S.PENDING_ASSIGNMENT,
                    requisition_ref=row.ref,
                )

                now = self._clock.now()
                self._record_decision(row, "it_head", actor, DecisionStatus.APPROVED,
                                      comments, now)
                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.IT_HEAD,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=actor.role,
                    action=HistoryAction.APPROVED,
                    previous_status=previous,
                    new_status=S.PENDING_ASSIGNMENT,
                    timestamp=now,
                    comments=comments,
                )
                row.status = S.PENDING_ASSIGNMENT.value
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_it_head_approved", extra={
                "requisition_number": requisition.requisition_number,
                "status": requisition.status.value,
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=WorkflowEventType.IT_HEAD_APPROVED,
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=comments,
        ))
        return requisition

    def reject_at_it_head(
        self,
        requisition_id: UUID,
        actor: Actor,
        comments: str | None,
    ) -> Requisition:
        """Reject at the IT level.  A comment is required."""
        operation = "requisition.reject_it_head"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("requisition_it_rejection_started")

            with atomic(self._session, operation):
                comments = _require_comment(comments, HistoryAction.REJECTED)
                row = lock_requisition(self._session, requisition_id)
                previous = S(row.status)
                require_transition_path(
                    previous, S.REJECTED_BY_IT_HEAD, requisition_ref=row.ref,
                )

                now = self._clock.now()
                self._record_decision(row, "it_head", actor, DecisionStatus.REJECTED,
                                      comments, now)
                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.IT_HEAD,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=actor.role,
                    action=HistoryAction.REJECTED,
                    previous_status=previous,
                    new_status=S.REJECTED_BY_IT_HEAD,
                    timestamp=now,
                    comments=comments,
                )
                row.status = S.REJECTED_BY_IT_HEAD.value
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_it_head_rejected", extra={
                "requisition_number": requisition.requisition_number,
                "status": requisition.status.value,
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=WorkflowEventType.IT_HEAD_REJECTED,
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=comments,
        ))
        return requisition

    # =========================================================================
    # Cancellation
    # =========================================================================

    def cancel(self, requisition_id: UUID, actor: Actor, reason: str | None) -> Requisition:
        """Withdraw a requisition.  Only the requester may cancel, with a reason."""
        operation = "requisition.cancel"
        with LogContext.bind(
            requisition_id=str(requisition_id), actor_id=str(actor.id), operation=operation,
        ):
            logger.info("requisition_cancel_started")

            with atomic(self._session, operation):
                reason = _require_comment(reason, HistoryAction.CANCELLED)
                row = lock_requisition(self._session, requisition_id)
                if row.requested_by != actor.id:
                    raise NotRequesterError(str(actor.id), row.ref)
                previous = S(row.status)
                require_transition_path(previous, S.CANCELLED, requisition_ref=row.ref)

                now = self._clock.now()
                self._history.record(
                    requisition_id=row.id,
                    level=ApprovalLevel.EMPLOYEE,
                    approver_id=actor.id,
                    approver_name=actor.display_name,
                    approver_role=actor.role,
                    action=HistoryAction.CANCELLED,
                    previous_status=previous,
                    new_status=S.CANCELLED,
                    timestamp=now,
                    comments=reason,
                )
                row.status = S.CANCELLED.value
                row.cancellation_reason = reason
                row.cancelled_at = now
                row.updated_at = now
                row.updated_by_id = actor.id
                self._session.flush()
                requisition = row.to_dto()

            logger.info("requisition_cancelled", extra={
                "requisition_number": requisition.requisition_number,
                "previous_status": previous.value,
            })

        emit_event(self._event_sink, WorkflowEvent(
            event_type=WorkflowEventType.REQUISITION_CANCELLED,
            requisition=requisition,
            actor_id=actor.id,
            actor_name=actor.display_name,
            previous_status=previous,
            comments=reason,
        ))
        return requisition
