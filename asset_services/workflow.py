"""
RequisitionWorkflow -- the host-facing facade.

Responsibility:
    Binds the module services, selectors and notification publisher to a
    session factory so that a host (HTTP or RPC layer) calls one object.
    Each call opens its own session, runs exactly one transaction, and
    closes the session.

Architecture position:
    Services -- orchestration over modules + kernel.  Modules and the kernel
    never import from here.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from asset_config.schema import WorkflowConfig
from asset_kernel.domain.actor import Actor
from asset_kernel.domain.clock import Clock, SystemClock
from asset_kernel.logging_config import LogContext, get_logger
from asset_modules.assignments.models import AssetMovement, AssignmentResult, DeliveryTicket
from asset_modules.assignments.selectors import AssignmentSelector
from asset_modules.assignments.service import AssignmentService
from asset_modules.requisitions.models import (
    Requisition,
    RequisitionDetail,
    RequisitionDetails,
)
from asset_modules.requisitions.selectors import (
    Page,
    PageRequest,
    RequisitionFilter,
    RequisitionSelector,
)
from asset_modules.requisitions.service import RequisitionService
from asset_services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationPublisher,
)

logger = get_logger("services.workflow")


class RequisitionWorkflow:
    """One entry point for every requisition operation and query."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: WorkflowConfig,
        clock: Clock | None = None,
        dispatcher: NotificationDispatcher | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._dispatcher = dispatcher or LoggingNotificationDispatcher()
        self._publisher = NotificationPublisher(
            session_factory,
            self._dispatcher,
            enabled=config.notifications.enabled,
        )

    @property
    def dispatcher(self) -> NotificationDispatcher:
        return self._dispatcher

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            with LogContext.bind(correlation_id=str(uuid4())):
                logger.debug("workflow_session_opened")
                yield session
        finally:
            session.close()

    def _requisitions(self, session: Session) -> RequisitionService:
        return RequisitionService(
            session, self._config, clock=self._clock, event_sink=self._publisher,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_requisition(self, requester: Actor, details: RequisitionDetails) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).create(requester, details)

    def approve_at_dept_head(
        self, requisition_id: UUID, actor: Actor, comments: str | None = None,
    ) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).approve_at_dept_head(
                requisition_id, actor, comments,
            )

    def reject_at_dept_head(
        self, requisition_id: UUID, actor: Actor, comments: str | None,
    ) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).reject_at_dept_head(
                requisition_id, actor, comments,
            )

    def approve_at_it_head(
        self, requisition_id: UUID, actor: Actor, comments: str | None = None,
    ) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).approve_at_it_head(
                requisition_id, actor, comments,
            )

    def reject_at_it_head(
        self, requisition_id: UUID, actor: Actor, comments: str | None,
    ) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).reject_at_it_head(
                requisition_id, actor, comments,
            )

    def cancel(self, requisition_id: UUID, actor: Actor, reason: str | None) -> Requisition:
        with self._session() as session:
            return self._requisitions(session).cancel(requisition_id, actor, reason)

    def assign_asset(
        self,
        requisition_id: UUID,
        asset_id: UUID,
        engineer_id: UUID,
        scheduled_date: date,
        notes: str | None,
        actor: Actor,
    ) -> AssignmentResult:
        with self._session() as session:
            service = AssignmentService(
                session, self._config, clock=self._clock, event_sink=self._publisher,
            )
            return service.assign_asset(
                requisition_id, asset_id, engineer_id, scheduled_date, notes, actor,
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, requisition_id: UUID) -> RequisitionDetail:
        with self._session() as session:
            return RequisitionSelector(session).get(requisition_id)

    def get_by_number(self, requisition_number: str) -> RequisitionDetail:
        with self._session() as session:
            return RequisitionSelector(session).get_by_number(requisition_number)

    def my_requisitions(
        self,
        actor: Actor,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        with self._session() as session:
            return RequisitionSelector(session).list_for_requester(actor.id, filters, page)

    def list_visible_to(
        self,
        actor: Actor,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        with self._session() as session:
            return RequisitionSelector(session).list_visible_to(actor, filters, page)

    def pending_dept_approvals(
        self,
        actor: Actor,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        with self._session() as session:
            return RequisitionSelector(session).pending_dept_approvals(actor, filters, page)

    def pending_it_approvals(
        self,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        with self._session() as session:
            return RequisitionSelector(session).pending_it_approvals(filters, page)

    def pending_assignments(
        self,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        with self._session() as session:
            return RequisitionSelector(session).pending_assignments(filters, page)

    def delivery_ticket(self, ticket_number: str) -> DeliveryTicket | None:
        with self._session() as session:
            return AssignmentSelector(session).ticket_by_number(ticket_number)

    def asset_movements(self, asset_id: UUID) -> list[AssetMovement]:
        with self._session() as session:
            return AssignmentSelector(session).movements_for_asset(asset_id)
