"""
Workflow notifications (``asset_services.notifications``).

Responsibility:
    Turns committed workflow events into notifications addressed to the
    right people and hands them to a ``NotificationDispatcher``.  Delivery
    (email, in-app inbox, chat) belongs to the dispatcher.

Recipients per event:
    requisition_created    department head
    dept_head_approved     requester; every active IT head
    dept_head_rejected     requester
    it_head_approved       requester; every active coordinator
    it_head_rejected       requester; department head
    asset_assigned         requester; engineer
    requisition_cancelled  whoever had it in their queue: the department
                           head (pending_dept_head), the IT head
                           (pending_it_head) or the coordinators
                           (pending_assignment)

Invariants enforced:
    - Best-effort: any failure while resolving recipients or dispatching is
      wrapped in ``NotificationError``, logged at WARNING and swallowed.  A
      notification problem never fails the workflow operation.
    - Publishing happens only after the workflow transaction committed; the
      publisher reads the directory in its own short-lived session.
    - Publishing is synchronous in the calling thread.  The operation has
      released its row locks by then, but it returns only once dispatch
      returns; on SQLite the directory read can also wait on a concurrent
      writer for up to the busy timeout.  Dispatchers that talk to slow
      channels should enqueue and return.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from asset_kernel.domain.actor import Role
from asset_kernel.domain.directory import UserRef
from asset_kernel.exceptions import NotificationError
from asset_kernel.logging_config import get_logger
from asset_kernel.selectors.directory_selector import DirectorySelector
from asset_modules.requisitions.models import (
    Requisition,
    RequisitionStatus,
    Urgency,
    WorkflowEvent,
    WorkflowEventType,
)

logger = get_logger("services.notifications")


class NotificationType(Enum):
    REQUISITION_CREATED = "requisition_created"
    DEPT_HEAD_APPROVED = "dept_head_approved"
    DEPT_HEAD_REJECTED = "dept_head_rejected"
    IT_HEAD_APPROVED = "it_head_approved"
    IT_HEAD_REJECTED = "it_head_rejected"
    ASSET_ASSIGNED = "asset_assigned"
    REQUISITION_CANCELLED = "requisition_cancelled"


class NotificationPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class Recipient:
    user_id: UUID
    name: str
    email: str | None = None

    @classmethod
    def from_user(cls, user: UserRef) -> Recipient:
        return cls(user_id=user.id, name=user.display_name, email=user.email)


@dataclass(frozen=True)
class WorkflowNotification:
    """One message addressed to one audience."""
    notification_type: NotificationType
    requisition_id: UUID
    requisition_number: str
    recipients: tuple[Recipient, ...]
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    details: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(ABC):
    """
    Outbound delivery channel.

    ``dispatch`` runs in the thread of the workflow call that produced the
    event and delays its return.  Implementations backed by a network
    channel should hand the notification to a queue or worker and return.
    """

    @abstractmethod
    def dispatch(self, notification: WorkflowNotification) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes each notification to the structured log."""

    def dispatch(self, notification: WorkflowNotification) -> None:
        logger.info("notification_dispatched", extra={
            "notification_type": notification.notification_type.value,
            "requisition_number": notification.requisition_number,
            "recipient_ids": [str(r.user_id) for r in notification.recipients],
            "title": notification.title,
            "priority": notification.priority.value,
        })


class InMemoryNotificationDispatcher(NotificationDispatcher):
    """Keeps notifications in memory for hosts that poll, and for tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sent: list[WorkflowNotification] = []

    def dispatch(self, notification: WorkflowNotification) -> None:
        with self._lock:
            self._sent.append(notification)

    @property
    def sent(self) -> tuple[WorkflowNotification, ...]:
        with self._lock:
            return tuple(self._sent)

    def of_type(self, notification_type: NotificationType) -> list[WorkflowNotification]:
        return [n for n in self.sent if n.notification_type is notification_type]

    def recipients_of(self, notification_type: NotificationType) -> set[UUID]:
        return {
            r.user_id
            for n in self.of_type(notification_type)
            for r in n.recipients
        }

    def clear(self) -> None:
        with self._lock:
            self._sent.clear()


def _urgent_priority(requisition: Requisition) -> NotificationPriority:
    if requisition.urgency in (Urgency.CRITICAL, Urgency.HIGH):
        return NotificationPriority.HIGH
    return NotificationPriority.MEDIUM


class NotificationPublisher:
    """
    Event sink for the module services.

    Called with each committed ``WorkflowEvent``; resolves recipients from
    the directory and dispatches one notification per audience.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        dispatcher: NotificationDispatcher,
        enabled: bool = True,
    ):
        self._session_factory = session_factory
        self._dispatcher = dispatcher
        self._enabled = enabled
        self._builders = {
            WorkflowEventType.REQUISITION_CREATED: self._requisition_created,
            WorkflowEventType.DEPT_HEAD_APPROVED: self._dept_head_approved,
            WorkflowEventType.DEPT_HEAD_REJECTED: self._dept_head_rejected,
            WorkflowEventType.IT_HEAD_APPROVED: self._it_head_approved,
            WorkflowEventType.IT_HEAD_REJECTED: self._it_head_rejected,
            WorkflowEventType.ASSET_ASSIGNED: self._asset_assigned,
            WorkflowEventType.REQUISITION_CANCELLED: self._requisition_cancelled,
        }

    def __call__(self, event: WorkflowEvent) -> None:
        self.publish(event)

    def publish(self, event: WorkflowEvent) -> int:
        """Dispatch notifications for ``event``.  Returns how many were sent."""
        if not self._enabled:
            return 0
        requisition = event.requisition
        try:
            session = self._session_factory()
            try:
                directory = DirectorySelector(session)
                notifications = self._builders[event.event_type](event, directory)
            finally:
                session.close()
            sent = 0
            for notification in notifications:
                if not notification.recipients:
                    continue
                self._dispatcher.dispatch(notification)
                sent += 1
            return sent
        except Exception as exc:
            error = NotificationError(
                event.event_type.value, requisition.requisition_number, str(exc),
            )
            logger.warning(
                "notification_failed",
                extra={
                    "error_code": error.code,
                    "notification_type": error.notification_type,
                    "requisition_number": error.requisition_ref,
                    "reason": error.reason,
                },
                exc_info=True,
            )
            return 0

    # ------------------------------------------------------------------
    # Builders
    # ------------------------------------------------------------------

    def _note(
        self,
        ntype: NotificationType,
        requisition: Requisition,
        recipients,
        title: str,
        message: str,
        priority: NotificationPriority,
        **details: Any,
    ) -> WorkflowNotification:
        unique: dict[UUID, Recipient] = {}
        for user in recipients:
            if user is not None:
                unique.setdefault(user.id, Recipient.from_user(user))
        return WorkflowNotification(
            notification_type=ntype,
            requisition_id=requisition.id,
            requisition_number=requisition.requisition_number,
            recipients=tuple(unique.values()),
            title=title,
            message=message,
            priority=priority,
            details={
                "requester_name": requisition.requester_name,
                "department_name": requisition.department_name,
                "urgency": requisition.urgency.value,
                "status": requisition.status.value,
                **details,
            },
        )

    @staticmethod
    def _user(directory: DirectorySelector, user_id: UUID | None) -> UserRef | None:
        return directory.get_user(user_id) if user_id is not None else None

    def _requisition_created(self, event, directory):
        req = event.requisition
        return [self._note(
            NotificationType.REQUISITION_CREATED, req,
            [self._user(directory, req.dept_head_id)],
            f"New Requisition: {req.requisition_number}",
            f"{req.requester_name} from {req.department_name} has submitted a new "
            "asset requisition requiring your approval.",
            _urgent_priority(req),
            purpose=req.purpose,
        )]

    def _dept_head_approved(self, event, directory):
        req = event.requisition
        ntype = NotificationType.DEPT_HEAD_APPROVED
        return [
            self._note(
                ntype, req, [self._user(directory, req.requested_by)],
                f"Requisition Approved: {req.requisition_number}",
                f"Your requisition has been approved by {event.actor_name} "
                "(Department Head). It is now pending IT Head approval.",
                NotificationPriority.MEDIUM,
            ),
            self._note(
                ntype, req, directory.active_users_with_role(Role.IT_HEAD),
                f"Requisition Pending: {req.requisition_number}",
                f"A requisition from {req.requester_name} ({req.department_name}) "
                "requires your approval. Already approved by Department Head.",
                _urgent_priority(req),
            ),
        ]

    def _dept_head_rejected(self, event, directory):
        req = event.requisition
        return [self._note(
            NotificationType.DEPT_HEAD_REJECTED, req,
            [self._user(directory, req.requested_by)],
            f"Requisition Rejected: {req.requisition_number}",
            f"Your requisition has been rejected by {event.actor_name} "
            f"(Department Head). Reason: {event.comments}",
            NotificationPriority.HIGH,
        )]

    def _it_head_approved(self, event, directory):
        req = event.requisition
        ntype = NotificationType.IT_HEAD_APPROVED
        return [
            self._note(
                ntype, req, [self._user(directory, req.requested_by)],
                f"Requisition Fully Approved: {req.requisition_number}",
                "Your requisition has been approved by IT Head. "
                "Asset assignment is now in progress.",
                NotificationPriority.MEDIUM,
            ),
            self._note(
                ntype, req, directory.active_users_with_role(Role.COORDINATOR),
                f"Requisition Ready for Assignment: {req.requisition_number}",
                f"Requisition from {req.requester_name} ({req.department_name}) "
                "is approved and ready for asset assignment.",
                _urgent_priority(req),
            ),
        ]

    def _it_head_rejected(self, event, directory):
        req = event.requisition
        ntype = NotificationType.IT_HEAD_REJECTED
        return [
            self._note(
                ntype, req, [self._user(directory, req.requested_by)],
                f"Requisition Rejected: {req.requisition_number}",
                f"Your requisition has been rejected by IT Head "
                f"({event.actor_name}). Reason: {event.comments}",
                NotificationPriority.HIGH,
            ),
            self._note(
                ntype, req, [self._user(directory, req.dept_head_id)],
                f"Requisition Rejected by IT: {req.requisition_number}",
                f"A requisition you approved from {req.requester_name} has been "
                f"rejected by IT Head. Reason: {event.comments}",
                NotificationPriority.MEDIUM,
            ),
        ]

    def _asset_assigned(self, event, directory):
        req = event.requisition
        details = event.details
        scheduled = details.get("installation_scheduled_date")
        schedule_info = f"Scheduled installation: {scheduled}." if scheduled else ""
        ntype = NotificationType.ASSET_ASSIGNED
        return [
            self._note(
                ntype, req, [self._user(directory, req.requested_by)],
                f"Asset Assigned: {req.requisition_number}",
                f"An asset ({details.get('asset_tag')}) has been assigned to your "
                f"requisition. Engineer {details.get('engineer_name')} will handle "
                f"the delivery and installation. {schedule_info}".strip(),
                NotificationPriority.HIGH,
                **details,
            ),
            self._note(
                ntype, req, [self._user(directory, details.get("engineer_id"))],
                f"Delivery Assignment: {req.requisition_number}",
                f"You have been assigned to deliver and install asset "
                f"{details.get('asset_tag')} for {req.requester_name} "
                f"({req.department_name}). {schedule_info}".strip(),
                NotificationPriority.HIGH,
                **details,
            ),
        ]

    def _requisition_cancelled(self, event, directory):
        req = event.requisition
        previous = event.previous_status
        if previous is RequisitionStatus.PENDING_DEPT_HEAD:
            recipients = [self._user(directory, req.dept_head_id)]
        elif previous is RequisitionStatus.PENDING_IT_HEAD:
            recipients = [self._user(directory, req.it_head_id)]
        elif previous is RequisitionStatus.PENDING_ASSIGNMENT:
            recipients = directory.active_users_with_role(Role.COORDINATOR)
        else:
            recipients = []
        return [self._note(
            NotificationType.REQUISITION_CANCELLED, req, recipients,
            f"Requisition Cancelled: {req.requisition_number}",
            f"Requisition from {req.requester_name} ({req.department_name}) has "
            f"been cancelled. Reason: {event.comments}",
            NotificationPriority.LOW,
            cancelled_by=event.actor_name,
        )]
