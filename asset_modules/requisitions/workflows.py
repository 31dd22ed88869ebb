"""
Requisition Workflow.

The static status transition table, the role-dependent initial route, and
display metadata for requisition statuses.

Approvals pass through the transient ``approved_by_*`` states: a department
head approval is the two-hop move
``pending_dept_head -> approved_by_dept_head -> pending_it_head``, and every
hop is checked against the table before anything is written.
"""

from __future__ import annotations

from dataclasses import dataclass

from asset_kernel.domain.actor import Role
from asset_kernel.domain.workflow import Guard, Transition, Workflow
from asset_kernel.exceptions import InvalidTransitionError
from asset_modules.requisitions.models import (
    TERMINAL_STATUSES,
    ApprovalLevel,
    RequisitionStatus,
    Urgency,
)

S = RequisitionStatus


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

# Labels only: the service checks each condition before asking the table
# whether the move is legal.
SAME_DEPARTMENT = Guard(
    name="same_department",
    description="Approver belongs to the requisition's department",
)

IS_REQUESTER = Guard(
    name="is_requester",
    description="Actor is the user who raised the requisition",
)

ASSET_AVAILABLE = Guard(
    name="asset_available",
    description="Selected asset is in the available status",
)


# -----------------------------------------------------------------------------
# Transition table
# -----------------------------------------------------------------------------

_TRANSITIONS: tuple[Transition, ...] = (
    Transition(S.PENDING_DEPT_HEAD.value, S.APPROVED_BY_DEPT_HEAD.value,
               action="dept_head_approve", guard=SAME_DEPARTMENT),
    Transition(S.PENDING_DEPT_HEAD.value, S.REJECTED_BY_DEPT_HEAD.value,
               action="dept_head_reject", guard=SAME_DEPARTMENT),
    Transition(S.PENDING_DEPT_HEAD.value, S.CANCELLED.value,
               action="cancel", guard=IS_REQUESTER),
    Transition(S.APPROVED_BY_DEPT_HEAD.value, S.PENDING_IT_HEAD.value,
               action="route_to_it_head"),
    Transition(S.APPROVED_BY_DEPT_HEAD.value, S.CANCELLED.value,
               action="cancel", guard=IS_REQUESTER),
    Transition(S.PENDING_IT_HEAD.value, S.APPROVED_BY_IT_HEAD.value,
               action="it_head_approve"),
    Transition(S.PENDING_IT_HEAD.value, S.REJECTED_BY_IT_HEAD.value,
               action="it_head_reject"),
    Transition(S.PENDING_IT_HEAD.value, S.CANCELLED.value,
               action="cancel", guard=IS_REQUESTER),
    Transition(S.APPROVED_BY_IT_HEAD.value, S.PENDING_ASSIGNMENT.value,
               action="route_to_assignment"),
    Transition(S.PENDING_ASSIGNMENT.value, S.ASSIGNED.value,
               action="assign_asset", guard=ASSET_AVAILABLE),
    Transition(S.PENDING_ASSIGNMENT.value, S.CANCELLED.value,
               action="cancel", guard=IS_REQUESTER),
    Transition(S.ASSIGNED.value, S.DELIVERED.value, action="confirm_delivery"),
    Transition(S.DELIVERED.value, S.COMPLETED.value, action="complete"),
)

REQUISITION_WORKFLOW = Workflow(
    name="asset_requisition",
    description="Employee asset request through approvals to assignment",
    initial_state=S.PENDING_DEPT_HEAD.value,
    states=tuple(s.value for s in RequisitionStatus),
    transitions=_TRANSITIONS,
    terminal_states=tuple(s.value for s in TERMINAL_STATUSES),
)


def _value(status: RequisitionStatus | str) -> str:
    return status.value if isinstance(status, RequisitionStatus) else status


def is_valid_transition(
    current: RequisitionStatus | str,
    target: RequisitionStatus | str,
) -> bool:
    """True if ``current -> target`` is in the transition table."""
    return REQUISITION_WORKFLOW.allows(_value(current), _value(target))


def allowed_targets(current: RequisitionStatus | str) -> frozenset[RequisitionStatus]:
    return frozenset(
        RequisitionStatus(v) for v in REQUISITION_WORKFLOW.targets_from(_value(current))
    )


def require_transition_path(
    current: RequisitionStatus | str,
    *path: RequisitionStatus | str,
    requisition_ref: str = "",
) -> None:
    """Check every hop of ``current -> path[0] -> path[1] ...``.

    Raises:
        InvalidTransitionError: on the first hop not in the table.  The
            error names the requisition's actual status and the first
            target of the path.
    """
    if not path:
        raise ValueError("path must contain at least one target status")
    state = _value(current)
    for target in path:
        if not REQUISITION_WORKFLOW.allows(state, _value(target)):
            raise InvalidTransitionError(
                requisition_ref, _value(current), _value(path[0]),
            )
        state = _value(target)


# -----------------------------------------------------------------------------
# Initial routing
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class InitialRoute:
    """Where a new requisition starts and which levels were bypassed."""
    status: RequisitionStatus
    auto_approved_levels: tuple[ApprovalLevel, ...] = ()

    def bypasses(self, level: ApprovalLevel) -> bool:
        return level in self.auto_approved_levels


_DEPT_LEVEL_ROLES = frozenset({
    Role.DEPARTMENT_HEAD.value,
    Role.DEPARTMENT_COORDINATOR.value,
    Role.COORDINATOR.value,
})


def initial_route(requester_role: Role | str | None) -> InitialRoute:
    """Starting status for a requisition raised by ``requester_role``.

    * ``it_head`` skips both approval levels.
    * Department heads and coordinators skip the department level.
    * Everyone else starts at the department head.
    """
    role = requester_role.value if isinstance(requester_role, Role) else requester_role
    if role == Role.IT_HEAD.value:
        return InitialRoute(
            status=S.PENDING_ASSIGNMENT,
            auto_approved_levels=(ApprovalLevel.DEPT_HEAD, ApprovalLevel.IT_HEAD),
        )
    if role in _DEPT_LEVEL_ROLES:
        return InitialRoute(
            status=S.PENDING_IT_HEAD,
            auto_approved_levels=(ApprovalLevel.DEPT_HEAD,),
        )
    return InitialRoute(status=S.PENDING_DEPT_HEAD)


# -----------------------------------------------------------------------------
# Display metadata
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class StatusLabel:
    label: str
    stage: int  # negative for exits from the main path


STATUS_LABELS: dict[RequisitionStatus, StatusLabel] = {
    S.PENDING_DEPT_HEAD: StatusLabel("Pending Department Head", 1),
    S.APPROVED_BY_DEPT_HEAD: StatusLabel("Approved by Department Head", 2),
    S.REJECTED_BY_DEPT_HEAD: StatusLabel("Rejected by Department Head", -1),
    S.PENDING_IT_HEAD: StatusLabel("Pending IT Head", 3),
    S.APPROVED_BY_IT_HEAD: StatusLabel("Approved by IT Head", 4),
    S.REJECTED_BY_IT_HEAD: StatusLabel("Rejected by IT Head", -2),
    S.PENDING_ASSIGNMENT: StatusLabel("Pending Asset Assignment", 5),
    S.ASSIGNED: StatusLabel("Asset Assigned", 6),
    S.DELIVERED: StatusLabel("Delivered", 7),
    S.COMPLETED: StatusLabel("Completed", 8),
    S.CANCELLED: StatusLabel("Cancelled", -3),
}

# Lower sorts first in approval and assignment queues.
URGENCY_PRIORITY: dict[Urgency, int] = {
    Urgency.CRITICAL: 1,
    Urgency.HIGH: 2,
    Urgency.MEDIUM: 3,
    Urgency.LOW: 4,
}

