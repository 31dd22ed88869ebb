"""
Actor and role value objects (``asset_kernel.domain.actor``).

Responsibility
--------------
The identity an already-authenticated host hands to every workflow
operation, and the closed set of directory roles the workflow branches on.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``Actor`` is frozen; the display name is captured once per request and is
  what gets snapshotted onto requisitions and history entries.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    """Directory roles the workflow recognises."""

    EMPLOYEE = "employee"
    DEPARTMENT_HEAD = "department_head"
    DEPARTMENT_COORDINATOR = "department_coordinator"
    COORDINATOR = "coordinator"
    IT_HEAD = "it_head"
    ENGINEER = "engineer"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


# Roles whose requisition listings are limited to their own department.
DEPARTMENT_SCOPED_ROLES: frozenset[str] = frozenset({
    Role.DEPARTMENT_HEAD.value,
    Role.DEPARTMENT_COORDINATOR.value,
})


@dataclass(frozen=True)
class Actor:
    """An authenticated user acting on the workflow.

    Contract: supplied by the host; ``role`` is the directory role string.
    """

    id: UUID
    role: str
    display_name: str
    department_id: UUID | None = None

    def has_role(self, *roles: Role | str) -> bool:
        wanted = {r.value if isinstance(r, Role) else r for r in roles}
        return self.role in wanted
