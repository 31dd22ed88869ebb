"""
Pure domain layer.

Value objects with NO dependencies on the ORM, the database or I/O.
"""

from asset_kernel.domain.actor import DEPARTMENT_SCOPED_ROLES, Actor, Role
from asset_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from asset_kernel.domain.directory import (
    AssetRef,
    DepartmentRef,
    LocationRef,
    UserRef,
)
from asset_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Actor",
    "AssetRef",
    "Clock",
    "DEPARTMENT_SCOPED_ROLES",
    "DepartmentRef",
    "DeterministicClock",
    "Guard",
    "LocationRef",
    "Role",
    "SystemClock",
    "Transition",
    "UserRef",
    "Workflow",
]
