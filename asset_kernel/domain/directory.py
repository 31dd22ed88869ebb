"""
Directory value objects (``asset_kernel.domain.directory``).

Read-only snapshots of users, departments, locations and assets as the
workflow sees them.  Produced by ``DirectorySelector``; never persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class UserRef:
    id: UUID
    display_name: str
    email: str
    role: str
    department_id: UUID | None
    location_id: UUID | None
    is_active: bool


@dataclass(frozen=True)
class DepartmentRef:
    id: UUID
    name: str
    contact_person_id: UUID | None


@dataclass(frozen=True)
class LocationRef:
    id: UUID
    name: str


@dataclass(frozen=True)
class AssetRef:
    id: UUID
    asset_tag: str
    product_name: str | None
    status: str
    assigned_to: UUID | None
    location_id: UUID | None
