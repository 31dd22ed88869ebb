"""
Module: asset_kernel.selectors.directory_selector
Responsibility: Read-only lookups into the organisational directory:
    users, departments, locations, assets, and approver resolution.
Architecture position: Kernel > Selectors.

Approver resolution rules:
    - Department head: the first active user with role ``department_head``
      in the department, by creation order.  When none exists, the
      department's contact person, provided that user is active.
    - IT head: the first active user with role ``it_head``, by creation order.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from asset_kernel.domain.actor import Role
from asset_kernel.domain.directory import (
    AssetRef,
    DepartmentRef,
    LocationRef,
    UserRef,
)
from asset_kernel.models.directory import Asset, Department, Location, User
from asset_kernel.selectors.base import BaseSelector


def user_ref(user: User) -> UserRef:
    return UserRef(
        id=user.id,
        display_name=user.display_name,
        email=user.email,
        role=user.role,
        department_id=user.department_id,
        location_id=user.location_id,
        is_active=user.is_active,
    )


def asset_ref(asset: Asset) -> AssetRef:
    return AssetRef(
        id=asset.id,
        asset_tag=asset.asset_tag,
        product_name=asset.product_name,
        status=asset.status,
        assigned_to=asset.assigned_to,
        location_id=asset.location_id,
    )


class DirectorySelector(BaseSelector):
    """Directory queries used for routing, snapshots and notifications."""

    def get_user(self, user_id: UUID) -> UserRef | None:
        user = self.session.get(User, user_id, populate_existing=True)
        return user_ref(user) if user is not None else None

    def get_department(self, department_id: UUID) -> DepartmentRef | None:
        dept = self.session.get(Department, department_id, populate_existing=True)
        if dept is None:
            return None
        return DepartmentRef(
            id=dept.id, name=dept.name, contact_person_id=dept.contact_person_id,
        )

    def get_location(self, location_id: UUID) -> LocationRef | None:
        loc = self.session.get(Location, location_id, populate_existing=True)
        return LocationRef(id=loc.id, name=loc.name) if loc is not None else None

    def get_asset(self, asset_id: UUID) -> AssetRef | None:
        asset = self.session.get(Asset, asset_id, populate_existing=True)
        return asset_ref(asset) if asset is not None else None

    def active_users_with_role(
        self,
        role: Role | str,
        department_id: UUID | None = None,
    ) -> list[UserRef]:
        """Active users holding ``role``, oldest first."""
        role_value = role.value if isinstance(role, Role) else role
        stmt = (
            select(User)
            .where(User.role == role_value, User.is_active.is_(True))
            .order_by(User.created_at, User.id)
            .execution_options(populate_existing=True)
        )
        if department_id is not None:
            stmt = stmt.where(User.department_id == department_id)
        return [user_ref(u) for u in self.session.scalars(stmt)]

    def department_head_for(self, department_id: UUID) -> UserRef | None:
        heads = self.active_users_with_role(Role.DEPARTMENT_HEAD, department_id)
        if heads:
            return heads[0]

        dept = self.session.get(Department, department_id, populate_existing=True)
        if dept is None or dept.contact_person_id is None:
            return None
        contact = self.get_user(dept.contact_person_id)
        if contact is None or not contact.is_active:
            return None
        return contact

    def it_head(self) -> UserRef | None:
        heads = self.active_users_with_role(Role.IT_HEAD)
        return heads[0] if heads else None
