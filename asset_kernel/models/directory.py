"""
Module: asset_kernel.models.directory
Responsibility: ORM persistence for the organisational directory the workflow
    consults: users, departments, locations and the asset register.
Architecture position: Kernel > Models.  May import from db/base.py only.

These tables are owned by external collaborators (user administration and
asset cataloguing).  The workflow reads them and writes exactly two columns:
``assets.status`` and ``assets.assigned_to``, during assignment.

Failure modes:
    - IntegrityError on duplicate email or asset tag.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from asset_kernel.db.base import Base
from asset_kernel.db.types import UUIDString


class Department(Base):
    """Organisational unit.  ``contact_person_id`` is the fallback approver."""

    __tablename__ = "departments"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    contact_person_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Department {self.name}>"


class Location(Base):
    """Physical site where users sit and assets are installed."""

    __tablename__ = "locations"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<Location {self.name}>"


class User(Base):
    """Directory user.  ``role`` drives routing and authorisation."""

    __tablename__ = "users"

    __table_args__ = (
        Index("idx_users_role_active", "role", "is_active"),
        Index("idx_users_department", "department_id"),
    )

    first_name: Mapped[str] = mapped_column(String(200), nullable=False)
    last_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="employee")
    department_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("departments.id"), nullable=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False,
    )

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"


class Asset(Base):
    """A catalogued physical asset."""

    __tablename__ = "assets"

    __table_args__ = (
        Index("idx_assets_status", "status"),
    )

    asset_tag: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    product_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="available")
    assigned_to: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Asset {self.asset_tag} ({self.status})>"
