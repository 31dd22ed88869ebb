"""
Requisition Selectors (``asset_modules.requisitions.selectors``).

Read-only queries over requisitions and their approval history:
single-record lookups, the requester's own list, role-scoped listings, and
the three work queues (department approvals, IT approvals, assignments).

Work queues are ordered by urgency (critical first), then oldest first.
Listings are ordered newest first.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, case, func, or_, select

from asset_kernel.domain.actor import DEPARTMENT_SCOPED_ROLES, Actor
from asset_kernel.exceptions import (
    InvalidRequisitionInputError,
    MissingDepartmentError,
    RequisitionNotFoundError,
)
from asset_kernel.selectors.base import BaseSelector
from asset_modules.requisitions.history import ApprovalHistoryLog
from asset_modules.requisitions.models import (
    Requisition,
    RequisitionDetail,
    RequisitionStatus,
    Urgency,
)
from asset_modules.requisitions.orm import RequisitionModel
from asset_modules.requisitions.workflows import URGENCY_PRIORITY

T = TypeVar("T")

MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class RequisitionFilter:
    """Optional narrowing applied to any listing."""
    status: RequisitionStatus | str | None = None
    urgency: Urgency | str | None = None
    search: str | None = None
    department_id: UUID | None = None
    requester_id: UUID | None = None


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    def __post_init__(self) -> None:
        if self.page < 1:
            raise InvalidRequisitionInputError("page", "must be >= 1")
        if not 1 <= self.limit <= MAX_PAGE_SIZE:
            raise InvalidRequisitionInputError(
                "limit", f"must be between 1 and {MAX_PAGE_SIZE}",
            )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(frozen=True)
class Page(Generic[T]):
    items: tuple[T, ...] = field(default_factory=tuple)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


_URGENCY_RANK = case(
    {u.value: rank for u, rank in URGENCY_PRIORITY.items()},
    value=RequisitionModel.urgency,
    else_=len(URGENCY_PRIORITY) + 1,
)

_QUEUE_ORDER = (_URGENCY_RANK, RequisitionModel.created_at, RequisitionModel.id)
_NEWEST_FIRST = (RequisitionModel.created_at.desc(), RequisitionModel.id)


class RequisitionSelector(BaseSelector):
    """Read-only requisition queries returning DTOs."""

    def _detail(self, row: RequisitionModel | None, ref: str) -> RequisitionDetail:
        if row is None:
            raise RequisitionNotFoundError(ref)
        history = ApprovalHistoryLog(self.session).entries_for(row.id)
        return RequisitionDetail(requisition=row.to_dto(), history=history)

    def get(self, requisition_id: UUID) -> RequisitionDetail:
        """Requisition with its ordered history.

        Raises:
            RequisitionNotFoundError: no such requisition.
        """
        row = self.session.get(RequisitionModel, requisition_id, populate_existing=True)
        return self._detail(row, str(requisition_id))

    def get_by_number(self, requisition_number: str) -> RequisitionDetail:
        row = self.session.execute(
            select(RequisitionModel)
            .where(RequisitionModel.requisition_number == requisition_number)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return self._detail(row, requisition_number)

    # ------------------------------------------------------------------
    # Listings
    # ------------------------------------------------------------------

    def list_for_requester(
        self,
        requester_id: UUID,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        stmt = select(RequisitionModel).where(RequisitionModel.requested_by == requester_id)
        return self._page(self._filtered(stmt, filters), page, _NEWEST_FIRST)

    def list_visible_to(
        self,
        actor: Actor,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        """All requisitions the actor may browse.

        Department heads and department coordinators are limited to their
        own department.
        """
        stmt = select(RequisitionModel)
        if actor.role in DEPARTMENT_SCOPED_ROLES:
            if actor.department_id is None:
                raise MissingDepartmentError(str(actor.id))
            stmt = stmt.where(RequisitionModel.department_id == actor.department_id)
        return self._page(self._filtered(stmt, filters), page, _NEWEST_FIRST)

    # ------------------------------------------------------------------
    # Work queues
    # ------------------------------------------------------------------

    def pending_dept_approvals(
        self,
        actor: Actor,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        if actor.department_id is None:
            raise MissingDepartmentError(str(actor.id))
        stmt = select(RequisitionModel).where(
            RequisitionModel.department_id == actor.department_id,
            RequisitionModel.status == RequisitionStatus.PENDING_DEPT_HEAD.value,
        )
        return self._page(self._filtered(stmt, filters), page, _QUEUE_ORDER)

    def pending_it_approvals(
        self,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        stmt = select(RequisitionModel).where(
            RequisitionModel.status == RequisitionStatus.PENDING_IT_HEAD.value,
        )
        return self._page(self._filtered(stmt, filters), page, _QUEUE_ORDER)

    def pending_assignments(
        self,
        filters: RequisitionFilter | None = None,
        page: PageRequest | None = None,
    ) -> Page[Requisition]:
        """Requisitions awaiting or just given an asset.

        A ``status`` filter narrows to one of the two queue statuses.
        """
        queue = (
            RequisitionStatus.PENDING_ASSIGNMENT.value,
            RequisitionStatus.ASSIGNED.value,
        )
        stmt = select(RequisitionModel).where(RequisitionModel.status.in_(queue))
        return self._page(
            self._filtered(stmt, filters, search_department=True), page, _QUEUE_ORDER,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _filtered(
        self,
        stmt: Select,
        filters: RequisitionFilter | None,
        search_department: bool = False,
    ) -> Select:
        if filters is None:
            return stmt
        if filters.status is not None:
            status = _filter_value(RequisitionStatus, "status", filters.status)
            stmt = stmt.where(RequisitionModel.status == status.value)
        if filters.urgency is not None:
            urgency = _filter_value(Urgency, "urgency", filters.urgency)
            stmt = stmt.where(RequisitionModel.urgency == urgency.value)
        if filters.department_id is not None:
            stmt = stmt.where(RequisitionModel.department_id == filters.department_id)
        if filters.requester_id is not None:
            stmt = stmt.where(RequisitionModel.requested_by == filters.requester_id)
        if filters.search and filters.search.strip():
            pattern = f"%{_escape_like(filters.search.strip().lower())}%"
            columns = [
                RequisitionModel.requisition_number,
                RequisitionModel.purpose,
                RequisitionModel.requester_name,
            ]
            if search_department:
                columns.append(RequisitionModel.department_name)
            stmt = stmt.where(or_(
                *(func.lower(c).like(pattern, escape="\\") for c in columns)
            ))
        return stmt

    def _page(self, stmt: Select, page: PageRequest | None, order_by) -> Page[Requisition]:
        page = page or PageRequest()
        total = self.session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self.session.scalars(
            stmt.order_by(*order_by)
            .limit(page.limit)
            .offset(page.offset)
            .execution_options(populate_existing=True)
        )
        return Page(
            items=tuple(row.to_dto() for row in rows),
            total=total,
            page=page.page,
            limit=page.limit,
        )


def _filter_value(enum_cls, field_name: str, value):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidRequisitionInputError(
            field_name,
            "must be one of " + ", ".join(member.value for member in enum_cls),
        ) from None


def _escape_like(text: str) -> str:
    """Make ``%`` and ``_`` match literally under ``escape="\\"``."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
