"""
Module: asset_kernel.db.base
Responsibility: Declarative bases for every ORM model in the workflow.
Architecture position: Kernel > DB.  The lowest import target in the kernel
    after ``db.types``; must not import models/, services/, selectors/,
    domain/ or any outer package.

Two bases:

* ``Base`` -- surrogate ``id`` (uuid4) and the shared annotation map.  Used
  by directory tables, counters, history rows, tickets and movements: rows
  that are either owned elsewhere or written once.
* ``TrackedBase`` -- adds ``created_at`` / ``updated_at`` /
  ``created_by_id`` / ``updated_by_id`` for rows the workflow mutates
  (requisitions).  Services set the timestamps from the injected clock;
  the server defaults only cover rows inserted outside a service.

Requisition numbers and delivery-ticket numbers are the caller-visible
identifiers; the surrogate ids never leave the engine in messages.
"""

from datetime import date, datetime
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from asset_kernel.db.types import UTCDateTime, UUIDString


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        date: Date(),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Base for workflow-owned rows that change after insert."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now())
    created_by_id: Mapped[UUID] = mapped_column()
    updated_by_id: Mapped[UUID | None] = mapped_column()
