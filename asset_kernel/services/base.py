"""
BaseService -- abstract base for kernel services.

Responsibility:
    Common constructor and session-handling contract for kernel services.
    Kernel services flush within the caller's transaction and never commit
    or roll back; module services own the boundary via ``db.atomic``.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
