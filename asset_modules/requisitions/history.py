"""
Approval History Log.

Append-only audit trail of every action taken on a requisition.  Each entry
gets a ``seq`` from the sequence service, so entries written in the same
transaction (or with the same timestamp) keep their causal order.

A failure to record history is fatal to the surrounding operation: errors
propagate and the owning service rolls the whole transaction back.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from asset_kernel.exceptions import CommentRequiredError
from asset_kernel.logging_config import get_logger
from asset_kernel.services.sequence_service import SequenceService
from asset_modules.requisitions.models import (
    ApprovalHistoryEntry,
    ApprovalLevel,
    HistoryAction,
    RequisitionStatus,
)
from asset_modules.requisitions.orm import ApprovalHistoryModel

logger = get_logger("modules.requisitions.history")

_COMMENT_REQUIRED = frozenset({HistoryAction.REJECTED, HistoryAction.CANCELLED})


class ApprovalHistoryLog:
    """Writes and reads approval history inside the caller's transaction."""

    def __init__(self, session: Session):
        self._session = session
        self._sequences = SequenceService(session)

    def record(
        self,
        requisition_id: UUID,
        level: ApprovalLevel,
        approver_id: UUID,
        approver_name: str,
        approver_role: str,
        action: HistoryAction,
        new_status: RequisitionStatus,
        timestamp: datetime,
        previous_status: RequisitionStatus | None = None,
        comments: str | None = None,
    ) -> ApprovalHistoryEntry:
        """Append one entry and flush.

        Raises:
            CommentRequiredError: ``rejected`` or ``cancelled`` without a
                non-blank comment.
        """
        level = ApprovalLevel(level)
        action = HistoryAction(action)
        if action in _COMMENT_REQUIRED and not (comments and comments.strip()):
            raise CommentRequiredError(action.value)

        seq = self._sequences.next_value(SequenceService.APPROVAL_HISTORY)
        row = ApprovalHistoryModel(
            requisition_id=requisition_id,
            seq=seq,
            approval_level=level.value,
            approver_id=approver_id,
            approver_name=approver_name,
            approver_role=approver_role,
            action=action.value,
            comments=comments,
            previous_status=(
                RequisitionStatus(previous_status).value
                if previous_status is not None else None
            ),
            new_status=RequisitionStatus(new_status).value,
            action_timestamp=timestamp,
        )
        self._session.add(row)
        self._session.flush()

        logger.info("approval_history_recorded", extra={
            "requisition_id": str(requisition_id),
            "seq": seq,
            "approval_level": level.value,
            "history_action": action.value,
            "previous_status": row.previous_status,
            "new_status": row.new_status,
        })
        return row.to_dto()

    def entries_for(self, requisition_id: UUID) -> tuple[ApprovalHistoryEntry, ...]:
        rows = self._session.scalars(
            select(ApprovalHistoryModel)
            .where(ApprovalHistoryModel.requisition_id == requisition_id)
            .order_by(ApprovalHistoryModel.seq)
        )
        return tuple(row.to_dto() for row in rows)
