"""
Approval history and record immutability.

Covers:
- ApprovalHistoryLog.record(): seq allocation, comment rule, logging
- entries_for(): ordered by seq even when timestamps tie
- history rows refuse UPDATE and DELETE
- requisitions in a terminal status refuse UPDATE; requisitions are never
  deleted
- database check constraints: status, payload consistency, comment rule
- delivery tickets and asset movements are write-once
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError

from asset_kernel.exceptions import CommentRequiredError, ImmutabilityViolationError
from asset_modules.assignments.orm import AssetMovementModel, DeliveryTicketModel
from asset_modules.requisitions.history import ApprovalHistoryLog
from asset_modules.requisitions.models import (
    ApprovalLevel,
    HistoryAction,
    RequisitionStatus,
)
from asset_modules.requisitions.orm import ApprovalHistoryModel, RequisitionModel
from tests.conftest import actor_for

S = RequisitionStatus
T0 = datetime(2024, 3, 15, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def history(session):
    return ApprovalHistoryLog(session)


def _record(history, requisition_id, approver, action=HistoryAction.APPROVED, **kwargs):
    return history.record(
        requisition_id=requisition_id,
        level=kwargs.pop("level", ApprovalLevel.DEPT_HEAD),
        approver_id=approver.id,
        approver_name=approver.display_name,
        approver_role=approver.role,
        action=action,
        new_status=kwargs.pop("new_status", S.PENDING_IT_HEAD),
        timestamp=kwargs.pop("timestamp", T0),
        **kwargs,
    )


class TestHistoryLog:

    def test_seq_strictly_increasing(self, history, make_requisition, session, org):
        req = make_requisition()
        first = _record(history, req.id, org.dept_head)
        second = _record(history, req.id, org.it_head, level=ApprovalLevel.IT_HEAD)
        session.commit()
        assert second.seq > first.seq

    def test_entries_ordered_by_seq_with_equal_timestamps(self, history, make_requisition,
                                                          session, org):
        req = make_requisition()
        for level in (ApprovalLevel.DEPT_HEAD, ApprovalLevel.IT_HEAD, ApprovalLevel.COORDINATOR):
            _record(history, req.id, org.dept_head, level=level, timestamp=T0)
        session.commit()

        entries = history.entries_for(req.id)
        assert [e.approval_level for e in entries] == [
            ApprovalLevel.EMPLOYEE,
            ApprovalLevel.DEPT_HEAD,
            ApprovalLevel.IT_HEAD,
            ApprovalLevel.COORDINATOR,
        ]
        assert [e.seq for e in entries] == sorted(e.seq for e in entries)

    @pytest.mark.parametrize("action", [HistoryAction.REJECTED, HistoryAction.CANCELLED])
    @pytest.mark.parametrize("comments", [None, "", "\t "])
    def test_comment_required(self, history, make_requisition, org, action, comments):
        req = make_requisition()
        with pytest.raises(CommentRequiredError):
            _record(history, req.id, org.dept_head, action=action, comments=comments)

    def test_entries_for_unknown_requisition(self, history):
        assert history.entries_for(uuid4()) == ()

    def test_logged(self, history, make_requisition, captured_logs, org):
        req = make_requisition()
        entry = _record(history, req.id, org.dept_head)
        logged = [r for r in captured_logs() if r["message"] == "approval_history_recorded"]
        assert logged[-1]["seq"] == entry.seq
        assert logged[-1]["history_action"] == "approved"


class TestHistoryImmutability:

    def test_update_refused(self, make_requisition, session):
        req = make_requisition()
        row = session.scalars(
            select(ApprovalHistoryModel).where(ApprovalHistoryModel.requisition_id == req.id)
        ).first()
        row.comments = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_delete_refused(self, make_requisition, session):
        req = make_requisition()
        row = session.scalars(
            select(ApprovalHistoryModel).where(ApprovalHistoryModel.requisition_id == req.id)
        ).first()
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_db_rejects_blank_rejection_comment(self, make_requisition, session, org):
        req = make_requisition()
        session.add(ApprovalHistoryModel(
            requisition_id=req.id, seq=10_000, approval_level="dept_head",
            approver_id=org.dept_head.id, approver_name="Grace Hopper",
            approver_role="department_head", action="rejected", comments="  ",
            new_status="rejected_by_dept_head", action_timestamp=T0,
        ))
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()


class TestRequisitionImmutability:

    def test_terminal_requisition_cannot_be_updated(self, requisition_service,
                                                    make_requisition, session, org):
        req = make_requisition()
        requisition_service.reject_at_dept_head(req.id, actor_for(org.dept_head), "No")

        row = session.get(RequisitionModel, req.id, populate_existing=True)
        row.purpose = "Edited after rejection"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_non_terminal_requisition_can_be_updated(self, make_requisition, session):
        req = make_requisition()
        row = session.get(RequisitionModel, req.id, populate_existing=True)
        row.specifications = "32GB RAM"
        session.flush()
        session.rollback()

    def test_requisition_cannot_be_deleted(self, make_requisition, session):
        req = make_requisition()
        row = session.get(RequisitionModel, req.id, populate_existing=True)
        session.delete(row)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()


class TestRequisitionConstraints:

    def test_unknown_status_rejected(self, make_requisition, session):
        req = make_requisition()
        with pytest.raises(IntegrityError):
            session.execute(
                text("UPDATE asset_requisitions SET status = 'on_hold' WHERE id = :id"),
                {"id": str(req.id)},
            )
        session.rollback()

    def test_assigned_without_payload_rejected(self, make_requisition, session):
        req = make_requisition()
        with pytest.raises(IntegrityError):
            session.execute(
                text("UPDATE asset_requisitions SET status = 'assigned' WHERE id = :id"),
                {"id": str(req.id)},
            )
        session.rollback()

    def test_cancelled_without_reason_rejected(self, make_requisition, session):
        req = make_requisition()
        with pytest.raises(IntegrityError):
            session.execute(
                text("UPDATE asset_requisitions SET status = 'cancelled' WHERE id = :id"),
                {"id": str(req.id)},
            )
        session.rollback()


class TestAssignmentRecordsWriteOnce:

    @pytest.fixture
    def assigned(self, assignment_service, approved_requisition, deterministic_clock, org):
        return assignment_service.assign_asset(
            approved_requisition.id, org.laptop.id, org.engineer.id,
            deterministic_clock.now().date(), None, actor_for(org.coordinator),
        )

    def test_ticket_update_refused(self, assigned, session):
        ticket = session.get(DeliveryTicketModel, assigned.delivery_ticket.id)
        ticket.status = "delivered"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

    def test_movement_delete_refused(self, assigned, session):
        movement = session.get(AssetMovementModel, assigned.movement_id)
        session.delete(movement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
