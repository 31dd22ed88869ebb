"""
Tests for AssignmentService.assign_asset().

Covers:
- happy path: requisition payload, asset in_transit with no holder,
  delivery ticket, movement at the requester's location, history entry,
  notifications to requester and engineer
- generated history comment when no notes are given
- precondition failures: wrong status, unknown requisition, unknown or
  unavailable asset, engineer missing / inactive / wrong role, bad date
- all-or-nothing: a failed assignment leaves no ticket, movement or history,
  consumes no ticket number, and leaves the asset available
"""

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from asset_kernel.exceptions import (
    AssetNotAvailableError,
    AssetNotFoundError,
    EngineerNotFoundError,
    InvalidAssignmentStateError,
    InvalidRequisitionInputError,
    RequisitionNotFoundError,
    StateConflictError,
)
from asset_kernel.models.directory import Asset
from asset_modules.assignments.models import DeliveryStatus
from asset_modules.assignments.orm import AssetMovementModel, DeliveryTicketModel
from asset_modules.assignments.selectors import AssignmentSelector
from asset_modules.requisitions.models import (
    ApprovalLevel,
    HistoryAction,
    RequisitionStatus,
)
from asset_modules.requisitions.orm import ApprovalHistoryModel
from asset_services.notifications import NotificationType
from tests.conftest import actor_for

S = RequisitionStatus
INSTALL_DATE = date(2024, 3, 20)


@pytest.fixture
def assign(assignment_service, approved_requisition, org):
    """Assign with sensible defaults; keyword overrides for each argument."""

    def _assign(**overrides):
        args = {
            "requisition_id": approved_requisition.id,
            "asset_id": org.laptop.id,
            "engineer_id": org.engineer.id,
            "scheduled_date": INSTALL_DATE,
            "notes": "Deliver to desk 4B",
            "actor": actor_for(org.coordinator),
        }
        args.update(overrides)
        return assignment_service.assign_asset(**args)

    return _assign


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


def _asset(session, asset_id):
    return session.get(Asset, asset_id, populate_existing=True)


class TestAssignHappyPath:

    def test_result(self, assign, approved_requisition, org):
        result = assign()
        assert result.requisition_id == approved_requisition.id
        assert result.asset_tag == "LT-0001"
        assert result.engineer_id == org.engineer.id
        assert result.engineer_name == "Ken Thompson"
        assert result.installation_scheduled_date == INSTALL_DATE
        assert result.delivery_ticket.ticket_number == "DEL-2024-03-0001"

    def test_requisition_payload(self, assign, requisition_selector, approved_requisition,
                                 deterministic_clock, org):
        result = assign()
        req = requisition_selector.get(approved_requisition.id).requisition
        assert req.status is S.ASSIGNED
        payload = req.assignment
        assert payload.coordinator_id == org.coordinator.id
        assert payload.coordinator_name == "Margaret Hamilton"
        assert payload.asset_id == org.laptop.id
        assert payload.asset_tag == "LT-0001"
        assert payload.engineer_id == org.engineer.id
        assert payload.engineer_name == "Ken Thompson"
        assert payload.installation_scheduled_date == INSTALL_DATE
        assert payload.delivery_ticket_id == result.delivery_ticket.id
        assert payload.assigned_at == deterministic_clock.now()
        assert payload.notes == "Deliver to desk 4B"

    def test_asset_in_transit_without_holder(self, assign, session, org):
        assign()
        asset = _asset(session, org.laptop.id)
        assert asset.status == "in_transit"
        assert asset.assigned_to is None

    def test_delivery_ticket(self, assign, session, org):
        result = assign()
        ticket = AssignmentSelector(session).ticket_by_number(
            result.delivery_ticket.ticket_number,
        )
        assert ticket.status is DeliveryStatus.IN_TRANSIT
        assert ticket.recipient_id == org.employee.id
        assert ticket.recipient_name == "Ada Lovelace"
        assert ticket.delivered_by == org.engineer.id
        assert ticket.delivered_by_name == "Ken Thompson"
        assert ticket.delivery_type == "physical"
        assert ticket.scheduled_delivery_date == INSTALL_DATE
        assert ticket.delivery_notes == "Deliver to desk 4B"
        assert ticket.created_by_id == org.coordinator.id

    def test_ticket_for_requisition(self, assign, session, approved_requisition, make_requisition):
        result = assign()
        selector = AssignmentSelector(session)
        ticket = selector.ticket_for_requisition(approved_requisition.id)
        assert ticket.id == result.delivery_ticket.id
        assert selector.ticket_for_requisition(make_requisition().id) is None

    def test_movement_at_requester_location(self, assign, session, approved_requisition, org):
        result = assign()
        movements = AssignmentSelector(session).movements_for_asset(org.laptop.id)
        assert len(movements) == 1
        movement = movements[0]
        assert movement.id == result.movement_id
        assert movement.assigned_to == org.employee.id
        assert movement.location_id == org.head_office.id
        assert movement.location_name == "Head Office"
        assert movement.movement_type == "assigned"
        assert movement.performed_by == org.coordinator.id
        assert approved_requisition.requisition_number in movement.reason

    def test_history_entry(self, assign, requisition_selector, approved_requisition, org):
        assign()
        entry = requisition_selector.get(approved_requisition.id).history[-1]
        assert entry.action is HistoryAction.ASSIGNED
        assert entry.approval_level is ApprovalLevel.COORDINATOR
        assert entry.approver_id == org.coordinator.id
        assert entry.previous_status is S.PENDING_ASSIGNMENT
        assert entry.new_status is S.ASSIGNED
        assert entry.comments == "Deliver to desk 4B"

    def test_generated_comment_without_notes(self, assign, requisition_selector,
                                             approved_requisition):
        assign(notes=None)
        entry = requisition_selector.get(approved_requisition.id).history[-1]
        assert entry.comments == (
            "Asset assigned to Ada Lovelace. "
            "Engineer Ken Thompson assigned for installation."
        )

    def test_notifies_requester_and_engineer(self, assign, dispatcher, org):
        dispatcher.clear()
        assign()
        notes = dispatcher.of_type(NotificationType.ASSET_ASSIGNED)
        assert len(notes) == 2
        assert dispatcher.recipients_of(NotificationType.ASSET_ASSIGNED) == {
            org.employee.id, org.engineer.id,
        }
        assert all(n.details["ticket_number"] == "DEL-2024-03-0001" for n in notes)
        assert "LT-0001" in notes[0].message

    def test_logged(self, assign, captured_logs):
        assign()
        assigned = [r for r in captured_logs() if r["message"] == "asset_assigned"]
        assert assigned[0]["asset_tag"] == "LT-0001"
        assert assigned[0]["operation"] == "assignment.assign_asset"


class TestAssignPreconditions:

    def test_requisition_not_awaiting_assignment(self, assignment_service, make_requisition,
                                                 org):
        req = make_requisition()
        with pytest.raises(InvalidAssignmentStateError) as exc_info:
            assignment_service.assign_asset(
                req.id, org.laptop.id, org.engineer.id, INSTALL_DATE, None,
                actor_for(org.coordinator),
            )
        assert exc_info.value.current_status == "pending_dept_head"
        assert exc_info.value.expected_status == "pending_assignment"

    def test_already_assigned(self, assign, org):
        assign()
        with pytest.raises(StateConflictError):
            assign(asset_id=org.monitor.id)

    def test_unknown_requisition(self, assign):
        with pytest.raises(RequisitionNotFoundError):
            assign(requisition_id=uuid4())

    def test_unknown_asset(self, assign):
        with pytest.raises(AssetNotFoundError):
            assign(asset_id=uuid4())

    def test_asset_already_assigned(self, assign, org):
        with pytest.raises(AssetNotAvailableError) as exc_info:
            assign(asset_id=org.assigned_asset.id)
        assert exc_info.value.asset_tag == "LT-0099"
        assert exc_info.value.current_status == "assigned"

    @pytest.mark.parametrize("who", ["inactive_engineer", "coordinator", None])
    def test_engineer_must_be_active_engineer(self, assign, org, who):
        engineer_id = getattr(org, who).id if who else uuid4()
        with pytest.raises(EngineerNotFoundError):
            assign(engineer_id=engineer_id)

    def test_scheduled_date_must_be_a_date(self, assign):
        with pytest.raises(InvalidRequisitionInputError):
            assign(scheduled_date="2024-03-20")


class TestAssignAtomicity:

    def test_failure_leaves_nothing_behind(self, assign, session, requisition_selector,
                                           approved_requisition, org):
        history_before = _count(session, ApprovalHistoryModel)
        session.rollback()

        with pytest.raises(EngineerNotFoundError):
            assign(engineer_id=org.inactive_engineer.id)

        assert _count(session, DeliveryTicketModel) == 0
        assert _count(session, AssetMovementModel) == 0
        assert _count(session, ApprovalHistoryModel) == history_before
        assert _asset(session, org.laptop.id).status == "available"
        req = requisition_selector.get(approved_requisition.id).requisition
        assert req.status is S.PENDING_ASSIGNMENT
        assert req.assignment is None

    def test_failed_attempt_consumes_no_ticket_number(self, assign, org):
        with pytest.raises(AssetNotAvailableError):
            assign(asset_id=org.assigned_asset.id)
        assert assign().delivery_ticket.ticket_number == "DEL-2024-03-0001"

    def test_no_notification_on_failure(self, assign, dispatcher, org):
        dispatcher.clear()
        with pytest.raises(AssetNotAvailableError):
            assign(asset_id=org.assigned_asset.id)
        assert dispatcher.sent == ()
