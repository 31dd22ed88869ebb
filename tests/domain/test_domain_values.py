"""
Tests for kernel domain value objects.

Covers:
- Workflow construction checks (unknown states, terminal exits)
- Actor.has_role with enum and string roles
- DeterministicClock advance / tick / set_time
- Exception codes and to_dict() envelopes
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from asset_kernel.domain.actor import DEPARTMENT_SCOPED_ROLES, Actor, Role
from asset_kernel.domain.clock import DeterministicClock, SystemClock
from asset_kernel.domain.workflow import Transition, Workflow
from asset_kernel.exceptions import (
    AssetNotAvailableError,
    AssetWorkflowError,
    AuthorizationError,
    CommentRequiredError,
    DepartmentScopeError,
    InvalidAssignmentStateError,
    LockTimeoutError,
    NotFoundError,
    NotificationError,
    RequisitionNotFoundError,
    StateConflictError,
    TransactionError,
    ValidationError,
)


class TestWorkflowDefinition:

    def test_initial_state_must_be_declared(self):
        with pytest.raises(ValueError, match="initial state"):
            Workflow(
                name="w", description="", initial_state="draft",
                states=("open",), transitions=(),
            )

    def test_transition_states_must_be_declared(self):
        with pytest.raises(ValueError, match="undeclared state"):
            Workflow(
                name="w", description="", initial_state="open",
                states=("open",),
                transitions=(Transition("open", "closed", action="close"),),
            )

    def test_terminal_state_cannot_have_exits(self):
        with pytest.raises(ValueError, match="terminal state"):
            Workflow(
                name="w", description="", initial_state="open",
                states=("open", "closed"),
                transitions=(
                    Transition("open", "closed", action="close"),
                    Transition("closed", "open", action="reopen"),
                ),
                terminal_states=("closed",),
            )

    def test_targets_and_allows(self):
        wf = Workflow(
            name="w", description="", initial_state="open",
            states=("open", "closed", "void"),
            transitions=(
                Transition("open", "closed", action="close"),
                Transition("open", "void", action="void"),
            ),
            terminal_states=("closed", "void"),
        )
        assert wf.targets_from("open") == frozenset({"closed", "void"})
        assert wf.allows("open", "void")
        assert not wf.allows("closed", "open")
        assert wf.is_terminal("void")
        assert wf.transition("open", "void").action == "void"
        assert wf.transition("void", "open") is None


class TestActor:

    def test_has_role_accepts_enum_and_string(self):
        actor = Actor(id=uuid4(), role="it_head", display_name="IT")
        assert actor.has_role(Role.IT_HEAD)
        assert actor.has_role("employee", "it_head")
        assert not actor.has_role(Role.DEPARTMENT_HEAD)

    def test_actor_is_frozen(self):
        actor = Actor(id=uuid4(), role="employee", display_name="E")
        with pytest.raises(FrozenInstanceError):
            actor.role = "it_head"

    def test_department_scoped_roles(self):
        assert DEPARTMENT_SCOPED_ROLES == {"department_head", "department_coordinator"}


class TestClock:

    def test_deterministic_clock_is_stable(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        assert clock.now().tzinfo is not None

    def test_advance_and_tick(self):
        start = datetime(2024, 1, 31, 23, 59, 59, tzinfo=timezone.utc)
        clock = DeterministicClock(start)
        assert clock.tick() == start + timedelta(seconds=1)
        clock.advance(59)
        assert clock.now() == start + timedelta(seconds=60)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2025, 2, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_advance_accepts_timedelta(self):
        clock = DeterministicClock()
        start = clock.now()
        assert clock.advance(timedelta(days=31)) == start + timedelta(days=31)

    def test_naive_time_rejected(self):
        with pytest.raises(ValueError):
            DeterministicClock(datetime(2024, 3, 1))

    def test_system_clock_is_utc(self):
        assert SystemClock().now().utcoffset() == timedelta(0)


class TestExceptions:

    @pytest.mark.parametrize(
        "error, family",
        [
            (CommentRequiredError("rejected"), ValidationError),
            (RequisitionNotFoundError("REQ-2024-01-0001"), NotFoundError),
            (InvalidAssignmentStateError("REQ-2024-01-0001", "pending_it_head"),
             StateConflictError),
            (AssetNotAvailableError("a1", "LT-1", "assigned"), StateConflictError),
            (DepartmentScopeError("u1", "REQ-2024-01-0001"), AuthorizationError),
            (LockTimeoutError("requisition.create", "lock wait"), TransactionError),
        ],
    )
    def test_families(self, error, family):
        assert isinstance(error, family)
        assert isinstance(error, AssetWorkflowError)

    def test_codes_are_unique_per_class(self):
        classes = [
            cls for cls in _all_subclasses(AssetWorkflowError)
        ] + [AssetWorkflowError]
        codes = [cls.code for cls in classes]
        assert len(codes) == len(set(codes))

    def test_to_dict_carries_structured_fields(self):
        err = AssetNotAvailableError("a1", "LT-0001", "assigned")
        data = err.to_dict()
        assert data["code"] == "ASSET_NOT_AVAILABLE"
        assert data["asset_tag"] == "LT-0001"
        assert data["current_status"] == "assigned"
        assert data["expected_status"] == "available"
        assert "LT-0001" in data["message"]

    def test_only_transaction_errors_are_retryable(self):
        assert LockTimeoutError("op", "x").retryable
        assert TransactionError("op", "x").retryable
        assert not NotificationError("created", "REQ", "smtp down").retryable
        assert not CommentRequiredError("cancelled").retryable


def _all_subclasses(cls):
    for sub in cls.__subclasses__():
        yield sub
        yield from _all_subclasses(sub)
