"""
Typed Exception Hierarchy for the Asset Requisition Workflow.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A host (HTTP/RPC layer) must map every workflow failure to a stable,
machine-readable error without parsing message strings.  Every exception in
this module therefore has:

  1. A TYPED class (catch by type, not message)
  2. A class-level CODE attribute (stable, API-safe)
  3. Structured DATA attributes (requisition id, current status, ...)

Example - WRONG way to handle errors:
    try:
        assignments.assign_asset(...)
    except Exception as e:
        if "not available" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        assignments.assign_asset(...)
    except AssetNotAvailableError as e:
        return {"error": e.code, "asset_tag": e.asset_tag, "status": e.current_status}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    AssetWorkflowError (base)
    |
    +-- ValidationError                 missing / malformed input
    |   +-- MissingDepartmentError
    |   +-- CommentRequiredError
    |   +-- InvalidRequisitionInputError
    |   +-- InvalidDocumentNumberError
    |
    +-- NotFoundError                   referenced entity does not exist
    |   +-- RequisitionNotFoundError
    |   +-- AssetNotFoundError
    |   +-- EngineerNotFoundError
    |   +-- UserNotFoundError
    |   +-- DepartmentNotFoundError
    |
    +-- StateConflictError              illegal for the current status
    |   +-- InvalidTransitionError
    |   +-- InvalidAssignmentStateError
    |   +-- AssetNotAvailableError
    |
    +-- AuthorizationError              actor lacks standing
    |   +-- DepartmentScopeError
    |   +-- NotRequesterError
    |
    +-- TransactionError                rolled back, safe to retry
    |   +-- LockTimeoutError
    |
    +-- ImmutabilityViolationError      append-only / terminal record touched
    |
    +-- NotificationError               best-effort, never surfaced

===============================================================================
PROPAGATION POLICY
===============================================================================

Every error except NotificationError aborts the operation before anything is
committed; the owning service rolls the session back and re-raises.
NotificationError is raised only inside the notification publisher, logged,
and swallowed after the workflow transaction has committed.

TransactionError (and its LockTimeoutError subclass) marks failures of the
underlying store.  The transaction is guaranteed rolled back, so the caller
may simply retry the operation.
"""

from typing import Any


class AssetWorkflowError(Exception):
    """
    Base exception for all workflow errors.

    All subclasses must define a ``code`` class attribute.
    """

    code: str = "ASSET_WORKFLOW_ERROR"
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render the error for a host response envelope."""
        data: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if not key.startswith("_"):
                data[key] = value
        return data


# Validation


class ValidationError(AssetWorkflowError):
    """Missing or malformed input. Nothing was mutated."""

    code: str = "VALIDATION_ERROR"


class MissingDepartmentError(ValidationError):
    """The user is not assigned to a department."""

    code: str = "REQUESTER_WITHOUT_DEPARTMENT"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(
            f"User {user_id} must be assigned to a department to create "
            "or review requisitions"
        )


class CommentRequiredError(ValidationError):
    """A rejection or cancellation was attempted without a comment."""

    code: str = "COMMENT_REQUIRED"

    def __init__(self, action: str):
        self.action = action
        super().__init__(f"A comment is required to record action '{action}'")


class InvalidRequisitionInputError(ValidationError):
    """A requisition field failed validation."""

    code: str = "INVALID_REQUISITION_INPUT"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid requisition field '{field}': {reason}")


class InvalidDocumentNumberError(ValidationError):
    """A document number does not match PREFIX-YYYY-MM-NNNN."""

    code: str = "INVALID_DOCUMENT_NUMBER"

    def __init__(self, number: str):
        self.number = number
        super().__init__(f"Malformed document number: {number!r}")


# Not found


class NotFoundError(AssetWorkflowError):
    """A referenced entity does not exist. Nothing was mutated."""

    code: str = "NOT_FOUND"


class RequisitionNotFoundError(NotFoundError):
    """Requisition with the given id or number was not found."""

    code: str = "REQUISITION_NOT_FOUND"

    def __init__(self, requisition_ref: str):
        self.requisition_ref = requisition_ref
        super().__init__(f"Requisition not found: {requisition_ref}")


class AssetNotFoundError(NotFoundError):
    """Asset with the given id was not found."""

    code: str = "ASSET_NOT_FOUND"

    def __init__(self, asset_id: str):
        self.asset_id = asset_id
        super().__init__(f"Asset not found: {asset_id}")


class EngineerNotFoundError(NotFoundError):
    """No active user with the engineer role exists for the given id."""

    code: str = "ENGINEER_NOT_FOUND"

    def __init__(self, engineer_id: str):
        self.engineer_id = engineer_id
        super().__init__(f"Engineer not found or not active: {engineer_id}")


class UserNotFoundError(NotFoundError):
    """User with the given id was not found."""

    code: str = "USER_NOT_FOUND"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class DepartmentNotFoundError(NotFoundError):
    """Department with the given id was not found."""

    code: str = "DEPARTMENT_NOT_FOUND"

    def __init__(self, department_id: str):
        self.department_id = department_id
        super().__init__(f"Department not found: {department_id}")


# State conflicts


class StateConflictError(AssetWorkflowError):
    """The operation is not legal for the entity's current state."""

    code: str = "STATE_CONFLICT"


class InvalidTransitionError(StateConflictError):
    """The requested status change is not in the transition table."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, requisition_ref: str, current_status: str, target_status: str):
        self.requisition_ref = requisition_ref
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"Requisition {requisition_ref} cannot move from "
            f"'{current_status}' to '{target_status}'"
        )


class InvalidAssignmentStateError(StateConflictError):
    """The requisition is not awaiting assignment."""

    code: str = "INVALID_ASSIGNMENT_STATE"

    def __init__(self, requisition_ref: str, current_status: str):
        self.requisition_ref = requisition_ref
        self.current_status = current_status
        self.expected_status = "pending_assignment"
        super().__init__(
            f"Cannot assign asset to requisition {requisition_ref} from status "
            f"'{current_status}' (expected 'pending_assignment')"
        )


class AssetNotAvailableError(StateConflictError):
    """The asset is not in the ``available`` status."""

    code: str = "ASSET_NOT_AVAILABLE"

    def __init__(self, asset_id: str, asset_tag: str | None, current_status: str):
        self.asset_id = asset_id
        self.asset_tag = asset_tag
        self.current_status = current_status
        self.expected_status = "available"
        super().__init__(
            f"Asset {asset_tag or asset_id} is not available. "
            f"Current status: {current_status}"
        )


# Authorization


class AuthorizationError(AssetWorkflowError):
    """The actor lacks standing for the action. Nothing was mutated."""

    code: str = "NOT_AUTHORIZED"


class DepartmentScopeError(AuthorizationError):
    """A department-level decision was attempted outside the actor's department."""

    code: str = "DEPARTMENT_SCOPE_VIOLATION"

    def __init__(self, actor_id: str, requisition_ref: str):
        self.actor_id = actor_id
        self.requisition_ref = requisition_ref
        super().__init__(
            f"Actor {actor_id} can only decide requisitions from their own "
            f"department (requisition {requisition_ref})"
        )


class NotRequesterError(AuthorizationError):
    """Only the original requester may perform this action."""

    code: str = "NOT_REQUESTER"

    def __init__(self, actor_id: str, requisition_ref: str):
        self.actor_id = actor_id
        self.requisition_ref = requisition_ref
        super().__init__(
            f"Actor {actor_id} can only cancel their own requisitions "
            f"(requisition {requisition_ref})"
        )


# Transactions


class TransactionError(AssetWorkflowError):
    """
    The underlying atomic operation failed and was fully rolled back.

    Callers may retry the operation.
    """

    code: str = "TRANSACTION_FAILED"
    retryable: bool = True

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Transaction for '{operation}' rolled back: {reason}")


class LockTimeoutError(TransactionError):
    """A row lock could not be acquired within the configured timeout."""

    code: str = "LOCK_TIMEOUT"


# Immutability


class ImmutabilityViolationError(AssetWorkflowError):
    """Attempted to modify or delete an append-only or terminal record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Notifications


class NotificationError(AssetWorkflowError):
    """A best-effort notification could not be delivered."""

    code: str = "NOTIFICATION_FAILED"

    def __init__(self, notification_type: str, requisition_ref: str, reason: str):
        self.notification_type = notification_type
        self.requisition_ref = requisition_ref
        self.reason = reason
        super().__init__(
            f"Notification '{notification_type}' for requisition "
            f"{requisition_ref} failed: {reason}"
        )
