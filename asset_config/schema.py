"""
Configuration schema (``asset_config.schema``).

Frozen dataclasses produced by the loader.  Every field carries the value
the workflow uses when the YAML omits an optional key; required sections
have no defaults.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class NumberingConfig:
    requisition_prefix: str = "REQ"
    delivery_ticket_prefix: str = "DEL"
    sequence_width: int = 4


@dataclass(frozen=True)
class ApprovalConfig:
    it_head_auto_approval_comment: str = "Auto-approved (requester is IT Head)"
    dept_head_auto_approval_comment: str = (
        "Auto-approved (requester is Department Head/Coordinator)"
    )
    creation_comment: str = "Requisition created"


@dataclass(frozen=True)
class AssignmentConfig:
    delivery_type: str = "physical"
    movement_type: str = "assigned"


@dataclass(frozen=True)
class DatabaseConfig:
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    lock_timeout_seconds: float = 5.0


@dataclass(frozen=True)
class NotificationConfig:
    enabled: bool = True


@dataclass(frozen=True)
class WorkflowConfig:
    """The complete runtime configuration for the workflow engine."""

    config_id: str
    version: int
    numbering: NumberingConfig
    approvals: ApprovalConfig
    assignment: AssignmentConfig
    database: DatabaseConfig
    notifications: NotificationConfig
    checksum: str = ""
