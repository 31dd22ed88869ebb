"""
Configuration Loader (``asset_config.loader``).

Responsibility
--------------
Loads a YAML configuration set and parses it into the typed
``asset_config.schema`` dataclasses.  The single public entry point for
runtime config is ``asset_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; no silent defaults for required sections.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  file for configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

import yaml

from asset_config.schema import (
    ApprovalConfig,
    AssignmentConfig,
    DatabaseConfig,
    NotificationConfig,
    NumberingConfig,
    WorkflowConfig,
)

_REQUIRED_SECTIONS = ("numbering", "approvals", "assignment")


def compute_checksum(raw: bytes) -> str:
    return hashlib.sha256(raw).hexdigest()


def _non_blank(section: str, key: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{section}.{key} must be a non-empty string")
    return value


def parse_numbering(data: dict[str, Any]) -> NumberingConfig:
    width = int(data.get("sequence_width", 4))
    if width < 1:
        raise ValueError(f"numbering.sequence_width must be >= 1, got {width}")
    req = _non_blank("numbering", "requisition_prefix", data["requisition_prefix"])
    dlv = _non_blank(
        "numbering", "delivery_ticket_prefix", data["delivery_ticket_prefix"],
    )
    if req == dlv:
        raise ValueError("numbering prefixes must differ")
    return NumberingConfig(
        requisition_prefix=req,
        delivery_ticket_prefix=dlv,
        sequence_width=width,
    )


def parse_approvals(data: dict[str, Any]) -> ApprovalConfig:
    return ApprovalConfig(
        it_head_auto_approval_comment=_non_blank(
            "approvals", "it_head_auto_approval_comment",
            data["it_head_auto_approval_comment"],
        ),
        dept_head_auto_approval_comment=_non_blank(
            "approvals", "dept_head_auto_approval_comment",
            data["dept_head_auto_approval_comment"],
        ),
        creation_comment=_non_blank(
            "approvals", "creation_comment",
            data.get("creation_comment", ApprovalConfig.creation_comment),
        ),
    )


def parse_assignment(data: dict[str, Any]) -> AssignmentConfig:
    return AssignmentConfig(
        delivery_type=_non_blank("assignment", "delivery_type", data["delivery_type"]),
        movement_type=_non_blank(
            "assignment", "movement_type",
            data.get("movement_type", AssignmentConfig.movement_type),
        ),
    )


def parse_database(data: dict[str, Any]) -> DatabaseConfig:
    timeout = float(data.get("lock_timeout_seconds", 5.0))
    if timeout <= 0:
        raise ValueError("database.lock_timeout_seconds must be positive")
    return DatabaseConfig(
        pool_size=int(data.get("pool_size", 20)),
        max_overflow=int(data.get("max_overflow", 10)),
        pool_timeout=int(data.get("pool_timeout", 30)),
        lock_timeout_seconds=timeout,
    )


def parse_notifications(data: dict[str, Any]) -> NotificationConfig:
    return NotificationConfig(enabled=bool(data.get("enabled", True)))


def parse_config(data: dict[str, Any], checksum: str = "") -> WorkflowConfig:
    """Parse a full configuration document.

    Raises:
        KeyError: a required section or key is missing.
        ValueError: a value is out of range.
    """
    for section in _REQUIRED_SECTIONS:
        if section not in data:
            raise KeyError(f"Configuration is missing required section '{section}'")

    return WorkflowConfig(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        numbering=parse_numbering(data["numbering"]),
        approvals=parse_approvals(data["approvals"]),
        assignment=parse_assignment(data["assignment"]),
        database=parse_database(data.get("database") or {}),
        notifications=parse_notifications(data.get("notifications") or {}),
        checksum=checksum,
    )


def load_config_file(path: Path) -> WorkflowConfig:
    raw = Path(path).read_bytes()
    data = yaml.safe_load(raw) or {}
    return parse_config(data, checksum=compute_checksum(raw))
