"""
asset_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.

Architecture position:
    Configuration.  Sits beside ``asset_kernel`` and below
    ``asset_modules`` / ``asset_services``.  The kernel MUST NEVER import
    from ``asset_config``; services receive a ``WorkflowConfig`` by
    injection.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with the requested name.
    - ``KeyError`` / ``ValueError`` -- schema validation failures.

Every successful call emits an ``ASSET_CONFIG_TRACE`` log entry carrying the
config id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from asset_config.loader import load_config_file
from asset_config.schema import (
    ApprovalConfig,
    AssignmentConfig,
    DatabaseConfig,
    NotificationConfig,
    NumberingConfig,
    WorkflowConfig,
)
from asset_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    set_name: str = "default",
    config_dir: Path | None = None,
) -> WorkflowConfig:
    """Load and validate the named configuration set.

    Args:
        set_name: File stem of the set under the configuration directory.
        config_dir: Override path to configuration sets directory.
            Defaults to asset_config/sets/.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{set_name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"No configuration set {set_name!r} in {sets_dir}")

    config = load_config_file(path)

    _logger.info(
        "ASSET_CONFIG_TRACE",
        extra={
            "trace_type": "ASSET_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_version": config.version,
            "config_checksum": config.checksum,
            "source_path": str(path),
        },
    )
    return config


__all__ = [
    "ApprovalConfig",
    "AssignmentConfig",
    "DatabaseConfig",
    "NotificationConfig",
    "NumberingConfig",
    "WorkflowConfig",
    "get_active_config",
]
