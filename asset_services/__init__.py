"""
asset_services -- cross-module orchestration and the public API.

Dependency direction:
    asset_services/ -> asset_modules/ -> asset_kernel/   (allowed)
    asset_kernel/   -> asset_modules/, asset_services/   (FORBIDDEN)
    asset_modules/  -> asset_services/                   (FORBIDDEN)
"""

from asset_services.notifications import (
    InMemoryNotificationDispatcher,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationPublisher,
    NotificationType,
    WorkflowNotification,
)
from asset_services.workflow import RequisitionWorkflow

__all__ = [
    "InMemoryNotificationDispatcher",
    "LoggingNotificationDispatcher",
    "NotificationDispatcher",
    "NotificationPublisher",
    "NotificationType",
    "RequisitionWorkflow",
    "WorkflowNotification",
]
