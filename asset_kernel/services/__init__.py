"""Kernel services (flush-only; callers own the transaction)."""

from asset_kernel.services.base import BaseService
from asset_kernel.services.sequence_service import (
    DocumentNumberAllocator,
    ParsedDocumentNumber,
    SequenceCounter,
    SequenceService,
)

__all__ = [
    "BaseService",
    "DocumentNumberAllocator",
    "ParsedDocumentNumber",
    "SequenceCounter",
    "SequenceService",
]
