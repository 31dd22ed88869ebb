"""
Assignment Selectors (``asset_modules.assignments.selectors``).

Read-only lookups of delivery tickets and asset movement history.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select

from asset_kernel.selectors.base import BaseSelector
from asset_modules.assignments.models import AssetMovement, DeliveryTicket
from asset_modules.assignments.orm import AssetMovementModel, DeliveryTicketModel


class AssignmentSelector(BaseSelector):

    def ticket_by_number(self, ticket_number: str) -> DeliveryTicket | None:
        row = self.session.execute(
            select(DeliveryTicketModel)
            .where(DeliveryTicketModel.ticket_number == ticket_number)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def ticket_for_requisition(self, requisition_id: UUID) -> DeliveryTicket | None:
        row = self.session.execute(
            select(DeliveryTicketModel)
            .where(DeliveryTicketModel.requisition_id == requisition_id)
            .order_by(DeliveryTicketModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()
        return row.to_dto() if row is not None else None

    def movements_for_asset(self, asset_id: UUID) -> list[AssetMovement]:
        """Movements for an asset, oldest first."""
        rows = self.session.scalars(
            select(AssetMovementModel)
            .where(AssetMovementModel.asset_id == asset_id)
            .order_by(AssetMovementModel.movement_date, AssetMovementModel.id)
        )
        return [row.to_dto() for row in rows]
