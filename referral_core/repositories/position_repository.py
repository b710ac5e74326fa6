"""
Network position repository.

Data access layer for NetworkPosition model. Traversals are built from
these single-hop lookups; no object graph is cached between calls.
"""

from typing import NamedTuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.models.network_position import NetworkPosition
from referral_core.repositories.base import BaseRepository


class PositionRow(NamedTuple):
    """Lightweight read-only position row for snapshots."""

    id: int
    member_id: int
    parent_position_id: int | None
    slot_index: int | None


class PositionRepository(BaseRepository[NetworkPosition]):
    """Network position repository with tree queries."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize position repository."""
        super().__init__(NetworkPosition, session)

    async def get_children(
        self, parent_ids: list[int]
    ) -> list[NetworkPosition]:
        """
        Get direct children of several positions.

        Args:
            parent_ids: Parent position IDs

        Returns:
            Children ordered by parent and slot
        """
        if not parent_ids:
            return []
        stmt = (
            select(NetworkPosition)
            .where(NetworkPosition.parent_position_id.in_(parent_ids))
            .order_by(NetworkPosition.parent_position_id, NetworkPosition.slot_index)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_all_rows(self) -> list[PositionRow]:
        """
        Read the whole position table as plain rows.

        Used to build immutable snapshots for period computations.
        """
        stmt = select(
            NetworkPosition.id,
            NetworkPosition.member_id,
            NetworkPosition.parent_position_id,
            NetworkPosition.slot_index,
        ).order_by(NetworkPosition.id)
        result = await self.session.execute(stmt)
        return [PositionRow(*row) for row in result.all()]
