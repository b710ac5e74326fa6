"""
Network traversal module.

Read-only walks over the position tree: upline chains, downline level
counts and the breadth-first downline scan used by placement and
qualification. Every walk is guarded by a visited set and level checks,
so corrupted data raises IntegrityViolation instead of looping.
"""

from collections import defaultdict
from dataclasses import dataclass

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from referral_core.config.business_constants import DEFAULT_PLAN, CompensationPlan
from referral_core.models.network_position import NetworkPosition
from referral_core.repositories.position_repository import PositionRepository
from referral_core.utils.exceptions import IntegrityViolation, RecordNotFound


@dataclass(frozen=True)
class DownlineScan:
    """
    Breadth-first view of a position's downline.

    Attributes:
        positions: Descendants in breadth-first order (levels top-down,
            parents left to right, slots ascending), at most `limit`
        free_slot: First free (parent, slot index) in the same order, None
            when the scan stopped at the limit before finding one
        truncated: Scan stopped at the limit, more descendants may exist
    """

    positions: tuple[NetworkPosition, ...]
    free_slot: tuple[NetworkPosition, int] | None
    truncated: bool

    @property
    def count(self) -> int:
        """Descendants seen by the scan."""
        return len(self.positions)


class NetworkTraversal:
    """Guarded traversals of the network position tree."""

    def __init__(
        self, session: AsyncSession, plan: CompensationPlan = DEFAULT_PLAN
    ) -> None:
        """Initialize traversal helper."""
        self.session = session
        self.plan = plan
        self.position_repo = PositionRepository(session)

    async def get_upline(self, position_id: int) -> list[NetworkPosition]:
        """
        Get ancestor chain of a position.

        Levels must drop by exactly one per hop and reach 0 at the root, so
        the chain length always equals the starting level.

        Args:
            position_id: Starting position ID

        Returns:
            Ancestors from the direct parent to the root (root last)

        Raises:
            RecordNotFound: Unknown position
            IntegrityViolation: Cycle, dangling parent or broken levels
        """
        position = await self.position_repo.get_by_id(position_id)
        if position is None:
            raise RecordNotFound(f"Network position {position_id} not found")

        chain: list[NetworkPosition] = []
        visited = {position.id}
        current = position

        while current.parent_position_id is not None:
            parent_id = current.parent_position_id
            if parent_id in visited:
                logger.error(
                    f"Cycle detected in upline of position {position_id}",
                    extra={"position_id": position_id, "repeated_id": parent_id},
                )
                raise IntegrityViolation(
                    f"Cycle detected at position {parent_id}",
                    position_id=position_id,
                )
            visited.add(parent_id)

            parent = await self.position_repo.get_by_id(parent_id)
            if parent is None:
                raise IntegrityViolation(
                    f"Position {current.id} references missing parent {parent_id}",
                    position_id=current.id,
                )
            if parent.level != current.level - 1:
                raise IntegrityViolation(
                    f"Level sequence broken between positions {parent.id} "
                    f"(level {parent.level}) and {current.id} (level {current.level})",
                    position_id=current.id,
                )

            chain.append(parent)
            current = parent

        if current.level != 0:
            raise IntegrityViolation(
                f"Upline of position {position_id} ends at position {current.id} "
                f"on level {current.level}",
                position_id=current.id,
            )

        return chain

    async def get_downline_counts(self, position_id: int) -> dict[int, int]:
        """
        Count descendants per relative level.

        Args:
            position_id: Root of the counted subtree

        Returns:
            Dict mapping relative level (1..structure_depth) to count

        Raises:
            IntegrityViolation: A position is reached twice
        """
        counts = {level: 0 for level in range(1, self.plan.structure_depth + 1)}
        frontier = [position_id]
        visited = {position_id}

        for level in range(1, self.plan.structure_depth + 1):
            children = await self.position_repo.get_children(frontier)
            next_frontier = []
            for child in children:
                if child.id in visited:
                    raise IntegrityViolation(
                        f"Position {child.id} reached twice below {position_id}",
                        position_id=child.id,
                    )
                visited.add(child.id)
                next_frontier.append(child.id)

            counts[level] = len(next_frontier)
            if not next_frontier:
                break
            frontier = next_frontier

        return counts

    async def scan_downline(
        self, root: NetworkPosition, limit: int
    ) -> DownlineScan:
        """
        Breadth-first scan of a downline.

        One query per level. Stops once `limit` descendants were seen or
        the subtree is exhausted.

        Args:
            root: Position whose downline is scanned
            limit: Maximum descendants to collect

        Returns:
            Downline scan

        Raises:
            IntegrityViolation: A position is reached twice
        """
        descendants: list[NetworkPosition] = []
        free_slot: tuple[NetworkPosition, int] | None = None
        frontier = [root]
        visited = {root.id}

        while frontier and len(descendants) < limit:
            children = await self.position_repo.get_children(
                [parent.id for parent in frontier]
            )
            by_parent: dict[int, dict[int, NetworkPosition]] = defaultdict(dict)
            for child in children:
                if child.id in visited:
                    raise IntegrityViolation(
                        f"Position {child.id} reached twice below position {root.id}",
                        position_id=child.id,
                    )
                visited.add(child.id)
                by_parent[child.parent_position_id][child.slot_index] = child

            next_frontier = []
            for parent in frontier:
                taken = by_parent.get(parent.id, {})
                if free_slot is None and len(taken) < self.plan.fan_out:
                    free_slot = parent, next(
                        slot for slot in range(self.plan.fan_out) if slot not in taken
                    )
                next_frontier.extend(taken[slot] for slot in sorted(taken))

            descendants.extend(next_frontier)
            frontier = next_frontier

        return DownlineScan(
            positions=tuple(descendants[:limit]),
            free_slot=free_slot,
            truncated=len(descendants) >= limit,
        )
