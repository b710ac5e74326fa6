"""
Shared fixtures for unit tests.

This module provides common fixtures used across multiple test modules:
- Compensation plans (default and shallow)
- Network snapshot builder
"""

from collections.abc import Callable
from datetime import UTC, datetime
from types import MappingProxyType

import pytest

from referral_core.config.business_constants import CompensationPlan
from referral_core.services.commission.snapshot import MemberState, NetworkSnapshot


@pytest.fixture
def plan() -> CompensationPlan:
    """Default compensation plan."""
    return CompensationPlan()


@pytest.fixture
def shallow_plan() -> CompensationPlan:
    """Two one-level structures of 3 positions each."""
    return CompensationPlan(structure_depth=1, max_structures=2)


@pytest.fixture
def build_snapshot() -> Callable[..., NetworkSnapshot]:
    """
    Build a snapshot from plain data.

    members: {id: (is_active, unlocked_structure_count)}
    children: {parent_member_id: [child_member_ids in slot order]}
    """

    def _build(
        members: dict[int, tuple[bool, int]],
        children: dict[int, list[int]],
    ) -> NetworkSnapshot:
        states = {
            member_id: MemberState(
                id=member_id,
                is_active=is_active,
                unlocked_structure_count=unlocked,
                payout_destination=f"acct-{member_id}",
            )
            for member_id, (is_active, unlocked) in members.items()
        }
        return NetworkSnapshot(
            taken_at=datetime(2026, 9, 30, tzinfo=UTC),
            members=MappingProxyType(states),
            children=MappingProxyType(
                {parent: tuple(ids) for parent, ids in children.items()}
            ),
        )

    return _build
