"""
Network tree module.

Placement of members into the shared referral tree and guarded traversals of
the resulting position tree.

Module Structure:
- traversal.py: Upline, downline counts and breadth-first downline scan
- placement.py: Locked, retried slot claims
- tree.py: NetworkTree facade
"""

from .placement import PlacementManager, placement_lock_key
from .traversal import DownlineScan, NetworkTraversal
from .tree import NetworkTree


__all__ = [
    "DownlineScan",
    "NetworkTraversal",
    "NetworkTree",
    "PlacementManager",
    "placement_lock_key",
]
