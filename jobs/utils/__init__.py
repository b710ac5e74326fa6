"""Task utilities."""

from jobs.utils.database import create_task_engine, create_task_session_maker
from jobs.utils.providers import (
    ProviderNotConfigured,
    get_chain_observer,
    get_transfer_executor,
    register_chain_observer,
    register_transfer_executor,
)


__all__ = [
    "ProviderNotConfigured",
    "create_task_engine",
    "create_task_session_maker",
    "get_chain_observer",
    "get_transfer_executor",
    "register_chain_observer",
    "register_transfer_executor",
]
