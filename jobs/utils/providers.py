"""
Provider registry for tasks.

Workers build the payment provider and chain observer from the factories
named in settings; embedding applications may register instances directly.
"""

from loguru import logger

from referral_core.config.settings import settings
from referral_core.services.payout import TransferExecutor
from referral_core.services.reconciliation import ChainObserver

_transfer_executor: TransferExecutor | None = None
_chain_observer: ChainObserver | None = None


class ProviderNotConfigured(RuntimeError):
    """No provider registered and no factory configured."""


def register_transfer_executor(executor: TransferExecutor | None) -> None:
    """Use this executor for payout tasks (None resets)."""
    global _transfer_executor
    _transfer_executor = executor


def register_chain_observer(observer: ChainObserver | None) -> None:
    """Use this observer for intent tasks (None resets)."""
    global _chain_observer
    _chain_observer = observer


def get_transfer_executor() -> TransferExecutor:
    """
    Get the payment provider.

    Raises:
        ProviderNotConfigured: Nothing registered and
            TRANSFER_EXECUTOR_FACTORY unset
    """
    global _transfer_executor
    if _transfer_executor is None:
        factory = settings.transfer_executor_factory
        if factory is None:
            raise ProviderNotConfigured("TRANSFER_EXECUTOR_FACTORY is not configured")
        _transfer_executor = factory()
        logger.info(f"Transfer executor created: {type(_transfer_executor).__name__}")
    return _transfer_executor


def get_chain_observer() -> ChainObserver:
    """
    Get the chain observer.

    Raises:
        ProviderNotConfigured: Nothing registered and
            CHAIN_OBSERVER_FACTORY unset
    """
    global _chain_observer
    if _chain_observer is None:
        factory = settings.chain_observer_factory
        if factory is None:
            raise ProviderNotConfigured("CHAIN_OBSERVER_FACTORY is not configured")
        _chain_observer = factory()
        logger.info(f"Chain observer created: {type(_chain_observer).__name__}")
    return _chain_observer
