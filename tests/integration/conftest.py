"""
Shared fixtures for integration tests.

Every test gets a fresh in-memory SQLite database with the full schema,
plus in-memory fakes of the payment provider and chain observer.
"""

import asyncio
from collections.abc import Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from referral_core.models import Base, Member
from referral_core.services.network import NetworkTree
from referral_core.services.payout import TransferResult
from referral_core.utils.exceptions import TransferAmbiguous


class FakeTransferExecutor:
    """
    In-memory payment provider.

    Destinations can be configured to fail, to lose the response after
    executing, to lose the request before executing, or to hang. A delay
    slows every call down to widen race windows.
    """

    def __init__(self, balance: int = 10**15) -> None:
        self.balance = balance
        self.executed: dict[str, TransferResult] = {}
        self.calls: list[dict] = []
        self.failing: set[str] = set()
        self.lost_response: set[str] = set()
        self.lost_request: set[str] = set()
        self.hanging: set[str] = set()
        self.delay = 0.0

    async def transfer(
        self, destination: str, amount: int, currency: str, idempotency_key: str
    ) -> TransferResult:
        self.calls.append({
            "destination": destination,
            "amount": amount,
            "currency": currency,
            "idempotency_key": idempotency_key,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if destination in self.hanging:
            await asyncio.sleep(5)
        if destination in self.failing:
            return TransferResult(success=False, error="Account closed")
        if destination in self.lost_request:
            raise TransferAmbiguous("Connection reset")

        result = TransferResult(success=True, external_ref=f"tx-{len(self.executed) + 1}")
        self.executed[idempotency_key] = result
        self.balance -= amount

        if destination in self.lost_response:
            raise TransferAmbiguous("Response lost")
        return result

    async def get_available_balance(self, currency: str) -> int:
        return self.balance

    async def find_transfer(self, idempotency_key: str) -> TransferResult | None:
        return self.executed.get(idempotency_key)


class FakeChainObserver:
    """In-memory chain: cumulative amounts per deposit address."""

    def __init__(self) -> None:
        self.balances: dict[str, int] = {}

    def deposit(self, address: str, amount: int) -> None:
        self.balances[address] = self.balances.get(address, 0) + amount

    async def get_received_amount(self, deposit_address: str) -> int:
        return self.balances.get(deposit_address, 0)


@pytest_asyncio.fixture
async def engine():
    """In-memory database with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Database session (expire_on_commit disabled like production)."""
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )
    async with session_maker() as session:
        yield session


@pytest.fixture
def create_member(session) -> Callable[..., Awaitable[Member]]:
    """Factory creating committed members, optionally placed in the tree."""

    async def _create(
        sponsor: Member | None = None,
        is_active: bool = False,
        unlocked: int = 0,
        destination: str | None = "acct-default",
        name: str | None = None,
        place: bool = False,
    ) -> Member:
        member = Member(
            display_name=name,
            sponsor_id=sponsor.id if sponsor else None,
            is_active=is_active,
            unlocked_structure_count=unlocked,
            payout_destination=destination,
        )
        session.add(member)
        await session.commit()
        if place:
            await NetworkTree(session).assign_position(member.id, member.sponsor_id)
        return member

    return _create


@pytest.fixture
def transfer_executor() -> FakeTransferExecutor:
    """Fake payment provider."""
    return FakeTransferExecutor()


@pytest.fixture
def chain_observer() -> FakeChainObserver:
    """Fake chain observer."""
    return FakeChainObserver()
