"""
Test Suite Configuration
"""
import os

# Settings are cached on first use; pin the test environment before any import
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("AUTH_ENABLED", "false")
os.environ.setdefault("REDIS_ENABLED", "false")

from datetime import datetime
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from sr_dashboard.config import get_settings
from sr_dashboard.database.connection import build_session_factory
from sr_dashboard.database.models import (
    Base,
    CsrInteraction,
    DeliveryBoy,
    MarketingPerson,
    Order,
    OrderStatus,
    OrderStatusEvent,
    Staff,
    Transaction,
    TransactionStatus,
    User,
)

get_settings.cache_clear()


def _memory_engine() -> AsyncEngine:
    return create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory store with the operational schema"""
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def broken_session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Reachable store without the schema; every aggregation query errors"""
    engine = _memory_engine()
    yield build_session_factory(engine)
    await engine.dispose()


class StoreBuilder:
    """Adds operational rows with sensible defaults"""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory
        self._pending = []

    def referrer(
        self,
        id: int,
        name: Optional[str],
        referral_code: str,
        status: Optional[int] = 1,
        created_at: datetime = datetime(2025, 1, 5, 9, 0),
    ) -> MarketingPerson:
        row = MarketingPerson(
            id=id,
            name=name,
            referral_code=referral_code,
            mobile=f"2547000000{id:02d}",
            email=f"sr{id}@example.com",
            status=status,
            created_at=created_at,
        )
        self._pending.append(row)
        return row

    def user(self, id: int, referral_code: Optional[str], created_at: datetime, name: Optional[str] = None) -> User:
        row = User(
            id=id,
            name=name or f"Customer {id}",
            mobile=f"2547110000{id:02d}",
            referral_code=referral_code,
            created_at=created_at,
        )
        self._pending.append(row)
        return row

    def order(
        self,
        id: int,
        user_id: int,
        created_at: datetime,
        total: str = "17.25",
        delivery_charge: str = "0",
        status: OrderStatus = OrderStatus.DELIVERED,
        delivery_boy_id: Optional[int] = None,
    ) -> Order:
        total_value = Decimal(total)
        charge = Decimal(delivery_charge)
        row = Order(
            id=id,
            user_id=user_id,
            delivery_boy_id=delivery_boy_id,
            total=total_value,
            delivery_charge=charge,
            final_total=total_value + charge,
            active_status=status.value,
            created_at=created_at,
        )
        self._pending.append(row)
        return row

    def transaction(
        self,
        id: int,
        order_id: int,
        created_at: datetime,
        status: TransactionStatus = TransactionStatus.SUCCESS,
        amount: str = "17.25",
    ) -> Transaction:
        row = Transaction(id=id, order_id=order_id, amount=Decimal(amount), status=status.value, created_at=created_at)
        self._pending.append(row)
        return row

    def driver(self, id: int, name: str, status: int = 1) -> DeliveryBoy:
        row = DeliveryBoy(id=id, name=name, mobile=f"2547220000{id:02d}", status=status, created_at=datetime(2025, 1, 1))
        self._pending.append(row)
        return row

    def staff(self, id: int, name: str, role: str, status: int = 1) -> Staff:
        row = Staff(id=id, name=name, email=f"staff{id}@example.com", role=role, status=status, created_at=datetime(2025, 1, 1))
        self._pending.append(row)
        return row

    def event(
        self,
        id: int,
        order_id: int,
        status: OrderStatus,
        created_at: datetime,
        created_by: Optional[int] = None,
    ) -> OrderStatusEvent:
        row = OrderStatusEvent(id=id, order_id=order_id, status=status.value, created_by=created_by, created_at=created_at)
        self._pending.append(row)
        return row

    def interaction(
        self,
        id: int,
        csr_id: int,
        interaction_type: str,
        outcome: str,
        created_at: datetime,
        duration_seconds: int = 60,
        user_id: Optional[int] = None,
        order_id: Optional[int] = None,
    ) -> CsrInteraction:
        row = CsrInteraction(
            id=id,
            csr_id=csr_id,
            user_id=user_id,
            order_id=order_id,
            interaction_type=interaction_type,
            outcome=outcome,
            duration_seconds=duration_seconds,
            created_at=created_at,
        )
        self._pending.append(row)
        return row

    async def commit(self) -> None:
        async with self.session_factory() as session:
            session.add_all(self._pending)
            await session.commit()
        self._pending = []


@pytest.fixture
def store(session_factory) -> StoreBuilder:
    return StoreBuilder(session_factory)
