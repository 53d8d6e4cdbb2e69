"""
Demo Database Seeding

Loads a generated demo dataset into the dashboard's schema. Only meant for
local development and demos; production data is owned by the ordering
platform and the dashboard only reads it.
"""

import asyncio
from typing import Any, Dict, List, Optional, Type

import structlog
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from sr_dashboard.data.generators import DatasetSize, DemoDataGenerator, DemoDataset
from sr_dashboard.database.connection import build_engine, build_session_factory, get_db
from sr_dashboard.database.models import (
    Base,
    CsrInteraction,
    DeliveryBoy,
    MarketingPerson,
    Order,
    OrderStatusEvent,
    Staff,
    Transaction,
    User,
)

logger = structlog.get_logger(__name__)

CHUNK_SIZE = 1000

# Foreign-key order
TABLE_MODELS: Dict[str, Type[Base]] = {
    "marketing_persons": MarketingPerson,
    "users": User,
    "delivery_boys": DeliveryBoy,
    "staff": Staff,
    "orders": Order,
    "transactions": Transaction,
    "order_statuses": OrderStatusEvent,
    "csr_interactions": CsrInteraction,
}


async def execute_batch_insert(
    session_factory: async_sessionmaker[AsyncSession],
    model: Type[Base],
    records: List[Dict[str, Any]],
) -> int:
    """Insert records in chunks within one transaction"""
    if not records:
        return 0

    async with get_db(session_factory) as db:
        for i in range(0, len(records), CHUNK_SIZE):
            await db.execute(insert(model), records[i:i + CHUNK_SIZE])
        await db.commit()

    logger.info("Inserted records", table=model.__tablename__, rows=len(records))
    return len(records)


async def create_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Schema created", tables=sorted(Base.metadata.tables))


async def seed_dataset(
    dataset: DemoDataset,
    session_factory: async_sessionmaker[AsyncSession],
) -> Dict[str, int]:
    """Insert every table of dataset; returns rows inserted per table"""
    counts = {}
    for name, model in TABLE_MODELS.items():
        frame = dataset.tables.get(name)
        records = frame.to_dicts() if frame is not None else []
        counts[name] = await execute_batch_insert(session_factory, model, records)
    return counts


async def seed_database(
    url: Optional[str] = None,
    size: Optional[DatasetSize] = None,
    seed: int = 42,
    create: bool = False,
) -> Dict[str, int]:
    """Generate a demo dataset and load it into the configured database"""
    engine = build_engine(url)
    try:
        if create:
            await create_schema(engine)
        dataset = DemoDataGenerator(seed=seed).generate(size)
        counts = await seed_dataset(dataset, build_session_factory(engine))
        logger.info("Database seeding completed", **counts)
        return counts
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed_database(create=True))
