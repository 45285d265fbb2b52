"""Analytics Service: テーブル定義"""


from sqlalchemy import (
    BigInteger,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.ext.asyncio import AsyncEngine

metadata = MetaData()

# One immutable row per consumed message.
events = Table(
    "events",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("event_type", String(50), nullable=False, index=True),
    Column("entity_id", BigInteger),
    Column("user_id", BigInteger, index=True),
    Column("metadata", Text),
    Column("created_at", DateTime(timezone=True), nullable=False, index=True),
)

# Single mutable row of running totals.
analytics_summary = Table(
    "analytics_summary",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("total_orders", BigInteger, nullable=False, default=0),
    Column("total_revenue", Numeric(15, 2), nullable=False, default=0),
    Column("total_users", BigInteger, nullable=False, default=0),
    Column("total_products", BigInteger, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

# Event ids already folded (ANALYTICS_DEDUPLICATE=true).
processed_events = Table(
    "processed_events",
    metadata,
    Column("event_id", String(64), primary_key=True),
    Column("processed_at", DateTime(timezone=True), nullable=False),
)


async def init_schema(engine: AsyncEngine) -> None:
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
