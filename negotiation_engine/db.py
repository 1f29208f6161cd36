"""
Database connection and initialization.
"""

import asyncpg
import redis.asyncio as redis
from typing import Optional
import logging

logger = logging.getLogger(__name__)

# Global connection pools
pg_pool: Optional[asyncpg.Pool] = None
redis_client: Optional[redis.Redis] = None


async def init_db(database_url: Optional[str] = None, redis_url: Optional[str] = None):
    """Initialize database connections"""
    global pg_pool, redis_client

    # PostgreSQL (only for the postgres storage backend)
    if database_url:
        try:
            pg_pool = await asyncpg.create_pool(database_url, min_size=2, max_size=10)
            logger.info("PostgreSQL connection pool created")

            # Create tables
            await create_tables()
        except Exception as e:
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise

    # Redis (optional, used for event publishing)
    if redis_url:
        try:
            redis_client = redis.from_url(redis_url, decode_responses=True)
            await redis_client.ping()
            logger.info("Redis connection established")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise


async def close_db():
    """Close database connections"""
    global pg_pool, redis_client

    if pg_pool:
        await pg_pool.close()
        pg_pool = None
        logger.info("PostgreSQL connection pool closed")

    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")


async def create_tables():
    """Create database tables if they don't exist"""
    async with pg_pool.acquire() as conn:
        # Listings table (read-only for the engine, owned by the catalogue)
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS listings (
                id TEXT PRIMARY KEY,
                seller_id TEXT NOT NULL,
                price BIGINT NOT NULL,
                currency TEXT NOT NULL DEFAULT 'USD',
                max_discount_bps INTEGER,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        # Negotiations table
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS negotiations (
                negotiation_id TEXT PRIMARY KEY,
                listing_id TEXT NOT NULL,
                seller_id TEXT NOT NULL,
                buyer_id TEXT NOT NULL,
                state TEXT NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL,
                last_activity_at TIMESTAMPTZ NOT NULL,
                version INTEGER NOT NULL DEFAULT 0,
                body JSONB NOT NULL,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
        """)

        # At most one active negotiation per (buyer, listing)
        await conn.execute("""
            CREATE UNIQUE INDEX IF NOT EXISTS uq_negotiations_active_pair
            ON negotiations(buyer_id, listing_id)
            WHERE state IN ('open', 'countered');
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_negotiations_state_expires
            ON negotiations(state, expires_at);
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_negotiations_seller_state
            ON negotiations(seller_id, state);
        """)

        # Discount codes table
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS discount_codes (
                code TEXT PRIMARY KEY,
                negotiation_id TEXT NOT NULL UNIQUE,
                listing_id TEXT NOT NULL,
                buyer_id TEXT NOT NULL,
                seller_id TEXT NOT NULL,
                original_price BIGINT NOT NULL,
                redemption_price BIGINT NOT NULL,
                currency TEXT NOT NULL,
                issued_at TIMESTAMPTZ NOT NULL,
                expires_at TIMESTAMPTZ NOT NULL,
                state TEXT NOT NULL DEFAULT 'unredeemed',
                redeemed_at TIMESTAMPTZ
            )
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_discount_codes_buyer ON discount_codes(buyer_id);
        """)

        await conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_discount_codes_state_expires
            ON discount_codes(state, expires_at);
        """)

        logger.info("Database tables created/verified")


def get_pg_pool() -> asyncpg.Pool:
    """Get PostgreSQL connection pool"""
    if pg_pool is None:
        raise RuntimeError("Database not initialized")
    return pg_pool


def get_redis() -> Optional[redis.Redis]:
    """Get Redis client, or None when event publishing is disabled"""
    return redis_client
