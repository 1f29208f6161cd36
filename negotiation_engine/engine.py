"""
Wiring of the engine components for a given configuration.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

import asyncpg
import redis.asyncio as redis

from negotiation_engine.config import EngineSettings, get_engine_settings
from negotiation_engine.discounts import DiscountCodeIssuer
from negotiation_engine.error_handling import ErrorHandler, RetryConfig
from negotiation_engine.listings import (
    InMemoryListingDirectory,
    ListingDirectory,
    PostgresListingDirectory,
)
from negotiation_engine.models import utcnow
from negotiation_engine.negotiation import NegotiationManager, NegotiationStateMachine
from negotiation_engine.notifications import NotificationHub, RedisEventPublisher
from negotiation_engine.policy import PolicyScanner
from negotiation_engine.rate_limiting import RateLimiter
from negotiation_engine.scheduler import ExpiryScheduler
from negotiation_engine.store import (
    InMemoryDiscountCodeLedger,
    InMemoryNegotiationStore,
    PostgresDiscountCodeLedger,
    PostgresNegotiationStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Engine:
    """All engine components sharing one configuration."""
    settings: EngineSettings
    directory: ListingDirectory
    manager: NegotiationManager
    issuer: DiscountCodeIssuer
    scheduler: ExpiryScheduler
    hub: NotificationHub


def build_engine(
    settings: Optional[EngineSettings] = None,
    pool: Optional[asyncpg.Pool] = None,
    redis_client: Optional[redis.Redis] = None,
    directory: Optional[ListingDirectory] = None,
    clock: Callable[[], datetime] = utcnow
) -> Engine:
    """
    Build the engine.

    Args:
        settings: Engine settings; defaults to the environment configuration
        pool: asyncpg pool, required for the postgres backend
        redis_client: Redis client; events are forwarded to it when given
        directory: Listing directory override
        clock: Source of the current time shared by every component

    Returns:
        Wired Engine
    """
    settings = settings or get_engine_settings()

    if settings.storage.backend == "postgres":
        if pool is None:
            raise ValueError("The postgres backend needs a connection pool")
        store = PostgresNegotiationStore(pool)
        ledger = PostgresDiscountCodeLedger(pool)
        directory = directory or PostgresListingDirectory(pool)
    elif settings.storage.backend == "memory":
        store = InMemoryNegotiationStore()
        ledger = InMemoryDiscountCodeLedger()
        directory = directory or InMemoryListingDirectory()
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage.backend}")

    hub = NotificationHub()
    if redis_client is not None:
        hub.subscribe(RedisEventPublisher(redis_client, settings.storage.event_channel))

    messaging = settings.messaging
    machine = NegotiationStateMachine(
        pricing=settings.pricing,
        lifetimes=settings.lifetimes,
        messaging=messaging,
        rate_limiter=RateLimiter(max_messages_per_hour=messaging.max_messages_per_hour),
    )
    scanner = PolicyScanner(
        allowed_domains=messaging.platform_domains,
        marker=messaging.redaction_marker,
    )
    issuer = DiscountCodeIssuer(
        ledger,
        lifetime=timedelta(hours=settings.lifetimes.code_ttl_hours),
        prefix=settings.code_prefix,
        clock=clock,
        hub=hub,
    )
    manager = NegotiationManager(
        store=store,
        directory=directory,
        issuer=issuer,
        machine=machine,
        scanner=scanner,
        hub=hub,
        clock=clock,
    )
    scheduler = ExpiryScheduler(
        manager,
        issuer,
        interval_seconds=settings.scheduler.interval_seconds,
        error_handler=ErrorHandler(RetryConfig(
            max_retries=settings.scheduler.max_retries,
            initial_backoff_seconds=settings.scheduler.initial_backoff_seconds,
        )),
        clock=clock,
    )

    logger.info(f"Engine built with {settings.storage.backend} backend")
    return Engine(
        settings=settings,
        directory=directory,
        manager=manager,
        issuer=issuer,
        scheduler=scheduler,
        hub=hub,
    )
