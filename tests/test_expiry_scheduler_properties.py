"""
Property-based tests for the expiry scheduler.

These tests verify that stale negotiations and codes are expired, that one
failing record never blocks the rest of a sweep, and that only an
unreachable persistence layer marks the sweeper unhealthy.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

from hypothesis import given, settings, strategies as st

from negotiation_engine.config import EngineSettings
from negotiation_engine.engine import build_engine
from negotiation_engine.error_handling import ErrorHandler, RetryConfig
from negotiation_engine.listings import InMemoryListingDirectory
from negotiation_engine.main import format_sweep_report
from negotiation_engine.models import Listing, NegotiationState, RedemptionState


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
SELLER = "seller-1"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def build(clock, listings=3):
    directory = InMemoryListingDirectory([
        Listing(listing_id=f"listing-{i}", seller_id=SELLER, price=1000)
        for i in range(listings)
    ])
    engine = build_engine(EngineSettings(), directory=directory, clock=clock)
    engine.scheduler.error_handler = ErrorHandler(RetryConfig(max_retries=2, initial_backoff_seconds=0))
    return engine


def test_idle_negotiation_expires_after_seven_days():
    """
    **Feature: negotiation-engine, Property 13: Expiry sweep**

    A negotiation created at T0 with no activity is expired by a sweep at
    T0+7d+1min; a later propose returns the expired record unchanged.
    """
    clock = FakeClock()
    engine = build(clock)
    negotiation = asyncio.run(engine.manager.create("buyer-1", "listing-0"))

    clock.advance(days=7, minutes=1)
    report = asyncio.run(engine.scheduler.run_once())

    assert report.expired_negotiations == [negotiation.negotiation_id]
    assert report.failures == {}

    outcome = asyncio.run(engine.manager.propose(negotiation.negotiation_id, "buyer-1", 900))
    assert not outcome.applied
    assert outcome.negotiation.state is NegotiationState.EXPIRED


def test_negotiation_not_yet_due_is_kept():
    clock = FakeClock()
    engine = build(clock)
    negotiation = asyncio.run(engine.manager.create("buyer-1", "listing-0"))

    clock.advance(days=7, minutes=-1)
    report = asyncio.run(engine.scheduler.run_once())

    assert report.expired_negotiations == []
    current = asyncio.run(engine.manager.get(negotiation.negotiation_id))
    assert current.state is NegotiationState.OPEN


def test_activity_does_not_extend_expiry():
    clock = FakeClock()
    engine = build(clock)
    negotiation = asyncio.run(engine.manager.create("buyer-1", "listing-0"))

    clock.advance(days=6)
    asyncio.run(engine.manager.propose(negotiation.negotiation_id, "buyer-1", 900))
    clock.advance(days=1, minutes=1)

    report = asyncio.run(engine.scheduler.run_once())
    assert report.expired_negotiations == [negotiation.negotiation_id]


def test_sweep_is_idempotent():
    clock = FakeClock()
    engine = build(clock)
    asyncio.run(engine.manager.create("buyer-1", "listing-0"))
    clock.advance(days=8)

    first = asyncio.run(engine.scheduler.run_once())
    second = asyncio.run(engine.scheduler.run_once())

    assert len(first.expired_negotiations) == 1
    assert second.expired_negotiations == []


def test_unredeemed_codes_are_marked_expired():
    clock = FakeClock()
    engine = build(clock)

    async def accept():
        negotiation = await engine.manager.create("buyer-1", "listing-0")
        await engine.manager.propose(negotiation.negotiation_id, SELLER, 900)
        return await engine.manager.accept(negotiation.negotiation_id, "buyer-1")

    code = asyncio.run(accept()).discount_code
    clock.advance(hours=48, minutes=1)

    report = asyncio.run(engine.scheduler.run_once())

    assert report.expired_codes == [code.code]
    assert asyncio.run(engine.issuer.get(code.code)).state is RedemptionState.EXPIRED


@given(
    count=st.integers(min_value=2, max_value=6),
    failing=st.integers(min_value=0, max_value=5)
)
@settings(max_examples=25, deadline=None)
def test_one_failing_record_does_not_block_the_sweep(count, failing):
    """
    **Feature: negotiation-engine, Property 14: Isolated sweep failures**

    For any set of due negotiations where processing one of them fails,
    every other negotiation is still expired and the failure is reported.
    """
    failing = failing % count
    clock = FakeClock()
    engine = build(clock, listings=count)

    async def create_all():
        return [
            (await engine.manager.create(f"buyer-{i}", f"listing-{i}")).negotiation_id
            for i in range(count)
        ]

    ids = asyncio.run(create_all())
    broken_id = ids[failing]
    real_expire = engine.manager.expire

    async def flaky_expire(negotiation_id):
        if negotiation_id == broken_id:
            raise RuntimeError("row lock timeout")
        return await real_expire(negotiation_id)

    engine.manager.expire = flaky_expire
    clock.advance(days=8)
    report = asyncio.run(engine.scheduler.run_once())

    assert set(report.expired_negotiations) == set(ids) - {broken_id}
    assert list(report.failures) == [broken_id]
    assert engine.scheduler.healthy


def test_unreachable_persistence_marks_unhealthy():
    clock = FakeClock()
    engine = build(clock)
    store = engine.manager.store
    real_listing = store.list_due_for_expiry
    store.list_due_for_expiry = AsyncMock(side_effect=ConnectionError("connection refused"))

    report = asyncio.run(engine.scheduler.run_once())

    assert report.persistence_error is not None
    assert store.list_due_for_expiry.await_count == 2
    health = engine.scheduler.health()
    assert health["healthy"] is False
    assert "connection refused" in health["last_error"]

    # Recovers on the next successful sweep
    store.list_due_for_expiry = real_listing
    asyncio.run(engine.scheduler.run_once())
    assert engine.scheduler.health()["healthy"] is True


def test_start_and_stop():
    clock = FakeClock()
    engine = build(clock)
    engine.scheduler.interval_seconds = 0.01

    async def scenario():
        task = asyncio.create_task(engine.scheduler.start())
        await asyncio.sleep(0.05)
        assert engine.scheduler.is_running
        engine.scheduler.stop()
        await asyncio.wait_for(task, timeout=1)

    asyncio.run(scenario())

    assert not engine.scheduler.is_running
    assert engine.scheduler.last_report is not None


def test_sweep_report_formatting():
    clock = FakeClock()
    engine = build(clock)
    asyncio.run(engine.manager.create("buyer-1", "listing-0"))
    clock.advance(days=8)

    text = format_sweep_report(asyncio.run(engine.scheduler.run_once()))

    assert "Negotiations expired: 1" in text
    assert "Discount codes expired: 0" in text
