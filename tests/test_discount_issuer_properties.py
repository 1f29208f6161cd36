"""
Property-based tests for discount code issuance and redemption.

These tests verify exactly-once issuance per accepted negotiation,
exactly-once redemption under concurrency, binding checks and computed
expiry.
"""

import asyncio
import math
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from unittest.mock import patch

import pytest
from hypothesis import given, settings, strategies as st

from negotiation_engine.config import EngineSettings
from negotiation_engine.engine import build_engine
from negotiation_engine.error_handling import (
    AlreadyRedeemed,
    CodeExpired,
    CodeNotFound,
    InvalidTransition,
    Mismatch,
)
from negotiation_engine.listings import InMemoryListingDirectory
from negotiation_engine.models import DiscountCode, Listing, NegotiationState, RedemptionState


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
BUYER = "buyer-1"
SELLER = "seller-1"
LISTING_ID = "listing-1"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


def build(clock):
    directory = InMemoryListingDirectory([
        Listing(listing_id=LISTING_ID, seller_id=SELLER, price=1000),
        Listing(listing_id="listing-2", seller_id=SELLER, price=2000),
    ])
    return build_engine(EngineSettings(), directory=directory, clock=clock)


async def negotiate_to_acceptance(engine, clock, listing_id=LISTING_ID, bid=800, counter=750):
    """Buyer bids, seller counters, buyer accepts the counter."""
    negotiation = await engine.manager.create(BUYER, listing_id)
    clock.advance(minutes=1)
    await engine.manager.propose(negotiation.negotiation_id, BUYER, bid)
    clock.advance(minutes=1)
    await engine.manager.propose(negotiation.negotiation_id, SELLER, counter)
    clock.advance(minutes=1)
    return await engine.manager.accept(negotiation.negotiation_id, BUYER, counter)


def accepted_engine():
    clock = FakeClock()
    engine = build(clock)
    outcome = asyncio.run(negotiate_to_acceptance(engine, clock))
    return engine, clock, outcome


def test_accept_scenario_issues_code():
    """
    **Feature: negotiation-engine, Property 9: Code issued on acceptance**

    Accepting at 750 issues one code at 750, expiring 48 hours after issue.
    """
    engine, clock, outcome = accepted_engine()
    code = outcome.discount_code

    assert outcome.negotiation.state is NegotiationState.ACCEPTED
    assert code is not None
    assert code.redemption_price == 750
    assert code.original_price == 1000
    assert code.discount_amount == 250
    assert code.discount_percentage == 25
    assert code.issued_at == clock.now
    assert code.expires_at == code.issued_at + timedelta(hours=48)
    assert code.buyer_id == BUYER and code.listing_id == LISTING_ID
    assert re.fullmatch(r"NEGO-[A-Z0-9]{12}", code.code)


@given(callers=st.integers(min_value=2, max_value=10))
@settings(max_examples=15, deadline=None)
def test_concurrent_accepts_issue_one_code(callers):
    """
    **Feature: negotiation-engine, Property 10: Exactly-once issuance**

    For any number of duplicate accept calls racing on different threads,
    every caller receives the same single code.
    """
    clock = FakeClock()
    engine = build(clock)

    async def prepare():
        negotiation = await engine.manager.create(BUYER, LISTING_ID)
        await engine.manager.propose(negotiation.negotiation_id, SELLER, 900)
        return negotiation.negotiation_id

    negotiation_id = asyncio.run(prepare())

    def accept(_):
        return asyncio.run(engine.manager.accept(negotiation_id, BUYER))

    with ThreadPoolExecutor(max_workers=callers) as pool:
        outcomes = list(pool.map(accept, range(callers)))

    codes = {o.discount_code.code for o in outcomes}
    assert len(codes) == 1
    assert sum(1 for o in outcomes if o.applied) == 1
    assert len(asyncio.run(engine.issuer.list_for_buyer(BUYER))) == 1


def test_accept_replay_returns_existing_code():
    engine, clock, outcome = accepted_engine()
    negotiation_id = outcome.negotiation.negotiation_id

    replay = asyncio.run(engine.manager.accept(negotiation_id, BUYER))

    assert not replay.applied
    assert replay.discount_code.code == outcome.discount_code.code


@given(callers=st.integers(min_value=2, max_value=10))
@settings(max_examples=15, deadline=None)
def test_concurrent_redemptions_succeed_once(callers):
    """
    **Feature: negotiation-engine, Property 11: Exactly-once redemption**

    For any number of concurrent redemptions of one code, exactly one
    succeeds and every other caller gets AlreadyRedeemed.
    """
    engine, clock, outcome = accepted_engine()
    code = outcome.discount_code.code

    def redeem(_):
        try:
            return asyncio.run(engine.issuer.redeem(code, LISTING_ID, BUYER))
        except AlreadyRedeemed as e:
            return e

    with ThreadPoolExecutor(max_workers=callers) as pool:
        results = list(pool.map(redeem, range(callers)))

    winners = [r for r in results if not isinstance(r, AlreadyRedeemed)]
    assert len(winners) == 1
    assert winners[0].redemption_price == 750
    assert winners[0].discount_amount == 250
    assert asyncio.run(engine.issuer.get(code)).state is RedemptionState.REDEEMED


def test_codes_are_not_transferable():
    engine, clock, outcome = accepted_engine()
    code = outcome.discount_code.code

    with pytest.raises(Mismatch):
        asyncio.run(engine.issuer.redeem(code, "listing-2", BUYER))
    with pytest.raises(Mismatch):
        asyncio.run(engine.issuer.redeem(code, LISTING_ID, "buyer-2"))

    # A refused attempt does not consume the code
    assert asyncio.run(engine.issuer.redeem(code, LISTING_ID, BUYER)).code == code


def test_unknown_code():
    engine, clock, outcome = accepted_engine()

    with pytest.raises(CodeNotFound):
        asyncio.run(engine.issuer.redeem("NEGO-DOESNOTEXIST", LISTING_ID, BUYER))


def test_expiry_is_computed_without_sweeper():
    """
    **Feature: negotiation-engine, Property 12: Computed code expiry**

    A code past its expiry is refused even though no sweep has run.
    """
    engine, clock, outcome = accepted_engine()
    code = outcome.discount_code.code

    clock.advance(hours=48, seconds=1)
    with pytest.raises(CodeExpired):
        asyncio.run(engine.issuer.redeem(code, LISTING_ID, BUYER))
    with pytest.raises(CodeExpired):
        asyncio.run(engine.issuer.validate(code, LISTING_ID, BUYER))

    assert asyncio.run(engine.issuer.get(code)).state is RedemptionState.EXPIRED


def test_code_at_exact_expiry_is_still_valid():
    engine, clock, outcome = accepted_engine()
    clock.advance(hours=48)

    result = asyncio.run(engine.issuer.redeem(outcome.discount_code.code, LISTING_ID, BUYER))
    assert result.redeemed_at == clock.now


def test_validate_does_not_consume():
    engine, clock, outcome = accepted_engine()
    code = outcome.discount_code.code

    record = asyncio.run(engine.issuer.validate(code.lower(), LISTING_ID, BUYER))
    assert record.state is RedemptionState.UNREDEEMED

    asyncio.run(engine.issuer.redeem(f"  {code.lower()} ", LISTING_ID, BUYER))
    with pytest.raises(AlreadyRedeemed):
        asyncio.run(engine.issuer.validate(code, LISTING_ID, BUYER))


def test_issue_requires_acceptance():
    clock = FakeClock()
    engine = build(clock)
    negotiation = asyncio.run(engine.manager.create(BUYER, LISTING_ID))

    with pytest.raises(InvalidTransition):
        asyncio.run(engine.issuer.issue(negotiation))


def test_code_collision_is_regenerated():
    clock = FakeClock()
    engine = build(clock)

    async def scenario():
        first = await negotiate_to_acceptance(engine, clock)
        second = await negotiate_to_acceptance(engine, clock, listing_id="listing-2", bid=1600, counter=1500)
        return first, second

    with patch.object(
        engine.issuer,
        "generate_code",
        side_effect=["NEGO-AAAAAAAAAAAA", "NEGO-AAAAAAAAAAAA", "NEGO-BBBBBBBBBBBB"],
    ):
        first, second = asyncio.run(scenario())

    assert first.discount_code.code == "NEGO-AAAAAAAAAAAA"
    assert second.discount_code.code == "NEGO-BBBBBBBBBBBB"


def test_buyer_code_listing_reports_computed_status():
    engine, clock, outcome = accepted_engine()
    clock.advance(hours=49)

    codes = asyncio.run(engine.issuer.list_for_buyer(BUYER))
    assert [c.code for c in codes] == [outcome.discount_code.code]
    assert codes[0].to_dict(clock.now)["state"] == "expired"
    assert codes[0].state is RedemptionState.UNREDEEMED


def test_lowercase_prefix_codes_are_redeemable():
    clock = FakeClock()
    directory = InMemoryListingDirectory([
        Listing(listing_id=LISTING_ID, seller_id=SELLER, price=1000),
    ])
    engine = build_engine(EngineSettings(code_prefix="nego"), directory=directory, clock=clock)

    outcome = asyncio.run(negotiate_to_acceptance(engine, clock))
    code = outcome.discount_code.code

    assert code.startswith("NEGO-")
    assert asyncio.run(engine.issuer.redeem(code, LISTING_ID, BUYER)).redemption_price == 750


@given(
    original=st.integers(min_value=1, max_value=100000),
    discount_bps=st.integers(min_value=0, max_value=3000)
)
@settings(max_examples=200)
def test_discount_percentage_rounds_halves_up(original, discount_bps):
    """
    For any prices, the reported percentage is the exact percentage rounded
    to the nearest whole number, with halves rounded up.
    """
    amount = original * discount_bps // 10000
    code = DiscountCode(
        code="NEGO-AAAAAAAAAAAA",
        negotiation_id="neg-1",
        listing_id=LISTING_ID,
        buyer_id=BUYER,
        seller_id=SELLER,
        original_price=original,
        redemption_price=original - amount,
        currency="USD",
        issued_at=T0,
        expires_at=T0 + timedelta(hours=48),
    )

    exact = Fraction(amount * 100, original)
    assert code.discount_percentage == math.floor(exact + Fraction(1, 2))


def test_twelve_and_a_half_percent_reports_thirteen():
    engine, clock, outcome = accepted_engine()
    code = replace(outcome.discount_code, redemption_price=875)

    assert code.discount_percentage == 13
