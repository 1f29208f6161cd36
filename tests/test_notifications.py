"""Tests for negotiation event notifications."""

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from negotiation_engine.config import EngineSettings
from negotiation_engine.engine import build_engine
from negotiation_engine.listings import InMemoryListingDirectory
from negotiation_engine.models import Listing
from negotiation_engine.notifications import (
    NegotiationEvent,
    NotificationHub,
    RedisEventPublisher,
)


T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_hub_delivers_to_sync_and_async_listeners():
    hub = NotificationHub()
    received = []

    def sync_listener(event):
        received.append(("sync", event.event_type))

    async def async_listener(event):
        received.append(("async", event.event_type))

    hub.subscribe(sync_listener)
    hub.subscribe(async_listener)
    asyncio.run(hub.publish(NegotiationEvent("negotiation.opened", "neg-1")))

    assert received == [("sync", "negotiation.opened"), ("async", "negotiation.opened")]


def test_failing_listener_does_not_block_others():
    hub = NotificationHub()
    received = []

    def broken(event):
        raise RuntimeError("dashboard offline")

    hub.subscribe(broken)
    hub.subscribe(received.append)

    asyncio.run(hub.publish(NegotiationEvent("negotiation.countered", "neg-1")))

    assert [e.event_type for e in received] == ["negotiation.countered"]


def test_unsubscribe():
    hub = NotificationHub()
    received = []
    listener = hub.subscribe(received.append)
    hub.unsubscribe(listener)

    asyncio.run(hub.publish(NegotiationEvent("negotiation.opened", "neg-1")))

    assert received == []


def test_redis_publisher_sends_json():
    client = AsyncMock()
    publisher = RedisEventPublisher(client, channel="events")
    event = NegotiationEvent("discount_code.issued", "neg-1", {"code": "NEGO-X"}, occurred_at=T0)

    asyncio.run(publisher(event))

    channel, body = client.publish.await_args.args
    assert channel == "events"
    assert json.loads(body) == {
        "event_type": "discount_code.issued",
        "negotiation_id": "neg-1",
        "payload": {"code": "NEGO-X"},
        "occurred_at": T0.isoformat(),
    }


def test_redis_publisher_without_client_is_silent():
    asyncio.run(RedisEventPublisher(None)(NegotiationEvent("negotiation.opened", "neg-1")))


def test_engine_publishes_committed_changes():
    directory = InMemoryListingDirectory([
        Listing(listing_id="listing-1", seller_id="seller-1", price=1000)
    ])
    client = AsyncMock()
    engine = build_engine(EngineSettings(), redis_client=client, directory=directory)
    received = []
    engine.hub.subscribe(received.append)

    async def scenario():
        negotiation = await engine.manager.create("buyer-1", "listing-1")
        await engine.manager.propose(negotiation.negotiation_id, "seller-1", 900)
        await engine.manager.accept(negotiation.negotiation_id, "buyer-1")
        # Replay commits nothing
        await engine.manager.accept(negotiation.negotiation_id, "buyer-1")

    asyncio.run(scenario())

    types = [e.event_type for e in received]
    assert types == [
        "negotiation.opened",
        "negotiation.countered",
        "negotiation.accepted",
        "discount_code.issued",
    ]
    assert client.publish.await_count == len(types)
