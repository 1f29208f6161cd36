"""
Notification hooks for committed negotiation events.

Events are published after the store has committed a change. Listener
failures are logged and never propagate to the caller: a committed
transition cannot be undone by a notification problem.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import redis.asyncio as redis

from negotiation_engine.models import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NegotiationEvent:
    """
    A committed change worth telling the dashboard about.

    Attributes:
        event_type: e.g. ``negotiation.countered``, ``discount_code.issued``
        negotiation_id: Negotiation the event belongs to
        payload: JSON-serializable details
        occurred_at: When the change was committed
    """
    event_type: str
    negotiation_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "negotiation_id": self.negotiation_id,
            "payload": self.payload,
            "occurred_at": self.occurred_at.isoformat(),
        }


Listener = Callable[[NegotiationEvent], Union[None, Awaitable[None]]]


class NotificationHub:
    """In-process fan-out of negotiation events to subscribed listeners."""

    def __init__(self):
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def publish(self, event: NegotiationEvent) -> None:
        """Deliver ``event`` to every listener; sync and async listeners both work."""
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Listener {getattr(listener, '__name__', listener)} failed "
                    f"on {event.event_type}: {e}",
                    exc_info=True
                )


class RedisEventPublisher:
    """Listener forwarding events to a Redis pub/sub channel."""

    def __init__(self, client: Optional[redis.Redis], channel: str = "negotiation-events"):
        self.client = client
        self.channel = channel

    async def __call__(self, event: NegotiationEvent) -> None:
        if self.client is None:
            return
        await self.client.publish(self.channel, json.dumps(event.to_dict()))
        logger.debug(f"Published {event.event_type} to {self.channel}")
