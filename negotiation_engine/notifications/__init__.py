"""Notification hooks for negotiation events"""

from .hub import NegotiationEvent, NotificationHub, RedisEventPublisher

__all__ = ["NegotiationEvent", "NotificationHub", "RedisEventPublisher"]
