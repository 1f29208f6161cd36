"""
Rate limiter for negotiation messages.

Limits how many messages one participant may post to a negotiation within
a sliding one-hour window. The window is computed from the negotiation's
own history, so the limit holds across processes without shared state.
"""

from datetime import datetime, timedelta
from typing import Iterable, List


class RateLimiter:
    """
    Sliding-window limit on messages per participant per negotiation.

    Attributes:
        max_messages_per_hour: Maximum number of messages in any one-hour window
        window: Length of the sliding window
    """

    def __init__(
        self,
        max_messages_per_hour: int = 10,
        window: timedelta = timedelta(hours=1)
    ):
        """
        Initialize rate limiter with configuration.

        Args:
            max_messages_per_hour: Maximum messages per window (default: 10)
            window: Window length (default: one hour)
        """
        self.max_messages_per_hour = max_messages_per_hour
        self.window = window

    def recent(self, timestamps: Iterable[datetime], now: datetime) -> List[datetime]:
        """
        Timestamps that fall inside the window ending at ``now``.
        """
        window_start = now - self.window
        return [ts for ts in timestamps if ts > window_start]

    def check_hourly_limit(self, timestamps: Iterable[datetime], now: datetime) -> bool:
        """
        Check whether one more message fits in the current window.

        Args:
            timestamps: Times of the participant's earlier messages
            now: Time of the message being submitted

        Returns:
            True if under the limit (the message may be posted), False if limit reached
        """
        return len(self.recent(timestamps, now)) < self.max_messages_per_hour
