"""Background expiry sweeper"""

from .expiry_scheduler import ExpiryScheduler, SweepReport

__all__ = ["ExpiryScheduler", "SweepReport"]
