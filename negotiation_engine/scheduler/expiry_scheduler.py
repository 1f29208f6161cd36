"""
Background sweeper expiring stale negotiations and discount codes.

Each record is processed independently: a failure on one is logged and
skipped. Only an unreachable persistence layer (retries exhausted while
listing candidates) marks the sweeper unhealthy.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from negotiation_engine.discounts import DiscountCodeIssuer
from negotiation_engine.error_handling import ErrorHandler, PersistenceUnavailable
from negotiation_engine.models import utcnow
from negotiation_engine.negotiation import NegotiationManager

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    """Summary of one sweep."""
    started_at: datetime
    expired_negotiations: List[str] = field(default_factory=list)
    expired_codes: List[str] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    persistence_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "expired_negotiations": len(self.expired_negotiations),
            "expired_codes": len(self.expired_codes),
            "failures": len(self.failures),
            "persistence_error": self.persistence_error,
        }


class ExpiryScheduler:
    """Periodically expires negotiations and codes past their deadlines"""

    def __init__(
        self,
        manager: NegotiationManager,
        issuer: DiscountCodeIssuer,
        interval_seconds: float = 300,
        error_handler: Optional[ErrorHandler] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.manager = manager
        self.issuer = issuer
        self.interval_seconds = interval_seconds
        self.error_handler = error_handler or ErrorHandler()
        self.clock = clock
        self.is_running = False
        self.healthy = True
        self.last_error: Optional[str] = None
        self.last_report: Optional[SweepReport] = None

    async def run_once(self) -> SweepReport:
        """
        Run a single sweep.

        Returns:
            SweepReport with expired records and per-record failures
        """
        now = self.clock()
        report = SweepReport(started_at=now)

        try:
            negotiation_ids = await self.error_handler.retry_with_backoff(
                self.manager.store.list_due_for_expiry, now
            )
            codes = await self.error_handler.retry_with_backoff(
                self.issuer.ledger.list_due_for_expiry, now
            )
        except PersistenceUnavailable as e:
            self.healthy = False
            self.last_error = e.message
            report.persistence_error = e.message
            logger.error(f"Expiry sweep aborted, persistence unavailable: {e.message}")
            self.last_report = report
            return report

        self.healthy = True
        self.last_error = None

        for negotiation_id in negotiation_ids:
            try:
                outcome = await self.manager.expire(negotiation_id)
                if outcome.applied:
                    report.expired_negotiations.append(negotiation_id)
            except Exception as e:
                report.failures[negotiation_id] = str(e)
                logger.error(f"Failed to expire negotiation {negotiation_id}: {e}")

        for code in codes:
            try:
                if await self.issuer.expire_if_due(code):
                    report.expired_codes.append(code)
            except Exception as e:
                report.failures[code] = str(e)
                logger.error(f"Failed to expire discount code {code}: {e}")

        logger.info(
            f"Expiry sweep done: {len(report.expired_negotiations)} negotiations, "
            f"{len(report.expired_codes)} codes, {len(report.failures)} failures"
        )
        self.last_report = report
        return report

    async def start(self):
        """Run sweeps every ``interval_seconds`` until stopped."""
        if self.is_running:
            logger.warning("Expiry scheduler is already running")
            return

        self.is_running = True
        logger.info(f"Starting expiry scheduler (every {self.interval_seconds}s)")

        while self.is_running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in expiry scheduler: {e}")
            await asyncio.sleep(self.interval_seconds)

    def stop(self):
        self.is_running = False
        logger.info("Stopping expiry scheduler")

    def health(self) -> Dict[str, Any]:
        return {
            "healthy": self.healthy,
            "running": self.is_running,
            "last_error": self.last_error,
            "last_sweep": self.last_report.to_dict() if self.last_report else None,
        }
