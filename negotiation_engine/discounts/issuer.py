"""
Discount code issuance and redemption.

Codes are opaque random strings bound to one buyer and one listing. The
ledger guarantees one code per negotiation; redemption is a single
read-modify-write on the code record, so concurrent redemptions of the
same code succeed exactly once.
"""

import logging
import secrets
import string
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from negotiation_engine.error_handling import (
    AlreadyIssued,
    AlreadyRedeemed,
    CodeExpired,
    DuplicateCode,
    InvalidTransition,
    Mismatch,
)
from negotiation_engine.models import (
    DiscountCode,
    Negotiation,
    NegotiationState,
    RedemptionResult,
    RedemptionState,
    utcnow,
)
from negotiation_engine.notifications import NegotiationEvent, NotificationHub
from negotiation_engine.store import DiscountCodeLedger

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 12
MAX_GENERATION_ATTEMPTS = 5


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


class DiscountCodeIssuer:
    """
    Mints, validates and redeems discount codes.

    Attributes:
        ledger: Code persistence
        lifetime: Time from issue to expiry
        prefix: Human-readable code prefix
        clock: Source of the current time
        hub: Receives issue, redeem and expiry events
    """

    def __init__(
        self,
        ledger: DiscountCodeLedger,
        lifetime: timedelta = timedelta(hours=48),
        prefix: str = "NEGO",
        clock: Callable[[], datetime] = utcnow,
        hub: Optional[NotificationHub] = None
    ):
        self.ledger = ledger
        self.lifetime = lifetime
        self.prefix = normalize_code(prefix)
        self.clock = clock
        self.hub = hub or NotificationHub()

    def generate_code(self) -> str:
        """Random code with 62 bits of entropy or more."""
        body = "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))
        return f"{self.prefix}-{body}" if self.prefix else body

    async def issue(self, negotiation: Negotiation) -> DiscountCode:
        """
        Issue the code for an accepted negotiation.

        Args:
            negotiation: Negotiation in the accepted state

        Returns:
            The new discount code

        Raises:
            InvalidTransition: If the negotiation is not accepted
            AlreadyIssued: If the negotiation already has a code
        """
        if negotiation.state is not NegotiationState.ACCEPTED or negotiation.agreed_price is None:
            raise InvalidTransition(
                f"Negotiation {negotiation.negotiation_id} has not been accepted"
            )

        issued_at = self.clock()
        for attempt in range(MAX_GENERATION_ATTEMPTS):
            code = DiscountCode(
                code=self.generate_code(),
                negotiation_id=negotiation.negotiation_id,
                listing_id=negotiation.listing_id,
                buyer_id=negotiation.buyer_id,
                seller_id=negotiation.seller_id,
                original_price=negotiation.original_price,
                redemption_price=negotiation.agreed_price,
                currency=negotiation.currency,
                issued_at=issued_at,
                expires_at=issued_at + self.lifetime,
            )
            try:
                await self.ledger.insert(code)
            except DuplicateCode:
                logger.warning(f"Code collision on attempt {attempt + 1}, regenerating")
                continue

            logger.info(
                f"Issued discount code for negotiation {negotiation.negotiation_id} "
                f"at {code.redemption_price} {code.currency}"
            )
            await self._publish("discount_code.issued", code)
            return code

        raise DuplicateCode(f"Could not generate a unique code after {MAX_GENERATION_ATTEMPTS} attempts")

    async def ensure_issued(self, negotiation: Negotiation) -> DiscountCode:
        """Issue the code, or return the one already issued for the negotiation."""
        try:
            return await self.issue(negotiation)
        except AlreadyIssued:
            existing = await self.ledger.get_for_negotiation(negotiation.negotiation_id)
            if existing is None:
                raise
            return existing

    async def redeem(self, code: str, listing_id: str, buyer_id: str) -> RedemptionResult:
        """
        Consume a code at checkout.

        Checking the state and marking the code redeemed happen in one
        ledger update.

        Raises:
            CodeNotFound: If the code does not exist
            Mismatch: If the code is bound to another listing or buyer
            AlreadyRedeemed: If the code was already consumed
            CodeExpired: If the code is past its expiry time
        """
        now = self.clock()

        def consume(record: DiscountCode) -> DiscountCode:
            self._check_binding(record, listing_id, buyer_id)
            if record.state is RedemptionState.REDEEMED:
                raise AlreadyRedeemed("Discount code already used")
            status = record.status_at(now)
            if status is RedemptionState.EXPIRED:
                if record.state is RedemptionState.EXPIRED:
                    return record
                return replace(record, state=RedemptionState.EXPIRED)
            return replace(record, state=RedemptionState.REDEEMED, redeemed_at=now)

        record = await self.ledger.update(normalize_code(code), consume)
        if record.state is not RedemptionState.REDEEMED:
            logger.warning(f"Redemption refused, code {record.code} expired at {record.expires_at}")
            raise CodeExpired("Discount code expired")

        logger.info(f"Redeemed discount code {record.code} for listing {record.listing_id}")
        await self._publish("discount_code.redeemed", record)
        return RedemptionResult(
            code=record.code,
            negotiation_id=record.negotiation_id,
            listing_id=record.listing_id,
            buyer_id=record.buyer_id,
            original_price=record.original_price,
            redemption_price=record.redemption_price,
            discount_amount=record.discount_amount,
            currency=record.currency,
            redeemed_at=record.redeemed_at,
        )

    async def validate(self, code: str, listing_id: str, buyer_id: str) -> DiscountCode:
        """
        Check that a code would be redeemable now, without consuming it.

        Raises:
            CodeNotFound, Mismatch, AlreadyRedeemed, CodeExpired
        """
        record = await self.ledger.get(normalize_code(code))
        self._check_binding(record, listing_id, buyer_id)
        status = record.status_at(self.clock())
        if status is RedemptionState.REDEEMED:
            raise AlreadyRedeemed("Discount code already used")
        if status is RedemptionState.EXPIRED:
            raise CodeExpired("Discount code expired")
        return record

    async def expire_if_due(self, code: str) -> bool:
        """
        Mark an unredeemed code expired if it is past its expiry time.

        Returns:
            True if this call changed the code's state
        """
        now = self.clock()
        changed = False

        def mark_expired(record: DiscountCode) -> DiscountCode:
            nonlocal changed
            if record.state is RedemptionState.UNREDEEMED and now > record.expires_at:
                changed = True
                return replace(record, state=RedemptionState.EXPIRED)
            return record

        record = await self.ledger.update(code, mark_expired)
        if changed:
            logger.info(f"Discount code {code} expired")
            await self._publish("discount_code.expired", record)
        return changed

    async def get(self, code: str) -> DiscountCode:
        return await self.ledger.get(normalize_code(code))

    async def get_for_negotiation(self, negotiation_id: str) -> Optional[DiscountCode]:
        return await self.ledger.get_for_negotiation(negotiation_id)

    async def list_for_buyer(self, buyer_id: str) -> List[DiscountCode]:
        return await self.ledger.list_for_buyer(buyer_id)

    @staticmethod
    def _check_binding(record: DiscountCode, listing_id: str, buyer_id: str) -> None:
        if record.listing_id != listing_id:
            raise Mismatch("This code is not valid for this listing")
        if record.buyer_id != buyer_id:
            raise Mismatch("This code belongs to another buyer")

    async def _publish(self, event_type: str, record: DiscountCode) -> None:
        await self.hub.publish(NegotiationEvent(
            event_type=event_type,
            negotiation_id=record.negotiation_id,
            payload={
                "code": record.code,
                "listing_id": record.listing_id,
                "buyer_id": record.buyer_id,
                "redemption_price": record.redemption_price,
                "currency": record.currency,
            },
        ))
