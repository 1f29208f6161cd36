"""
Negotiation state machine - Pure Python implementation.

Every transition is a pure function from the current negotiation record to
the next one. Transitions never perform I/O; the store applies them inside
its per-negotiation critical section, which is what serializes concurrent
callers and makes offer sequence numbers gap-free.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from negotiation_engine.config import LifetimeConfig, MessagingConfig, PricingConfig
from negotiation_engine.error_handling import (
    AlreadyReported,
    InvalidMessage,
    InvalidPrice,
    InvalidTransition,
    NotParticipant,
    NothingToAccept,
    RateLimited,
    SelfNegotiation,
    StaleProposal,
    WrongTurn,
)
from negotiation_engine.models import (
    Listing,
    Negotiation,
    NegotiationState,
    Offer,
    OfferKind,
    Report,
    Role,
)
from negotiation_engine.policy import ScanResult
from negotiation_engine.rate_limiting import RateLimiter


def compute_floor_price(original_price: int, max_discount_bps: int) -> int:
    """
    Lowest price a seller may concede to.

    The discount is rounded down, so the floor never allows a discount
    larger than ``max_discount_bps``.
    """
    return original_price - (original_price * max_discount_bps) // 10000


def _is_price(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class NegotiationStateMachine:
    """
    State machine for buyer/seller price negotiations.

    States: open -> countered -> accepted | rejected | expired | cancelled.
    Terminal states are absorbing: any action against a terminal record
    returns that record unchanged.
    """

    def __init__(
        self,
        pricing: Optional[PricingConfig] = None,
        lifetimes: Optional[LifetimeConfig] = None,
        messaging: Optional[MessagingConfig] = None,
        rate_limiter: Optional[RateLimiter] = None
    ):
        self.pricing = pricing or PricingConfig()
        self.lifetimes = lifetimes or LifetimeConfig()
        self.messaging = messaging or MessagingConfig()
        self.rate_limiter = rate_limiter or RateLimiter(
            max_messages_per_hour=self.messaging.max_messages_per_hour
        )

    # -- opening ---------------------------------------------------------

    def discount_bps_for(self, listing: Listing) -> int:
        """Effective maximum discount; sellers may lower it, never raise it."""
        ceiling = self.pricing.max_discount_bps
        if listing.max_discount_bps is None:
            return ceiling
        return max(0, min(listing.max_discount_bps, ceiling))

    def open(
        self,
        negotiation_id: str,
        listing: Listing,
        buyer_id: str,
        now: datetime,
        opening: Optional[ScanResult] = None
    ) -> Negotiation:
        """
        Open a negotiation for ``buyer_id`` on ``listing``.

        Args:
            negotiation_id: Identifier for the new negotiation
            listing: Listing being negotiated
            buyer_id: Initiating buyer
            now: Creation time
            opening: Screened opening message, if any

        Returns:
            New negotiation in the open state
        """
        if buyer_id == listing.seller_id:
            raise SelfNegotiation("Cannot negotiate on your own listing")
        if not _is_price(listing.price) or listing.price <= 0:
            raise InvalidPrice(f"Listing {listing.listing_id} has no negotiable price")

        negotiation = Negotiation(
            negotiation_id=negotiation_id,
            listing_id=listing.listing_id,
            seller_id=listing.seller_id,
            buyer_id=buyer_id,
            currency=listing.currency,
            original_price=listing.price,
            floor_price=compute_floor_price(listing.price, self.discount_bps_for(listing)),
            current_price=listing.price,
            state=NegotiationState.OPEN,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(hours=self.lifetimes.negotiation_ttl_hours),
        )
        if opening is not None:
            self._check_text(opening.raw_text, required=True)
            negotiation = negotiation.append(
                self._offer(negotiation, Role.BUYER, OfferKind.MESSAGE, None, opening, now)
            )
        return negotiation

    # -- participant actions ---------------------------------------------

    def propose(
        self,
        negotiation: Negotiation,
        actor_id: str,
        price: int,
        now: datetime,
        note: Optional[ScanResult] = None
    ) -> Negotiation:
        """
        Propose a new price.

        Raises:
            InvalidPrice: If the price is outside [floor, original]
            WrongTurn: If the actor's own proposal is still unanswered
        """
        role = self.participant_role(negotiation, actor_id)
        if negotiation.is_terminal:
            return negotiation

        if not _is_price(price):
            raise InvalidPrice("Price must be an integer amount in minor units")
        if price < negotiation.floor_price:
            raise InvalidPrice(
                f"Price {price} is below the minimum of {negotiation.floor_price}",
                floor_price=negotiation.floor_price,
            )
        if price > negotiation.original_price:
            raise InvalidPrice(
                f"Price {price} is above the listing price of {negotiation.original_price}",
                original_price=negotiation.original_price,
            )
        if not self._has_turn(negotiation, role):
            raise WrongTurn(f"Waiting for the {role.counterpart.value} to respond")

        if note is not None and note.raw_text:
            self._check_text(note.raw_text, required=False)
        self._check_rate(negotiation, role, now)

        offer = self._offer(negotiation, role, OfferKind.PROPOSAL, price, note, now)
        return negotiation.append(
            offer,
            current_price=price,
            state=NegotiationState.COUNTERED,
            last_activity_at=now,
        )

    def message(
        self,
        negotiation: Negotiation,
        actor_id: str,
        note: ScanResult,
        now: datetime
    ) -> Negotiation:
        """
        Append a pure message. Price and state are unchanged.
        """
        role = self.participant_role(negotiation, actor_id)
        if negotiation.is_terminal:
            return negotiation

        self._check_text(note.raw_text, required=True)
        self._check_rate(negotiation, role, now)

        offer = self._offer(negotiation, role, OfferKind.MESSAGE, None, note, now)
        return negotiation.append(offer, last_activity_at=now)

    def accept(
        self,
        negotiation: Negotiation,
        actor_id: str,
        now: datetime,
        price: Optional[int] = None
    ) -> Negotiation:
        """
        Accept the outstanding proposal.

        Raises:
            NothingToAccept: If no price proposal is outstanding
            WrongTurn: If the actor made the outstanding proposal
            StaleProposal: If ``price`` is not the outstanding proposal
        """
        role = self.participant_role(negotiation, actor_id)
        if negotiation.is_terminal:
            return negotiation

        last = negotiation.last_proposal
        if negotiation.state is not NegotiationState.COUNTERED or last is None:
            raise NothingToAccept("There is no price proposal to accept")
        if last.author is role:
            raise WrongTurn("A party cannot accept its own proposal")
        if price is not None and price != negotiation.current_price:
            raise StaleProposal(
                f"Outstanding proposal is {negotiation.current_price}, not {price}",
                current_price=negotiation.current_price,
            )

        return replace(
            negotiation,
            state=NegotiationState.ACCEPTED,
            agreed_price=negotiation.current_price,
            closed_by=role,
            closed_at=now,
            last_activity_at=now,
        )

    def reject(self, negotiation: Negotiation, actor_id: str, now: datetime) -> Negotiation:
        role = self.participant_role(negotiation, actor_id)
        if negotiation.is_terminal:
            return negotiation
        return replace(
            negotiation,
            state=NegotiationState.REJECTED,
            closed_by=role,
            closed_at=now,
            last_activity_at=now,
        )

    def cancel(self, negotiation: Negotiation, actor_id: str, now: datetime) -> Negotiation:
        """
        Withdraw the negotiation.

        Only the initiating buyer may cancel, and only before the seller has
        made a counter-proposal.
        """
        role = self.participant_role(negotiation, actor_id)
        if negotiation.is_terminal:
            return negotiation

        if role is not Role.BUYER:
            raise InvalidTransition("Only the initiating buyer can cancel")
        if any(
            o.kind is OfferKind.PROPOSAL and o.author is Role.SELLER
            for o in negotiation.offers
        ):
            raise InvalidTransition("Cannot cancel after the seller has counter-proposed")

        return replace(
            negotiation,
            state=NegotiationState.CANCELLED,
            closed_by=role,
            closed_at=now,
            last_activity_at=now,
        )

    def report(
        self,
        negotiation: Negotiation,
        actor_id: str,
        reason: str,
        now: datetime
    ) -> Negotiation:
        """Record an abuse report; allowed in any state, once per participant."""
        role = self.participant_role(negotiation, actor_id)
        reason = (reason or "").strip()
        if not reason:
            raise InvalidMessage("A report needs a reason")
        if len(reason) > self.messaging.max_message_length:
            raise InvalidMessage("Report reason too long")
        if any(r.reporter is role for r in negotiation.reports):
            raise AlreadyReported("Already reported by you")
        return replace(
            negotiation,
            reports=negotiation.reports + (Report(reporter=role, reason=reason, timestamp=now),),
        )

    # -- scheduler-driven ------------------------------------------------

    def expire(self, negotiation: Negotiation, now: datetime) -> Negotiation:
        """
        Expire an active negotiation whose deadline has passed.

        Raises:
            InvalidTransition: If the deadline has not passed yet
        """
        if negotiation.is_terminal:
            return negotiation
        if now <= negotiation.expires_at:
            raise InvalidTransition(
                f"Negotiation {negotiation.negotiation_id} is not due to expire"
            )
        return replace(negotiation, state=NegotiationState.EXPIRED, closed_at=now)

    # -- helpers ---------------------------------------------------------

    def participant_role(self, negotiation: Negotiation, actor_id: str) -> Role:
        role = negotiation.role_of(actor_id)
        if role is None:
            raise NotParticipant("Access denied")
        return role

    def _has_turn(self, negotiation: Negotiation, role: Role) -> bool:
        """
        A party may propose unless its own proposal is the latest one and the
        counterpart has not acted since.
        """
        last = negotiation.last_proposal
        if last is None or last.author is not role:
            return True
        return any(
            o.author is role.counterpart
            for o in negotiation.offers[last.sequence:]
        )

    def _check_text(self, text: str, required: bool) -> None:
        if required and not text.strip():
            raise InvalidMessage("Message or template required")
        if len(text) > self.messaging.max_message_length:
            raise InvalidMessage(
                f"Message too long (max {self.messaging.max_message_length} characters)"
            )

    def _check_rate(self, negotiation: Negotiation, role: Role, now: datetime) -> None:
        sent = [o.timestamp for o in negotiation.offers if o.author is role]
        if not self.rate_limiter.check_hourly_limit(sent, now):
            raise RateLimited("Rate limit exceeded. Please wait before sending another message.")

    def _offer(
        self,
        negotiation: Negotiation,
        role: Role,
        kind: OfferKind,
        price: Optional[int],
        note: Optional[ScanResult],
        now: datetime
    ) -> Offer:
        return Offer(
            sequence=negotiation.next_sequence,
            author=role,
            kind=kind,
            price=price,
            text=note.text if note else "",
            raw_text=note.raw_text if note else "",
            timestamp=now,
            flagged=note.flagged if note else False,
            violations=note.violations if note else frozenset(),
        )
