"""
Negotiation manager - Screens, applies and persists negotiation actions.

Every participant action follows the same path: screen any text with the
policy scanner, apply the pure state-machine transition inside the store's
per-negotiation critical section, then publish the committed change.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, List, Optional

from negotiation_engine.discounts import DiscountCodeIssuer
from negotiation_engine.error_handling import EngineError
from negotiation_engine.listings import ListingDirectory
from negotiation_engine.models import (
    Negotiation,
    NegotiationState,
    TransitionOutcome,
    utcnow,
)
from negotiation_engine.notifications import NegotiationEvent, NotificationHub
from negotiation_engine.policy import PolicyScanner, ScanResult
from negotiation_engine.store import NegotiationStore
from .state_machine import NegotiationStateMachine
from .templates import resolve_message

logger = logging.getLogger(__name__)


class NegotiationManager:
    """Manage negotiation persistence and lifecycle"""

    def __init__(
        self,
        store: NegotiationStore,
        directory: ListingDirectory,
        issuer: DiscountCodeIssuer,
        machine: Optional[NegotiationStateMachine] = None,
        scanner: Optional[PolicyScanner] = None,
        hub: Optional[NotificationHub] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.store = store
        self.directory = directory
        self.issuer = issuer
        self.machine = machine or NegotiationStateMachine()
        self.scanner = scanner or PolicyScanner()
        self.hub = hub or NotificationHub()
        self.clock = clock

    async def create(
        self,
        buyer_id: str,
        listing_id: str,
        message: Optional[str] = None,
        template_id: Optional[str] = None
    ) -> Negotiation:
        """
        Open a negotiation for a buyer on a listing.

        Args:
            buyer_id: Initiating buyer
            listing_id: Listing to negotiate on
            message: Optional opening message
            template_id: Optional message template used instead of ``message``

        Returns:
            Created Negotiation

        Raises:
            ListingNotFound, SelfNegotiation, InvalidMessage, AlreadyActive
        """
        try:
            listing = await self.directory.get(listing_id)
            text = resolve_message(message, template_id)
            opening = self.scanner.scan(text) if text else None
            negotiation = self.machine.open(
                negotiation_id=uuid.uuid4().hex,
                listing=listing,
                buyer_id=buyer_id,
                now=self.clock(),
                opening=opening,
            )
            negotiation = await self.store.create(negotiation)
        except EngineError as e:
            logger.warning(f"Create refused for buyer {buyer_id} on listing {listing_id}: {e.code} {e.message}")
            raise

        logger.info(
            f"Opened negotiation {negotiation.negotiation_id} on listing {listing_id} "
            f"(price {negotiation.original_price}, floor {negotiation.floor_price})"
        )
        await self._publish("negotiation.opened", negotiation)
        return negotiation

    async def propose(
        self,
        negotiation_id: str,
        actor_id: str,
        price: int,
        message: Optional[str] = None,
        template_id: Optional[str] = None
    ) -> TransitionOutcome:
        """Propose a new price, optionally with a note or a template as the note."""
        try:
            text = resolve_message(message, template_id)
        except EngineError as e:
            logger.warning(f"propose on {negotiation_id} refused: {e.code} {e.message}")
            raise
        note = self._screen(text)
        return await self._apply(
            negotiation_id,
            "propose",
            lambda n: self.machine.propose(n, actor_id, price, self.clock(), note),
        )

    async def message(
        self,
        negotiation_id: str,
        actor_id: str,
        message: Optional[str] = None,
        template_id: Optional[str] = None
    ) -> TransitionOutcome:
        """Append a pure message; price and state are unchanged."""
        try:
            text = resolve_message(message, template_id)
        except EngineError as e:
            logger.warning(f"message on {negotiation_id} refused: {e.code} {e.message}")
            raise
        note = self.scanner.scan(text)
        return await self._apply(
            negotiation_id,
            "message",
            lambda n: self.machine.message(n, actor_id, note, self.clock()),
        )

    async def accept(
        self,
        negotiation_id: str,
        actor_id: str,
        price: Optional[int] = None
    ) -> TransitionOutcome:
        """
        Accept the outstanding proposal and attach the discount code.

        Replaying accept against an accepted negotiation returns the code
        already issued for it.
        """
        outcome = await self._apply(
            negotiation_id,
            "accept",
            lambda n: self.machine.accept(n, actor_id, self.clock(), price),
        )
        negotiation = outcome.negotiation
        if negotiation.state is not NegotiationState.ACCEPTED:
            return outcome

        code = await self.issuer.ensure_issued(negotiation)
        return TransitionOutcome(
            negotiation=negotiation,
            applied=outcome.applied,
            discount_code=code,
        )

    async def reject(self, negotiation_id: str, actor_id: str) -> TransitionOutcome:
        return await self._apply(
            negotiation_id,
            "reject",
            lambda n: self.machine.reject(n, actor_id, self.clock()),
        )

    async def cancel(self, negotiation_id: str, actor_id: str) -> TransitionOutcome:
        return await self._apply(
            negotiation_id,
            "cancel",
            lambda n: self.machine.cancel(n, actor_id, self.clock()),
        )

    async def report(self, negotiation_id: str, actor_id: str, reason: str) -> TransitionOutcome:
        """File an abuse report; allowed in any state, once per participant."""
        return await self._apply(
            negotiation_id,
            "report",
            lambda n: self.machine.report(n, actor_id, reason, self.clock()),
            event_type="negotiation.reported",
        )

    async def expire(self, negotiation_id: str) -> TransitionOutcome:
        """Expire a negotiation past its deadline. Scheduler use only."""
        return await self._apply(
            negotiation_id,
            "expire",
            lambda n: self.machine.expire(n, self.clock()),
        )

    async def get(self, negotiation_id: str, viewer_id: Optional[str] = None) -> Negotiation:
        """
        Get a negotiation by ID.

        Args:
            negotiation_id: Negotiation ID
            viewer_id: Requesting user; must be a participant when given

        Raises:
            NegotiationNotFound, NotParticipant
        """
        negotiation = await self.store.get(negotiation_id)
        if viewer_id is not None:
            self.machine.participant_role(negotiation, viewer_id)
        return negotiation

    async def list_active_for(
        self,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> List[Negotiation]:
        return await self.store.list_active_for(
            buyer_id=buyer_id, seller_id=seller_id, listing_id=listing_id
        )

    def _screen(self, text: Optional[str]) -> Optional[ScanResult]:
        if text is None or not str(text).strip():
            return None
        return self.scanner.scan(text)

    async def _apply(
        self,
        negotiation_id: str,
        action: str,
        transition,
        event_type: Optional[str] = None
    ) -> TransitionOutcome:
        try:
            outcome = await self.store.apply(negotiation_id, transition)
        except EngineError as e:
            logger.warning(f"{action} on {negotiation_id} refused: {e.code} {e.message}")
            raise

        negotiation = outcome.negotiation
        if not outcome.applied:
            logger.info(
                f"{action} on {negotiation_id} ignored, negotiation already {negotiation.state.value}"
            )
            return outcome

        logger.info(
            f"{action} on {negotiation_id} applied: state={negotiation.state.value} "
            f"price={negotiation.current_price} version={negotiation.version}"
        )
        if event_type is None:
            event_type = "negotiation.message" if action == "message" else f"negotiation.{negotiation.state.value}"
        await self._publish(event_type, negotiation)
        return outcome

    async def _publish(self, event_type: str, negotiation: Negotiation) -> None:
        await self.hub.publish(NegotiationEvent(
            event_type=event_type,
            negotiation_id=negotiation.negotiation_id,
            payload={
                "listing_id": negotiation.listing_id,
                "buyer_id": negotiation.buyer_id,
                "seller_id": negotiation.seller_id,
                "state": negotiation.state.value,
                "current_price": negotiation.current_price,
                "version": negotiation.version,
            },
        ))
