"""
Persistence contracts for negotiations and discount codes.

Both substrates provide atomic per-key read-modify-write: the callable
passed to ``apply``/``update`` runs while the record is exclusively held,
and the record it returns replaces the stored one. Returning the input
object unchanged means "no-op" and nothing is written.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from negotiation_engine.models import DiscountCode, Negotiation, TransitionOutcome

Transition = Callable[[Negotiation], Negotiation]
CodeUpdate = Callable[[DiscountCode], DiscountCode]


class NegotiationStore(ABC):
    """Owns negotiation records and their offer history.

    Enforces at most one non-terminal negotiation per (buyer, listing).
    Mutations of one negotiation are serialized; different negotiations
    never contend.
    """

    @abstractmethod
    async def create(self, negotiation: Negotiation) -> Negotiation:
        """
        Persist a newly opened negotiation.

        Raises:
            AlreadyActive: If the buyer already has an active negotiation on the listing
        """

    @abstractmethod
    async def apply(self, negotiation_id: str, transition: Transition) -> TransitionOutcome:
        """
        Apply ``transition`` under the negotiation's exclusive lock.

        Errors raised by the transition propagate and nothing is written.

        Raises:
            NegotiationNotFound: If no such negotiation exists
        """

    @abstractmethod
    async def get(self, negotiation_id: str) -> Negotiation:
        """
        Raises:
            NegotiationNotFound: If no such negotiation exists
        """

    @abstractmethod
    async def list_active_for(
        self,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> List[Negotiation]:
        """Active negotiations matching every given filter, most recent activity first."""

    @abstractmethod
    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        """Identifiers of active negotiations whose expiry time is before ``now``."""


class DiscountCodeLedger(ABC):
    """Owns discount code records.

    At most one code exists per negotiation. Redemption updates are
    serialized per code.
    """

    @abstractmethod
    async def insert(self, code: DiscountCode) -> DiscountCode:
        """
        Raises:
            AlreadyIssued: If the negotiation already has a code
            DuplicateCode: If the code string is already taken
        """

    @abstractmethod
    async def get(self, code: str) -> DiscountCode:
        """
        Raises:
            CodeNotFound: If no such code exists
        """

    @abstractmethod
    async def get_for_negotiation(self, negotiation_id: str) -> Optional[DiscountCode]:
        """Code issued for a negotiation, or None."""

    @abstractmethod
    async def update(self, code: str, fn: CodeUpdate) -> DiscountCode:
        """
        Apply ``fn`` under the code's exclusive lock and return the stored result.

        Raises:
            CodeNotFound: If no such code exists
        """

    @abstractmethod
    async def list_for_buyer(self, buyer_id: str) -> List[DiscountCode]:
        """All codes bound to a buyer, newest first."""

    @abstractmethod
    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        """Unredeemed codes whose expiry time is before ``now``."""
