"""
Data models for the Price Negotiation Engine.

This module defines the core records owned by the engine: negotiation
threads with their append-only offer history, and the discount codes
minted when a negotiation is accepted. Records are immutable; every
transition produces a new record with ``dataclasses.replace``.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


class Role(str, Enum):
    """Participant role within a negotiation."""
    BUYER = "buyer"
    SELLER = "seller"

    @property
    def counterpart(self) -> "Role":
        return Role.SELLER if self is Role.BUYER else Role.BUYER


class NegotiationState(str, Enum):
    """Negotiation lifecycle states"""
    OPEN = "open"
    COUNTERED = "countered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    NegotiationState.ACCEPTED,
    NegotiationState.REJECTED,
    NegotiationState.EXPIRED,
    NegotiationState.CANCELLED,
})

ACTIVE_STATES = frozenset({NegotiationState.OPEN, NegotiationState.COUNTERED})


class OfferKind(str, Enum):
    """Kind of event in the offer history."""
    PROPOSAL = "proposal"
    MESSAGE = "message"


class ViolationKind(str, Enum):
    """Policy violation categories detected in message text."""
    CONTACT_INFO = "contact_info"
    OFF_PLATFORM_PAYMENT = "off_platform_payment"
    EXTERNAL_REDIRECT = "external_redirect"


class RedemptionState(str, Enum):
    """Discount code redemption states"""
    UNREDEEMED = "unredeemed"
    REDEEMED = "redeemed"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Listing:
    """A marketplace listing as seen by the engine (read-only).

    Attributes:
        listing_id: Listing identifier
        seller_id: Identifier of the listing owner
        price: Asking price in minor units
        currency: ISO currency code the price is expressed in
        max_discount_bps: Seller-configured maximum discount in basis points,
            or None for the platform ceiling
    """
    listing_id: str
    seller_id: str
    price: int
    currency: str = "USD"
    max_discount_bps: Optional[int] = None


@dataclass(frozen=True)
class Offer:
    """A single proposal or message in a negotiation.

    Attributes:
        sequence: Position in the negotiation history, starting at 1
        author: Role of the participant who wrote it
        kind: Price proposal or pure message
        price: Proposed price in minor units, None for pure messages
        text: Message text after redaction
        raw_text: Message text as submitted, kept for audit
        timestamp: When the event was recorded
        flagged: Whether the policy scanner found violations
        violations: Violation kinds found in the raw text
    """
    sequence: int
    author: Role
    kind: OfferKind
    price: Optional[int]
    text: str
    raw_text: str
    timestamp: datetime
    flagged: bool = False
    violations: FrozenSet[ViolationKind] = frozenset()

    def text_for(self, viewer: Optional[Role]) -> str:
        """Text visible to a viewer.

        The author and audit viewers (``None``) see the raw text; the
        counterpart sees the redacted text of a flagged message.
        """
        if viewer is None or viewer is self.author or not self.flagged:
            return self.raw_text
        return self.text

    def to_dict(self, viewer: Optional[Role] = None, audit: bool = False) -> Dict[str, Any]:
        data = {
            "sequence": self.sequence,
            "author": self.author.value,
            "kind": self.kind.value,
            "price": self.price,
            "text": self.text_for(viewer) if not audit else self.text,
            "timestamp": _format_datetime(self.timestamp),
            "flagged": self.flagged,
            "violations": sorted(v.value for v in self.violations),
        }
        if audit:
            data["raw_text"] = self.raw_text
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Offer":
        return cls(
            sequence=data["sequence"],
            author=Role(data["author"]),
            kind=OfferKind(data["kind"]),
            price=data.get("price"),
            text=data["text"],
            raw_text=data.get("raw_text", data["text"]),
            timestamp=_parse_datetime(data["timestamp"]),
            flagged=data.get("flagged", False),
            violations=frozenset(ViolationKind(v) for v in data.get("violations", [])),
        )


@dataclass(frozen=True)
class Report:
    """An abuse report filed by a participant."""
    reporter: Role
    reason: str
    timestamp: datetime


@dataclass(frozen=True)
class Negotiation:
    """One buyer/seller price negotiation over one listing.

    Floor price and expiry are fixed when the negotiation is opened and
    never change afterwards.
    """
    negotiation_id: str
    listing_id: str
    seller_id: str
    buyer_id: str
    currency: str
    original_price: int
    floor_price: int
    current_price: int
    state: NegotiationState
    created_at: datetime
    last_activity_at: datetime
    expires_at: datetime
    offers: Tuple[Offer, ...] = ()
    agreed_price: Optional[int] = None
    closed_by: Optional[Role] = None
    closed_at: Optional[datetime] = None
    reports: Tuple[Report, ...] = ()
    version: int = 0

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def next_sequence(self) -> int:
        return len(self.offers) + 1

    @property
    def last_proposal(self) -> Optional[Offer]:
        for offer in reversed(self.offers):
            if offer.kind is OfferKind.PROPOSAL:
                return offer
        return None

    def role_of(self, user_id: str) -> Optional[Role]:
        """Resolve a user identifier to its role in this negotiation."""
        if user_id == self.buyer_id:
            return Role.BUYER
        if user_id == self.seller_id:
            return Role.SELLER
        return None

    def append(self, offer: Offer, **changes: Any) -> "Negotiation":
        """Return a copy with ``offer`` appended to the history."""
        return replace(self, offers=self.offers + (offer,), **changes)

    def to_dict(self, viewer: Optional[Role] = None, audit: bool = False) -> Dict[str, Any]:
        """Serialize the negotiation as seen by ``viewer``.

        Args:
            viewer: Role of the requesting participant; None for audit access
            audit: Include raw and redacted text side by side (persistence)

        Returns:
            JSON-serializable dictionary
        """
        return {
            "negotiation_id": self.negotiation_id,
            "listing_id": self.listing_id,
            "seller_id": self.seller_id,
            "buyer_id": self.buyer_id,
            "currency": self.currency,
            "original_price": self.original_price,
            "floor_price": self.floor_price,
            "current_price": self.current_price,
            "state": self.state.value,
            "created_at": _format_datetime(self.created_at),
            "last_activity_at": _format_datetime(self.last_activity_at),
            "expires_at": _format_datetime(self.expires_at),
            "offers": [o.to_dict(viewer=viewer, audit=audit) for o in self.offers],
            "agreed_price": self.agreed_price,
            "closed_by": self.closed_by.value if self.closed_by else None,
            "closed_at": _format_datetime(self.closed_at),
            "reports": [
                {
                    "reporter": r.reporter.value,
                    "reason": r.reason,
                    "timestamp": _format_datetime(r.timestamp),
                }
                for r in self.reports
            ],
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Negotiation":
        return cls(
            negotiation_id=data["negotiation_id"],
            listing_id=data["listing_id"],
            seller_id=data["seller_id"],
            buyer_id=data["buyer_id"],
            currency=data["currency"],
            original_price=data["original_price"],
            floor_price=data["floor_price"],
            current_price=data["current_price"],
            state=NegotiationState(data["state"]),
            created_at=_parse_datetime(data["created_at"]),
            last_activity_at=_parse_datetime(data["last_activity_at"]),
            expires_at=_parse_datetime(data["expires_at"]),
            offers=tuple(Offer.from_dict(o) for o in data.get("offers", [])),
            agreed_price=data.get("agreed_price"),
            closed_by=Role(data["closed_by"]) if data.get("closed_by") else None,
            closed_at=_parse_datetime(data.get("closed_at")),
            reports=tuple(
                Report(
                    reporter=Role(r["reporter"]),
                    reason=r["reason"],
                    timestamp=_parse_datetime(r["timestamp"]),
                )
                for r in data.get("reports", [])
            ),
            version=data.get("version", 0),
        )


@dataclass(frozen=True)
class DiscountCode:
    """A single-use code redeemable at checkout for the agreed price.

    Attributes:
        code: Opaque code string
        negotiation_id: Negotiation that produced the code (lookup only)
        listing_id: Listing the code is bound to
        buyer_id: Buyer the code is bound to
        seller_id: Seller of the listing
        original_price: Listing price when the negotiation opened
        redemption_price: Agreed price
        currency: Currency of both prices
        issued_at: Issue time
        expires_at: Time after which redemption is refused
        state: Redemption state as last persisted
        redeemed_at: Redemption time, if redeemed
    """
    code: str
    negotiation_id: str
    listing_id: str
    buyer_id: str
    seller_id: str
    original_price: int
    redemption_price: int
    currency: str
    issued_at: datetime
    expires_at: datetime
    state: RedemptionState = RedemptionState.UNREDEEMED
    redeemed_at: Optional[datetime] = None

    @property
    def discount_amount(self) -> int:
        return self.original_price - self.redemption_price

    @property
    def discount_percentage(self) -> int:
        if self.original_price <= 0:
            return 0
        return (self.discount_amount * 100 + self.original_price // 2) // self.original_price

    def status_at(self, now: datetime) -> RedemptionState:
        """Effective state at ``now``; expiry is computed, not only persisted."""
        if self.state is RedemptionState.UNREDEEMED and now > self.expires_at:
            return RedemptionState.EXPIRED
        return self.state

    def to_dict(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        state = self.status_at(now) if now is not None else self.state
        return {
            "code": self.code,
            "negotiation_id": self.negotiation_id,
            "listing_id": self.listing_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "original_price": self.original_price,
            "redemption_price": self.redemption_price,
            "discount_amount": self.discount_amount,
            "discount_percentage": self.discount_percentage,
            "currency": self.currency,
            "issued_at": _format_datetime(self.issued_at),
            "expires_at": _format_datetime(self.expires_at),
            "state": state.value,
            "redeemed_at": _format_datetime(self.redeemed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiscountCode":
        return cls(
            code=data["code"],
            negotiation_id=data["negotiation_id"],
            listing_id=data["listing_id"],
            buyer_id=data["buyer_id"],
            seller_id=data["seller_id"],
            original_price=data["original_price"],
            redemption_price=data["redemption_price"],
            currency=data["currency"],
            issued_at=_parse_datetime(data["issued_at"]),
            expires_at=_parse_datetime(data["expires_at"]),
            state=RedemptionState(data.get("state", RedemptionState.UNREDEEMED.value)),
            redeemed_at=_parse_datetime(data.get("redeemed_at")),
        )


@dataclass(frozen=True)
class RedemptionResult:
    """Outcome of a successful discount code redemption."""
    code: str
    negotiation_id: str
    listing_id: str
    buyer_id: str
    original_price: int
    redemption_price: int
    discount_amount: int
    currency: str
    redeemed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "negotiation_id": self.negotiation_id,
            "listing_id": self.listing_id,
            "buyer_id": self.buyer_id,
            "original_price": self.original_price,
            "redemption_price": self.redemption_price,
            "discount_amount": self.discount_amount,
            "currency": self.currency,
            "redeemed_at": _format_datetime(self.redeemed_at),
        }


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of applying an action to a negotiation.

    Attributes:
        negotiation: Negotiation after the action
        applied: False when the action was a no-op against a terminal record
        discount_code: Code bound to an accepted negotiation, if any
    """
    negotiation: Negotiation
    applied: bool = True
    discount_code: Optional[DiscountCode] = None
