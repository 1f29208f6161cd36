"""
In-memory persistence backend.

Records live in dictionaries guarded by ``threading`` locks: a registry
lock for the key indexes and one lock per record for read-modify-write.
Critical sections never await, so the backend is safe both for asyncio
tasks on one loop and for callers on different threads.
"""

import threading
import weakref
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from negotiation_engine.error_handling import (
    AlreadyActive,
    AlreadyIssued,
    CodeNotFound,
    DuplicateCode,
    NegotiationNotFound,
)
from negotiation_engine.models import (
    DiscountCode,
    Negotiation,
    RedemptionState,
    TransitionOutcome,
)
from .base import CodeUpdate, DiscountCodeLedger, NegotiationStore, Transition


class _KeyedLocks:
    """Lazily created per-key locks, dropped once no caller holds them."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks = weakref.WeakValueDictionary()

    def for_key(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryNegotiationStore(NegotiationStore):
    """Negotiation store backed by process memory.

    The one-active-negotiation rule is a unique index over
    (buyer_id, listing_id) that only holds active records; a record leaves
    the index in the same critical section that makes it terminal.
    """

    def __init__(self):
        self._records: Dict[str, Negotiation] = {}
        self._active_pairs: Dict[Tuple[str, str], str] = {}
        self._registry_lock = threading.Lock()
        self._locks = _KeyedLocks()

    async def create(self, negotiation: Negotiation) -> Negotiation:
        pair = (negotiation.buyer_id, negotiation.listing_id)
        with self._registry_lock:
            existing_id = self._active_pairs.get(pair)
            if existing_id is not None:
                raise AlreadyActive(
                    "Negotiation already exists for this listing",
                    existing_id=existing_id,
                )
            self._records[negotiation.negotiation_id] = negotiation
            if not negotiation.is_terminal:
                self._active_pairs[pair] = negotiation.negotiation_id
        return negotiation

    async def apply(self, negotiation_id: str, transition: Transition) -> TransitionOutcome:
        if negotiation_id not in self._records:
            raise NegotiationNotFound(f"Negotiation {negotiation_id} not found")
        with self._locks.for_key(negotiation_id):
            current = self._records.get(negotiation_id)
            if current is None:
                raise NegotiationNotFound(f"Negotiation {negotiation_id} not found")

            updated = transition(current)
            if updated is current:
                return TransitionOutcome(negotiation=current, applied=False)

            updated = replace(updated, version=current.version + 1)
            with self._registry_lock:
                self._records[negotiation_id] = updated
                if updated.is_terminal and not current.is_terminal:
                    pair = (updated.buyer_id, updated.listing_id)
                    if self._active_pairs.get(pair) == negotiation_id:
                        del self._active_pairs[pair]
            return TransitionOutcome(negotiation=updated, applied=True)

    async def get(self, negotiation_id: str) -> Negotiation:
        negotiation = self._records.get(negotiation_id)
        if negotiation is None:
            raise NegotiationNotFound(f"Negotiation {negotiation_id} not found")
        return negotiation

    async def list_active_for(
        self,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> List[Negotiation]:
        with self._registry_lock:
            records = list(self._records.values())
        matches = [
            n for n in records
            if not n.is_terminal
            and (buyer_id is None or n.buyer_id == buyer_id)
            and (seller_id is None or n.seller_id == seller_id)
            and (listing_id is None or n.listing_id == listing_id)
        ]
        return sorted(matches, key=lambda n: n.last_activity_at, reverse=True)

    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        with self._registry_lock:
            records = list(self._records.values())
        return [n.negotiation_id for n in records if not n.is_terminal and n.expires_at < now]


class InMemoryDiscountCodeLedger(DiscountCodeLedger):
    """Discount code ledger backed by process memory."""

    def __init__(self):
        self._codes: Dict[str, DiscountCode] = {}
        self._by_negotiation: Dict[str, str] = {}
        self._registry_lock = threading.Lock()
        self._locks = _KeyedLocks()

    async def insert(self, code: DiscountCode) -> DiscountCode:
        with self._registry_lock:
            if code.negotiation_id in self._by_negotiation:
                raise AlreadyIssued(
                    f"A discount code was already issued for negotiation {code.negotiation_id}"
                )
            if code.code in self._codes:
                raise DuplicateCode(f"Code {code.code} already exists")
            self._codes[code.code] = code
            self._by_negotiation[code.negotiation_id] = code.code
        return code

    async def get(self, code: str) -> DiscountCode:
        record = self._codes.get(code)
        if record is None:
            raise CodeNotFound("Invalid discount code")
        return record

    async def get_for_negotiation(self, negotiation_id: str) -> Optional[DiscountCode]:
        with self._registry_lock:
            code = self._by_negotiation.get(negotiation_id)
            return self._codes.get(code) if code else None

    async def update(self, code: str, fn: CodeUpdate) -> DiscountCode:
        if code not in self._codes:
            raise CodeNotFound("Invalid discount code")
        with self._locks.for_key(code):
            current = self._codes.get(code)
            if current is None:
                raise CodeNotFound("Invalid discount code")
            updated = fn(current)
            if updated is not current:
                with self._registry_lock:
                    self._codes[code] = updated
            return updated

    async def list_for_buyer(self, buyer_id: str) -> List[DiscountCode]:
        with self._registry_lock:
            codes = [c for c in self._codes.values() if c.buyer_id == buyer_id]
        return sorted(codes, key=lambda c: c.issued_at, reverse=True)

    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        with self._registry_lock:
            codes = list(self._codes.values())
        return [
            c.code for c in codes
            if c.state is RedemptionState.UNREDEEMED and c.expires_at < now
        ]
