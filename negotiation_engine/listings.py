"""
Read-only listing lookup.

The engine never owns listings; it reads the price, seller and discount
ceiling when a negotiation is opened.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict

import asyncpg

from negotiation_engine.error_handling import ListingNotFound
from negotiation_engine.models import Listing

logger = logging.getLogger(__name__)


class ListingDirectory(ABC):
    """Lookup of listing price and seller."""

    @abstractmethod
    async def get(self, listing_id: str) -> Listing:
        """
        Raises:
            ListingNotFound: If no such listing exists
        """


class InMemoryListingDirectory(ListingDirectory):
    """Listing directory backed by a dictionary, for tests and local runs."""

    def __init__(self, listings=()):
        self._listings: Dict[str, Listing] = {}
        self._lock = threading.Lock()
        for listing in listings:
            self.add(listing)

    def add(self, listing: Listing) -> Listing:
        with self._lock:
            self._listings[listing.listing_id] = listing
        return listing

    async def get(self, listing_id: str) -> Listing:
        listing = self._listings.get(listing_id)
        if listing is None:
            raise ListingNotFound("Listing not found")
        return listing


class PostgresListingDirectory(ListingDirectory):
    """Listing directory reading the ``listings`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def get(self, listing_id: str) -> Listing:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT id, seller_id, price, currency, max_discount_bps
                FROM listings WHERE id = $1
            """, listing_id)

        if not row:
            logger.warning(f"Listing {listing_id} not found")
            raise ListingNotFound("Listing not found")

        return Listing(
            listing_id=row["id"],
            seller_id=row["seller_id"],
            price=row["price"],
            currency=row["currency"],
            max_discount_bps=row["max_discount_bps"],
        )
