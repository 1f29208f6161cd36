"""Persistence backends for negotiations and discount codes"""

from .base import DiscountCodeLedger, NegotiationStore
from .memory import InMemoryDiscountCodeLedger, InMemoryNegotiationStore
from .postgres import PostgresDiscountCodeLedger, PostgresNegotiationStore

__all__ = [
    "DiscountCodeLedger",
    "NegotiationStore",
    "InMemoryDiscountCodeLedger",
    "InMemoryNegotiationStore",
    "PostgresDiscountCodeLedger",
    "PostgresNegotiationStore",
]
