"""
Error handling module for the negotiation engine.

Provides the exception taxonomy and retry logic for persistence calls.
"""

from .error_handler import ErrorHandler, RetryConfig
from .exceptions import (
    EngineError,
    ValidationError,
    InvalidPrice,
    WrongTurn,
    NothingToAccept,
    InvalidTransition,
    InvalidMessage,
    SelfNegotiation,
    NotParticipant,
    Mismatch,
    RateLimited,
    ConflictError,
    AlreadyActive,
    AlreadyIssued,
    AlreadyRedeemed,
    AlreadyReported,
    StaleProposal,
    DuplicateCode,
    NotFoundError,
    NegotiationNotFound,
    ListingNotFound,
    CodeNotFound,
    CodeExpired,
    PersistenceUnavailable,
)

__all__ = [
    'ErrorHandler',
    'RetryConfig',
    'EngineError',
    'ValidationError',
    'InvalidPrice',
    'WrongTurn',
    'NothingToAccept',
    'InvalidTransition',
    'InvalidMessage',
    'SelfNegotiation',
    'NotParticipant',
    'Mismatch',
    'RateLimited',
    'ConflictError',
    'AlreadyActive',
    'AlreadyIssued',
    'AlreadyRedeemed',
    'AlreadyReported',
    'StaleProposal',
    'DuplicateCode',
    'NotFoundError',
    'NegotiationNotFound',
    'ListingNotFound',
    'CodeNotFound',
    'CodeExpired',
    'PersistenceUnavailable',
]
