"""
Exception taxonomy for the negotiation engine.

Every error carries an HTTP-style ``status_code`` and a stable ``code``
string so the API layer can translate it without inspecting messages.
"""

from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base class for all engine errors."""
    status_code = 500
    code = "engine_error"

    def __init__(self, message: str = "", **context: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        data = {"error": self.code, "message": self.message}
        if self.context:
            data["context"] = self.context
        return data


# Validation errors: surfaced to the caller, never retried automatically.

class ValidationError(EngineError):
    status_code = 400
    code = "validation_error"


class InvalidPrice(ValidationError):
    code = "invalid_price"


class WrongTurn(ValidationError):
    status_code = 409
    code = "wrong_turn"


class NothingToAccept(ValidationError):
    code = "nothing_to_accept"


class InvalidTransition(ValidationError):
    status_code = 409
    code = "invalid_transition"


class InvalidMessage(ValidationError):
    code = "invalid_message"


class SelfNegotiation(ValidationError):
    code = "self_negotiation"


class NotParticipant(ValidationError):
    status_code = 403
    code = "not_participant"


class Mismatch(ValidationError):
    status_code = 422
    code = "mismatch"


class RateLimited(ValidationError):
    status_code = 429
    code = "rate_limited"


# Conflict errors: callers may poll current state instead of retrying.

class ConflictError(EngineError):
    status_code = 409
    code = "conflict"


class AlreadyActive(ConflictError):
    code = "already_active"

    def __init__(self, message: str = "", existing_id: Optional[str] = None, **context: Any):
        if existing_id is not None:
            context["existing_id"] = existing_id
        super().__init__(message, **context)
        self.existing_id = existing_id


class AlreadyIssued(ConflictError):
    code = "already_issued"


class AlreadyRedeemed(ConflictError):
    code = "already_redeemed"


class AlreadyReported(ConflictError):
    code = "already_reported"


class StaleProposal(ConflictError):
    code = "stale_proposal"


class DuplicateCode(ConflictError):
    code = "duplicate_code"


# Not-found errors

class NotFoundError(EngineError):
    status_code = 404
    code = "not_found"


class NegotiationNotFound(NotFoundError):
    code = "negotiation_not_found"


class ListingNotFound(NotFoundError):
    code = "listing_not_found"


class CodeNotFound(NotFoundError):
    code = "code_not_found"


class CodeExpired(EngineError):
    status_code = 410
    code = "code_expired"


class PersistenceUnavailable(EngineError):
    status_code = 503
    code = "persistence_unavailable"
