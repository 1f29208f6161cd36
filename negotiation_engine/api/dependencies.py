"""Shared helpers for API routes"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, Request

from negotiation_engine.engine import Engine
from negotiation_engine.error_handling import EngineError
from negotiation_engine.models import Negotiation, TransitionOutcome


def get_engine(request: Request) -> Engine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def http_error(error: EngineError) -> HTTPException:
    """Translate an engine error to the HTTP status it carries."""
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


def negotiation_view(negotiation: Negotiation, viewer_id: Optional[str]) -> Dict[str, Any]:
    """Serialize a negotiation with flagged messages redacted for the viewer."""
    return negotiation.to_dict(viewer=negotiation.role_of(viewer_id) if viewer_id else None)


def outcome_view(outcome: TransitionOutcome, viewer_id: str, now=None) -> Dict[str, Any]:
    code = outcome.discount_code
    return {
        "negotiation": negotiation_view(outcome.negotiation, viewer_id),
        "applied": outcome.applied,
        "discount_code": code.to_dict(now) if code else None,
    }
