"""
Negotiation routes.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from negotiation_engine.api.dependencies import (
    get_engine,
    http_error,
    negotiation_view,
    outcome_view,
)
from negotiation_engine.api.schemas import (
    AcceptRequest,
    ActionResponse,
    ActorRequest,
    MessageRequest,
    NegotiationCreate,
    NegotiationView,
    OfferRequest,
    ReportRequest,
    TemplateView,
)
from negotiation_engine.engine import Engine
from negotiation_engine.error_handling import EngineError
from negotiation_engine.models import TransitionOutcome
from negotiation_engine.negotiation import list_templates

logger = logging.getLogger(__name__)

router = APIRouter()


def _terminal_or_view(outcome: TransitionOutcome, actor: str) -> dict:
    """Offers and messages against a closed negotiation answer 410 with the record."""
    if not outcome.applied:
        raise HTTPException(status_code=410, detail={
            "error": "terminal",
            "message": f"Negotiation is {outcome.negotiation.state.value}",
            "negotiation": negotiation_view(outcome.negotiation, actor),
        })
    return negotiation_view(outcome.negotiation, actor)


@router.get("/negotiation/templates", response_model=List[TemplateView])
async def get_templates():
    """List predefined message templates"""
    return list_templates()


@router.post("/negotiation", response_model=NegotiationView, status_code=201)
async def create_negotiation(
    request: NegotiationCreate,
    engine: Engine = Depends(get_engine)
):
    """
    Open a negotiation for a buyer on a listing.

    Returns:
        Created Negotiation, or 409 if one is already active for the pair
    """
    try:
        negotiation = await engine.manager.create(
            buyer_id=request.buyer_id,
            listing_id=request.listing_id,
            message=request.message,
            template_id=request.template_id,
        )
        return negotiation_view(negotiation, request.buyer_id)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to create negotiation: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/negotiation", response_model=List[NegotiationView])
async def list_negotiations(
    user: str = Query(..., description="User whose negotiations to list"),
    role: str = Query("buyer", description="buyer or seller"),
    listing_id: Optional[str] = Query(None, alias="listingId"),
    engine: Engine = Depends(get_engine)
):
    """
    List active negotiations for a buyer or seller.
    """
    if role not in ("buyer", "seller"):
        raise HTTPException(status_code=400, detail="role must be buyer or seller")
    try:
        if role == "buyer":
            negotiations = await engine.manager.list_active_for(buyer_id=user, listing_id=listing_id)
        else:
            negotiations = await engine.manager.list_active_for(seller_id=user, listing_id=listing_id)
        return [negotiation_view(n, user) for n in negotiations]
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to list negotiations: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/negotiation/{negotiation_id}", response_model=NegotiationView)
async def get_negotiation(
    negotiation_id: str,
    viewer: str = Query(..., description="Requesting participant"),
    engine: Engine = Depends(get_engine)
):
    """
    Get a negotiation with its full offer history, redacted for the viewer.
    """
    try:
        negotiation = await engine.manager.get(negotiation_id, viewer_id=viewer)
        return negotiation_view(negotiation, viewer)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get negotiation: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/offer", response_model=NegotiationView)
async def send_offer(
    negotiation_id: str,
    request: OfferRequest,
    engine: Engine = Depends(get_engine)
):
    """
    Propose a price, or post a message when no price is given.

    Returns:
        Updated negotiation; 410 with the record if it is already closed
    """
    try:
        if request.price is None:
            outcome = await engine.manager.message(
                negotiation_id, request.actor, request.message, request.template_id
            )
        else:
            outcome = await engine.manager.propose(
                negotiation_id, request.actor, request.price, request.message, request.template_id
            )
        return _terminal_or_view(outcome, request.actor)
    except HTTPException:
        raise
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to send offer: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/message", response_model=NegotiationView)
async def send_message(
    negotiation_id: str,
    request: MessageRequest,
    engine: Engine = Depends(get_engine)
):
    """Post a message without changing the price"""
    try:
        outcome = await engine.manager.message(
            negotiation_id, request.actor, request.message, request.template_id
        )
        return _terminal_or_view(outcome, request.actor)
    except HTTPException:
        raise
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to send message: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/accept", response_model=ActionResponse)
async def accept_offer(
    negotiation_id: str,
    request: AcceptRequest,
    engine: Engine = Depends(get_engine)
):
    """
    Accept the outstanding proposal.

    Returns:
        Accepted negotiation with its discount code
    """
    try:
        outcome = await engine.manager.accept(negotiation_id, request.actor, request.price)
        return outcome_view(outcome, request.actor, engine.issuer.clock())
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to accept offer: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/reject", response_model=ActionResponse)
async def reject_offer(
    negotiation_id: str,
    request: ActorRequest,
    engine: Engine = Depends(get_engine)
):
    """Reject the negotiation"""
    try:
        outcome = await engine.manager.reject(negotiation_id, request.actor)
        return outcome_view(outcome, request.actor)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to reject negotiation: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/cancel", response_model=ActionResponse)
async def cancel_negotiation(
    negotiation_id: str,
    request: ActorRequest,
    engine: Engine = Depends(get_engine)
):
    """Withdraw the negotiation (initiating buyer, before any seller proposal)"""
    try:
        outcome = await engine.manager.cancel(negotiation_id, request.actor)
        return outcome_view(outcome, request.actor)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to cancel negotiation: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/negotiation/{negotiation_id}/report", response_model=ActionResponse)
async def report_negotiation(
    negotiation_id: str,
    request: ReportRequest,
    engine: Engine = Depends(get_engine)
):
    """Report abuse in a negotiation"""
    try:
        outcome = await engine.manager.report(negotiation_id, request.actor, request.reason)
        return outcome_view(outcome, request.actor)
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to report negotiation: {e}")
        raise HTTPException(status_code=500, detail=str(e))
