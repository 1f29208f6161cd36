"""
Discount code routes.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from negotiation_engine.api.dependencies import get_engine, http_error
from negotiation_engine.api.schemas import DiscountCodeView, RedeemRequest, RedemptionView
from negotiation_engine.engine import Engine
from negotiation_engine.error_handling import EngineError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/discount-code", response_model=List[DiscountCodeView])
async def list_codes(
    buyer_id: str = Query(..., alias="buyerId"),
    engine: Engine = Depends(get_engine)
):
    """List a buyer's discount codes with their current status"""
    try:
        now = engine.issuer.clock()
        codes = await engine.issuer.list_for_buyer(buyer_id)
        return [code.to_dict(now) for code in codes]
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to list discount codes: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/discount-code/{code}/validate", response_model=DiscountCodeView)
async def validate_code(
    code: str,
    request: RedeemRequest,
    engine: Engine = Depends(get_engine)
):
    """Check a code for a listing and buyer without consuming it"""
    try:
        record = await engine.issuer.validate(code, request.listing_id, request.buyer_id)
        return record.to_dict(engine.issuer.clock())
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to validate discount code: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/discount-code/{code}/redeem", response_model=RedemptionView)
async def redeem_code(
    code: str,
    request: RedeemRequest,
    engine: Engine = Depends(get_engine)
):
    """
    Redeem a code at checkout.

    Returns:
        RedemptionResult, or 404 / 410 expired / 409 already redeemed / 422 mismatch
    """
    try:
        result = await engine.issuer.redeem(code, request.listing_id, request.buyer_id)
        return result.to_dict()
    except EngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to redeem discount code: {e}")
        raise HTTPException(status_code=500, detail=str(e))
