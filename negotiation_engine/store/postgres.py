"""
PostgreSQL persistence backend (asyncpg).

Per-record mutual exclusion uses row locks (``SELECT ... FOR UPDATE``)
inside a transaction. The one-active-negotiation rule is the partial unique
index ``uq_negotiations_active_pair``; one code per negotiation is the
``UNIQUE(negotiation_id)`` constraint on ``discount_codes``.
"""

import json
import logging
from dataclasses import replace
from datetime import datetime
from typing import List, Optional

import asyncpg

from negotiation_engine.error_handling import (
    AlreadyActive,
    AlreadyIssued,
    CodeNotFound,
    DuplicateCode,
    NegotiationNotFound,
)
from negotiation_engine.models import (
    ACTIVE_STATES,
    DiscountCode,
    Negotiation,
    RedemptionState,
    TransitionOutcome,
)
from .base import CodeUpdate, DiscountCodeLedger, NegotiationStore, Transition

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATES]


def _row_to_negotiation(row) -> Negotiation:
    body = row["body"]
    if isinstance(body, str):
        body = json.loads(body)
    return replace(Negotiation.from_dict(body), version=row["version"])


def _row_to_code(row) -> DiscountCode:
    return DiscountCode(
        code=row["code"],
        negotiation_id=row["negotiation_id"],
        listing_id=row["listing_id"],
        buyer_id=row["buyer_id"],
        seller_id=row["seller_id"],
        original_price=row["original_price"],
        redemption_price=row["redemption_price"],
        currency=row["currency"],
        issued_at=row["issued_at"],
        expires_at=row["expires_at"],
        state=RedemptionState(row["state"]),
        redeemed_at=row["redeemed_at"],
    )


class PostgresNegotiationStore(NegotiationStore):
    """Negotiation store backed by the ``negotiations`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def create(self, negotiation: Negotiation) -> Negotiation:
        async with self.pool.acquire() as conn:
            try:
                await conn.execute("""
                    INSERT INTO negotiations (
                        negotiation_id, listing_id, seller_id, buyer_id, state,
                        expires_at, last_activity_at, version, body
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9::jsonb)
                """,
                    negotiation.negotiation_id,
                    negotiation.listing_id,
                    negotiation.seller_id,
                    negotiation.buyer_id,
                    negotiation.state.value,
                    negotiation.expires_at,
                    negotiation.last_activity_at,
                    negotiation.version,
                    json.dumps(negotiation.to_dict(audit=True))
                )
            except asyncpg.UniqueViolationError:
                existing_id = await conn.fetchval("""
                    SELECT negotiation_id FROM negotiations
                    WHERE buyer_id = $1 AND listing_id = $2 AND state = ANY($3::text[])
                """, negotiation.buyer_id, negotiation.listing_id, _ACTIVE)
                raise AlreadyActive(
                    "Negotiation already exists for this listing",
                    existing_id=existing_id,
                )
        return negotiation

    async def apply(self, negotiation_id: str, transition: Transition) -> TransitionOutcome:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow("""
                    SELECT body, version FROM negotiations
                    WHERE negotiation_id = $1
                    FOR UPDATE
                """, negotiation_id)
                if not row:
                    raise NegotiationNotFound(f"Negotiation {negotiation_id} not found")

                current = _row_to_negotiation(row)
                updated = transition(current)
                if updated is current:
                    return TransitionOutcome(negotiation=current, applied=False)

                updated = replace(updated, version=current.version + 1)
                await conn.execute("""
                    UPDATE negotiations
                    SET state = $1, last_activity_at = $2, version = $3,
                        body = $4::jsonb, updated_at = NOW()
                    WHERE negotiation_id = $5
                """,
                    updated.state.value,
                    updated.last_activity_at,
                    updated.version,
                    json.dumps(updated.to_dict(audit=True)),
                    negotiation_id
                )
                return TransitionOutcome(negotiation=updated, applied=True)

    async def get(self, negotiation_id: str) -> Negotiation:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT body, version FROM negotiations WHERE negotiation_id = $1
            """, negotiation_id)
        if not row:
            raise NegotiationNotFound(f"Negotiation {negotiation_id} not found")
        return _row_to_negotiation(row)

    async def list_active_for(
        self,
        buyer_id: Optional[str] = None,
        seller_id: Optional[str] = None,
        listing_id: Optional[str] = None
    ) -> List[Negotiation]:
        clauses = ["state = ANY($1::text[])"]
        params: list = [_ACTIVE]
        for column, value in (
            ("buyer_id", buyer_id),
            ("seller_id", seller_id),
            ("listing_id", listing_id),
        ):
            if value is not None:
                params.append(value)
                clauses.append(f"{column} = ${len(params)}")

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT body, version FROM negotiations
                WHERE {' AND '.join(clauses)}
                ORDER BY last_activity_at DESC
            """, *params)
        return [_row_to_negotiation(row) for row in rows]

    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT negotiation_id FROM negotiations
                WHERE state = ANY($1::text[]) AND expires_at < $2
                ORDER BY expires_at
            """, _ACTIVE, now)
        return [row["negotiation_id"] for row in rows]


class PostgresDiscountCodeLedger(DiscountCodeLedger):
    """Discount code ledger backed by the ``discount_codes`` table."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def insert(self, code: DiscountCode) -> DiscountCode:
        async with self.pool.acquire() as conn:
            try:
                await conn.execute("""
                    INSERT INTO discount_codes (
                        code, negotiation_id, listing_id, buyer_id, seller_id,
                        original_price, redemption_price, currency,
                        issued_at, expires_at, state, redeemed_at
                    )
                    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                """,
                    code.code,
                    code.negotiation_id,
                    code.listing_id,
                    code.buyer_id,
                    code.seller_id,
                    code.original_price,
                    code.redemption_price,
                    code.currency,
                    code.issued_at,
                    code.expires_at,
                    code.state.value,
                    code.redeemed_at
                )
            except asyncpg.UniqueViolationError as e:
                if getattr(e, "constraint_name", None) == "discount_codes_pkey":
                    raise DuplicateCode(f"Code {code.code} already exists")
                raise AlreadyIssued(
                    f"A discount code was already issued for negotiation {code.negotiation_id}"
                )
        return code

    async def get(self, code: str) -> DiscountCode:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM discount_codes WHERE code = $1", code)
        if not row:
            raise CodeNotFound("Invalid discount code")
        return _row_to_code(row)

    async def get_for_negotiation(self, negotiation_id: str) -> Optional[DiscountCode]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM discount_codes WHERE negotiation_id = $1", negotiation_id
            )
        return _row_to_code(row) if row else None

    async def update(self, code: str, fn: CodeUpdate) -> DiscountCode:
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT * FROM discount_codes WHERE code = $1 FOR UPDATE", code
                )
                if not row:
                    raise CodeNotFound("Invalid discount code")

                current = _row_to_code(row)
                updated = fn(current)
                if updated is current:
                    return current

                await conn.execute("""
                    UPDATE discount_codes
                    SET state = $1, redeemed_at = $2
                    WHERE code = $3
                """, updated.state.value, updated.redeemed_at, code)
                return updated

    async def list_for_buyer(self, buyer_id: str) -> List[DiscountCode]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM discount_codes
                WHERE buyer_id = $1
                ORDER BY issued_at DESC
            """, buyer_id)
        return [_row_to_code(row) for row in rows]

    async def list_due_for_expiry(self, now: datetime) -> List[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT code FROM discount_codes
                WHERE state = $1 AND expires_at < $2
            """, RedemptionState.UNREDEEMED.value, now)
        return [row["code"] for row in rows]
