"""Ledger routes: balances and engine spending approval."""

import logging
from decimal import Decimal

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from helperjobs.ledger import from_units

from ..dependencies import CurrentAccount, Market
from ..rate_limit import limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/ledger", tags=["ledger"])


class BalanceResponse(BaseModel):
    """Balance and engine allowance of an account, in units and tokens."""

    account_id: str
    balance: int
    allowance: int
    balance_tokens: Decimal
    allowance_tokens: Decimal


class ApproveRequest(BaseModel):
    """Allow the engine to spend up to ``amount`` units."""

    amount: int = Field(..., ge=0)


def to_balance_response(market, account_id: str) -> BalanceResponse:
    balance = market.balance_of(account_id)
    allowance = market.allowance_of(account_id)
    return BalanceResponse(
        account_id=account_id,
        balance=balance,
        allowance=allowance,
        balance_tokens=from_units(balance),
        allowance_tokens=from_units(allowance),
    )


@router.get("/{account_id}", response_model=BalanceResponse)
async def get_balance(account_id: str, market: Market):
    """Get an account's balance and allowance to the engine."""
    return to_balance_response(market, account_id)


@router.post("/approve", response_model=BalanceResponse)
@limiter.limit("30/minute")
async def approve(request: Request, body: ApproveRequest, caller: CurrentAccount, market: Market):
    """Set the caller's allowance to the engine."""
    logger.info(f"POST /ledger/approve | caller={caller} | amount={body.amount}")
    market.approve(caller, body.amount)
    return to_balance_response(market, caller)
