"""Account routes: verification, enrollment and account details."""

import logging
from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from helperjobs.identity import Account

from ..dependencies import CurrentAccount, Market
from ..rate_limit import limiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/accounts", tags=["accounts"])


# =============================================================================
# Request/Response Models
# =============================================================================


class DepreciationResponse(BaseModel):
    """Inactivity fee the account's next call would be charged."""

    dormant: bool
    rate: int
    balance: int
    amount: int


class AccountResponse(BaseModel):
    """Account details."""

    account_id: str
    verified: bool
    registered: bool
    completed_jobs: int
    badge: str
    last_activity: datetime | None = None
    verified_at: datetime | None = None
    registered_at: datetime | None = None
    balance: int
    depreciation: DepreciationResponse


def to_account_response(market, account: Account) -> AccountResponse:
    quote = market.depreciation_quote(account.account_id)
    return AccountResponse(
        **account.to_dict(),
        balance=quote.balance,
        depreciation=DepreciationResponse(
            dormant=quote.dormant,
            rate=quote.rate,
            balance=quote.balance,
            amount=quote.amount,
        ),
    )


# =============================================================================
# Routes
# =============================================================================


@router.post("/me/enroll", response_model=AccountResponse)
@limiter.limit("10/minute")
async def enroll(request: Request, caller: CurrentAccount, market: Market):
    """Register the calling (verified) account and pay its grant."""
    logger.info(f"POST /accounts/me/enroll | caller={caller}")
    account = market.enroll(caller)
    return to_account_response(market, account)


@router.post("/{account_id}/verify", response_model=AccountResponse)
@limiter.limit("30/minute")
async def verify(request: Request, account_id: str, caller: CurrentAccount, market: Market):
    """Verify an account. Administrator only."""
    logger.info(f"POST /accounts/{account_id}/verify | caller={caller}")
    account = market.verify(caller, account_id)
    return to_account_response(market, account)


@router.get("/{account_id}", response_model=AccountResponse)
async def get_account(account_id: str, market: Market):
    """Get an account; unknown accounts read as unverified."""
    return to_account_response(market, market.get_account(account_id))
