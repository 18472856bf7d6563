"""Request dependencies: the marketplace and the calling account."""

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from helperjobs.marketplace import Marketplace

logger = logging.getLogger(__name__)

ACCOUNT_HEADER = "X-Account-Id"


def get_marketplace(request: Request) -> Marketplace:
    return request.app.state.marketplace


async def get_current_account(
    x_account_id: Annotated[str | None, Header(alias=ACCOUNT_HEADER)] = None,
) -> str:
    """Resolve the caller from the ``X-Account-Id`` header."""
    if not x_account_id or not x_account_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Missing {ACCOUNT_HEADER} header",
        )
    return x_account_id.strip()


Market = Annotated[Marketplace, Depends(get_marketplace)]
CurrentAccount = Annotated[str, Depends(get_current_account)]
