"""Rate limiting for the helperjobs HTTP service.

Requests are keyed by the calling account when the ``X-Account-Id`` header
is present, and by client address otherwise.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from .dependencies import ACCOUNT_HEADER


def get_caller_key(request) -> str:
    account_id = request.headers.get(ACCOUNT_HEADER)
    if account_id:
        return f"account:{account_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=get_caller_key)
