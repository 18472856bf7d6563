"""API routes for helperjobs."""

from .accounts import router as accounts_router
from .jobs import router as jobs_router
from .ledger import router as ledger_router

__all__ = ["accounts_router", "jobs_router", "ledger_router"]
