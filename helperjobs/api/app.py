"""helperjobs HTTP API - FastAPI application."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from helperjobs.errors import (
    AuthorizationError,
    EconomicError,
    EligibilityError,
    HelperJobsError,
    StateError,
    ValidationError,
)
from helperjobs.escrow import EscrowNotFoundError
from helperjobs.identity import AlreadyRegisteredError, AlreadyVerifiedError
from helperjobs.jobs import JobNotFoundError
from helperjobs.ledger import ApprovalNotSupportedError
from helperjobs.marketplace import Marketplace
from helperjobs.state import StateFileError, load_marketplace, save_marketplace

from .config import Settings, get_settings
from .rate_limit import limiter
from .routes import accounts_router, jobs_router, ledger_router

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def status_for(exc: HelperJobsError) -> int:
    """HTTP status code for an engine error category."""
    if isinstance(exc, StateFileError):
        return status.HTTP_500_INTERNAL_SERVER_ERROR
    if isinstance(exc, ApprovalNotSupportedError):
        return status.HTTP_501_NOT_IMPLEMENTED
    if isinstance(exc, (JobNotFoundError, EscrowNotFoundError)):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, (AlreadyVerifiedError, AlreadyRegisteredError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (AuthorizationError, EligibilityError)):
        return status.HTTP_403_FORBIDDEN
    if isinstance(exc, StateError):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, EconomicError):
        return status.HTTP_402_PAYMENT_REQUIRED
    if isinstance(exc, ValidationError):
        return 422
    return status.HTTP_400_BAD_REQUEST


async def helperjobs_error_handler(request: Request, exc: HelperJobsError) -> JSONResponse:
    """Render an engine error with its category status and numeric details."""
    body = {"detail": str(exc), "error": type(exc).__name__}
    for attr in ("required", "available", "current", "expected"):
        value = getattr(exc, attr, None)
        if value is not None:
            body[attr] = getattr(value, "value", value)
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {code} {body['error']}: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {code} {body['error']}: {exc}")
    return JSONResponse(status_code=code, content=body)


def build_marketplace(settings: Settings) -> Marketplace:
    """Load the marketplace from the state file, or start a fresh one."""
    if settings.state_file and Path(settings.state_file).expanduser().exists():
        return load_marketplace(settings.state_file)
    return Marketplace(settings.market_config())


def state_saver(path: str):
    """Commit hook writing the marketplace to ``path`` before a call commits."""

    def save(market: Marketplace) -> None:
        save_marketplace(market, path)

    return save


def create_app(settings: Settings | None = None, marketplace: Marketplace | None = None) -> FastAPI:
    """Create the API application.

    Args:
        settings: Service settings; read from the environment if omitted
        marketplace: Engine to serve; built from ``settings`` if omitted
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info(
            f"Starting helperjobs API (debug={settings.debug}, "
            f"administrator={app.state.marketplace.administrator_id})"
        )
        yield
        logger.info("Shutting down helperjobs API")

    app = FastAPI(
        title="helperjobs API",
        description="Token-denominated job marketplace",
        version=VERSION,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.marketplace = marketplace or build_marketplace(settings)
    app.state.state_file = settings.state_file
    if settings.state_file:
        app.state.marketplace.add_commit_hook(state_saver(settings.state_file))

    # Rate limiting
    limiter.enabled = settings.rate_limit_enabled
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_exception_handler(HelperJobsError, helperjobs_error_handler)

    app.include_router(accounts_router)
    app.include_router(ledger_router)
    app.include_router(jobs_router)

    @app.get("/health")
    async def health():
        """Health check with escrow totals."""
        market = app.state.marketplace
        return {
            "service": "helperjobs",
            "version": VERSION,
            "status": "ok",
            "escrow_total": market.escrow_total(),
            "events": len(market.event_log),
        }

    return app
