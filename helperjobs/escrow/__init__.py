"""Escrow subsystem for helperjobs.

Each job's reward is held by the engine from creation until the job is
completed or cancelled, then settled exactly once.

Models:
- EscrowHold: Tokens held for one job
- EscrowStatus: Hold lifecycle status

Service:
- EscrowService: hold, release, refund
"""

from helperjobs.escrow.models import EscrowHold, EscrowStatus
from helperjobs.escrow.service import (
    EscrowAlreadySettledError,
    EscrowNotFoundError,
    EscrowService,
    EscrowServiceError,
)
from helperjobs.escrow.storage import EscrowStorage, InMemoryEscrowStorage

__all__ = [
    # Models
    "EscrowHold",
    "EscrowStatus",
    # Storage
    "EscrowStorage",
    "InMemoryEscrowStorage",
    # Service
    "EscrowService",
    "EscrowServiceError",
    "EscrowNotFoundError",
    "EscrowAlreadySettledError",
]
