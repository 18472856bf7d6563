"""Token ledger subsystem for helperjobs.

The token ledger itself is an external collaborator; this package holds the
narrow interface the engine consumes and the checks it applies.

Ledger:
- TokenLedger: Protocol (balance_of, allowance, transfer, transfer_from)
- InMemoryTokenLedger: Reference implementation with approve/mint

Service:
- LedgerService: Funds/allowance checks, collection and payouts
"""

from helperjobs.ledger.service import (
    ApprovalNotSupportedError,
    InsufficientAllowanceError,
    InsufficientFundsError,
    LedgerService,
    LedgerServiceError,
    LedgerTransferError,
    from_units,
    to_units,
)
from helperjobs.ledger.token import InMemoryTokenLedger, TokenLedger

__all__ = [
    # Ledger
    "TokenLedger",
    "InMemoryTokenLedger",
    # Service
    "LedgerService",
    "LedgerServiceError",
    "InsufficientFundsError",
    "InsufficientAllowanceError",
    "LedgerTransferError",
    "ApprovalNotSupportedError",
    "to_units",
    "from_units",
]
