"""Identity and reputation registry for helperjobs.

Models:
- Account: Verification/registration flags, activity, completed jobs, badge

Storage:
- AccountStorage: Protocol for account persistence
- InMemoryAccountStorage: Dict-backed implementation

Service:
- IdentityService: verify, enroll, record_activity, record_completion
"""

from helperjobs.identity.models import Account, badge_reached_at
from helperjobs.identity.service import (
    AlreadyRegisteredError,
    AlreadyVerifiedError,
    EngineAccountError,
    IdentityService,
    IdentityServiceError,
    NotRegisteredError,
    NotVerifiedError,
)
from helperjobs.identity.storage import AccountStorage, InMemoryAccountStorage

__all__ = [
    # Models
    "Account",
    "badge_reached_at",
    # Storage
    "AccountStorage",
    "InMemoryAccountStorage",
    # Service
    "IdentityService",
    "IdentityServiceError",
    "AlreadyVerifiedError",
    "NotVerifiedError",
    "AlreadyRegisteredError",
    "NotRegisteredError",
    "EngineAccountError",
]
