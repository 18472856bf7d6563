"""Error taxonomy for helperjobs.

Every error raised by the engine derives from :class:`HelperJobsError` and
belongs to exactly one category:

- ``AuthorizationError``: the caller may not perform the action
- ``EligibilityError``: the caller's verification/registration state forbids it
- ``StateError``: a record is not in the state the action requires
- ``EconomicError``: balance or allowance falls short of a requirement
- ``ValidationError``: an argument is malformed

Service modules define their own bases on top of these so callers can catch
either per subsystem (``JobServiceError``) or per category (``StateError``).
A failed call never leaves partial effects behind.
"""


class HelperJobsError(Exception):
    """Base for all helperjobs errors."""

    pass


class AuthorizationError(HelperJobsError):
    """Raised when the caller is not allowed to perform an action."""

    pass


class EligibilityError(HelperJobsError):
    """Raised when an account's verification or registration state blocks a call."""

    pass


class StateError(HelperJobsError):
    """Raised when a record is not in the state an action requires."""

    pass


class EconomicError(HelperJobsError):
    """Raised when balance or spending authorization is short of a requirement."""

    pass


class ValidationError(HelperJobsError, ValueError):
    """Raised for malformed arguments (amounts, ratings, descriptions)."""

    pass
