"""
helperjobs - Token-denominated job marketplace.

Participants post jobs backed by escrowed helper tokens, other participants
take and perform them, and the creator rates and releases (or disputes)
the payment. Dormant accounts pay an inactivity fee scaled by reputation.
"""

from .config import MarketConfig
from .marketplace import Marketplace

try:
    from importlib.metadata import version

    __version__ = version("helperjobs")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Marketplace", "MarketConfig"]
