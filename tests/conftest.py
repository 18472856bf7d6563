"""
Pytest fixtures and test configuration for helperjobs tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from helperjobs.config import MarketConfig
from helperjobs.ledger import InMemoryTokenLedger
from helperjobs.marketplace import Marketplace
from helperjobs.types import ONE_TOKEN

ADMIN = "admin"
ENGINE = "helperjobs"


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, start: datetime = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class ExternalLedger:
    """Token ledger living outside the process: only the four ledger calls."""

    def balance_of(self, account):
        return 0

    def allowance(self, owner, spender):
        return 0

    def transfer(self, to, amount):
        return False

    def transfer_from(self, owner, to, amount):
        return False


@pytest.fixture
def external_ledger():
    return ExternalLedger()


@pytest.fixture
def config():
    return MarketConfig(administrator_id=ADMIN, engine_account=ENGINE)


@pytest.fixture
def token_ledger(config):
    return InMemoryTokenLedger(config.engine_account, config.initial_supply)


@pytest.fixture
def market(config, token_ledger, clock):
    return Marketplace(config=config, ledger=token_ledger, clock=clock)


@pytest.fixture
def register(market):
    """Verify and enroll an account, optionally approving the engine."""

    def _register(account_id: str, approve: int = 0):
        market.verify(ADMIN, account_id)
        market.enroll(account_id)
        if approve:
            market.approve(account_id, approve)
        return market.get_account(account_id)

    return _register


@pytest.fixture
def alice(register):
    """Registered creator with 100 tokens, engine approved for all of them."""
    return register("alice", approve=100 * ONE_TOKEN)


@pytest.fixture
def bob(register):
    """Registered worker with 100 tokens and no allowance."""
    return register("bob")
