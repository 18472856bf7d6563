"""
JSON persistence for a whole marketplace.

Used by the CLI (and optionally the HTTP service) to keep a marketplace
between runs. Only the in-memory ledger can be persisted; a marketplace
backed by an external token ledger keeps its balances there.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from helperjobs.config import MarketConfig
from helperjobs.errors import HelperJobsError
from helperjobs.escrow import EscrowHold, InMemoryEscrowStorage
from helperjobs.events import EventLog
from helperjobs.identity import Account, InMemoryAccountStorage
from helperjobs.jobs import InMemoryJobStorage, Job, JobStateTransition
from helperjobs.ledger import InMemoryTokenLedger
from helperjobs.marketplace import Marketplace

logger = logging.getLogger(__name__)

STATE_VERSION = 1
_PAGE = 100


class StateFileError(HelperJobsError):
    """State file is missing, unreadable or malformed."""

    pass


def _all_jobs(market: Marketplace) -> List[Job]:
    jobs: List[Job] = []
    offset = 0
    while True:
        page = market.list_jobs(limit=_PAGE, offset=offset)
        jobs.extend(page)
        if len(page) < _PAGE:
            break
        offset += _PAGE
    return sorted(jobs, key=lambda j: j.id)


def marketplace_to_dict(market: Marketplace) -> Dict[str, Any]:
    """Serialize config, tables, events and the in-memory ledger."""
    if not isinstance(market.token_ledger, InMemoryTokenLedger):
        raise StateFileError("Only marketplaces on an in-memory ledger can be saved")

    jobs = _all_jobs(market)
    return {
        "version": STATE_VERSION,
        "config": market.config.to_dict(),
        "accounts": [a.to_dict() for a in market.list_accounts()],
        "jobs": [j.to_dict() for j in jobs],
        "transitions": [t.to_dict() for j in jobs for t in market.job_history(j.id)],
        "escrow": [h.to_dict() for h in market.escrow.list_holds()],
        "events": market.event_log.to_list(),
        "ledger": market.token_ledger.to_dict(),
    }


def marketplace_from_dict(
    data: Dict[str, Any],
    clock: Optional[Callable] = None,
) -> Marketplace:
    """Rebuild a marketplace from :func:`marketplace_to_dict` output.

    Raises:
        StateFileError: If the data is not a marketplace state
    """
    if data.get("version") != STATE_VERSION:
        raise StateFileError(f"Unsupported state version: {data.get('version')!r}")

    try:
        config = MarketConfig.from_dict(data.get("config") or {})

        accounts = InMemoryAccountStorage()
        for item in data.get("accounts", []):
            accounts.save_account(Account.from_dict(item))

        jobs = InMemoryJobStorage()
        for item in data.get("jobs", []):
            jobs.save_job(Job.from_dict(item))
        for item in data.get("transitions", []):
            jobs.save_transition(JobStateTransition.from_dict(item))

        escrow = InMemoryEscrowStorage()
        for item in data.get("escrow", []):
            escrow.save_hold(EscrowHold.from_dict(item))

        events = EventLog(clock)
        events.load(data.get("events", []))

        ledger = InMemoryTokenLedger.from_dict(data["ledger"])
    except (KeyError, TypeError, ValueError) as e:
        raise StateFileError(f"Malformed marketplace state: {e}") from e

    return Marketplace(
        config=config,
        ledger=ledger,
        clock=clock,
        account_storage=accounts,
        job_storage=jobs,
        escrow_storage=escrow,
        events=events,
    )


def save_marketplace(market: Marketplace, path: Union[str, Path]) -> Path:
    """Write the marketplace to ``path`` atomically."""
    path = Path(path).expanduser()
    payload = marketplace_to_dict(market)

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".state-", suffix=".json", dir=path.parent)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, sort_keys=True)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise StateFileError(f"Could not write {path}: {e}") from e

    logger.debug(f"Saved marketplace state to {path}")
    return path


def load_marketplace(path: Union[str, Path], clock: Optional[Callable] = None) -> Marketplace:
    """Read a marketplace saved by :func:`save_marketplace`.

    Raises:
        StateFileError: If the file is missing or not a valid state
    """
    path = Path(path).expanduser()
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise StateFileError(f"No marketplace state at {path}") from None
    except (OSError, json.JSONDecodeError) as e:
        raise StateFileError(f"Could not read {path}: {e}") from e

    if not isinstance(data, dict):
        raise StateFileError(f"Malformed marketplace state in {path}")
    market = marketplace_from_dict(data, clock=clock)
    logger.debug(f"Loaded marketplace state from {path}")
    return market
