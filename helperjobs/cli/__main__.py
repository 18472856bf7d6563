"""
helperjobs CLI - operate a marketplace kept in a local state file.

Usage:
    helperjobs init [--force]
    helperjobs verify ACCOUNT --as ADMIN
    helperjobs enroll --as ACCOUNT
    helperjobs approve AMOUNT --as ACCOUNT
    helperjobs balance ACCOUNT
    helperjobs create REWARD DESCRIPTION --as ACCOUNT
    helperjobs take JOB_ID --as ACCOUNT
    helperjobs review JOB_ID RATING [--dispute] --as ACCOUNT
    helperjobs cancel JOB_ID --as ACCOUNT
    helperjobs resolve JOB_ID {worker,creator} --as ADMIN
    helperjobs job JOB_ID
    helperjobs jobs [--status STATUS] [--creator C] [--worker W]
    helperjobs account ACCOUNT
    helperjobs history JOB_ID
    helperjobs events [--type TYPE]

Amounts are whole tokens with up to two decimals (``12.5``).
"""

import argparse
import json
import logging
import os
import re
import sys
from pathlib import Path
from typing import Any, List, Optional

from helperjobs.config import MarketConfig
from helperjobs.errors import HelperJobsError
from helperjobs.events import MarketEventType
from helperjobs.jobs import JobStatus
from helperjobs.ledger import from_units, to_units
from helperjobs.marketplace import Marketplace
from helperjobs.state import StateFileError, load_marketplace, save_marketplace

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

DEFAULT_STATE = "~/.helperjobs/state.json"


def default_state_path() -> str:
    return os.environ.get("HELPERJOBS_STATE", DEFAULT_STATE)


def validate_input(value: str, field_name: str, max_length: int = 1000) -> str:
    """Validate and sanitize CLI inputs."""
    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")

    # Remove null bytes and control characters except newlines
    return re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]", "", value)


def token_amount(value: str) -> int:
    """argparse type: whole tokens -> integer units."""
    try:
        return to_units(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def print_json(data: Any) -> None:
    """Print data as formatted JSON."""
    print(json.dumps(data, indent=2, default=str))


def fmt_tokens(units: int) -> str:
    return f"{from_units(units)} HLP"


def print_job(job) -> None:
    print(f"Job #{job.id} [{job.status}]")
    print(f"  Creator: {job.creator_id}")
    print(f"  Worker:  {job.worker_id or '-'}")
    print(f"  Reward:  {fmt_tokens(job.reward)}")
    if job.stars is not None:
        print(f"  Stars:   {job.stars}")
    if job.resolution:
        print(f"  Resolved for: {job.resolution}")
    print(f"  {job.description}")


# === Commands ===


def cmd_init(args, state: Path) -> None:
    """Create a fresh marketplace state file."""
    if state.exists() and not args.force:
        raise ValueError(f"{state} already exists (use --force to overwrite)")
    config = MarketConfig(administrator_id=args.admin)
    save_marketplace(Marketplace(config), state)
    if args.json:
        print_json({"state": str(state), "config": config.to_dict()})
    else:
        print(f"✓ Marketplace initialized at {state} (administrator: {config.administrator_id})")


def cmd_verify(args, market: Marketplace) -> None:
    account = market.verify(args.actor, args.account)
    if args.json:
        print_json(account.to_dict())
    else:
        print(f"✓ Verified {account.account_id}")


def cmd_enroll(args, market: Marketplace) -> None:
    account = market.enroll(args.actor)
    if args.json:
        print_json({**account.to_dict(), "balance": market.balance_of(account.account_id)})
    else:
        print(f"✓ Registered {account.account_id}")
        print(f"  Balance: {fmt_tokens(market.balance_of(account.account_id))}")


def cmd_approve(args, market: Marketplace) -> None:
    market.approve(args.actor, args.amount)
    if args.json:
        print_json({"owner": args.actor, "allowance": market.allowance_of(args.actor)})
    else:
        print(f"✓ Engine may spend {fmt_tokens(args.amount)} of {args.actor}'s tokens")


def cmd_balance(args, market: Marketplace) -> None:
    balance = market.balance_of(args.account)
    allowance = market.allowance_of(args.account)
    if args.json:
        print_json({"account_id": args.account, "balance": balance, "allowance": allowance})
    else:
        print(f"{args.account}: {fmt_tokens(balance)} (allowance {fmt_tokens(allowance)})")


def cmd_create(args, market: Marketplace) -> None:
    description = validate_input(args.description, "description", market.config.max_description_length)
    job = market.create_job(args.actor, description, args.reward)
    if args.json:
        print_json(job.to_dict())
    else:
        print(f"✓ Job #{job.id} created with reward {fmt_tokens(job.reward)}")


def cmd_take(args, market: Marketplace) -> None:
    job = market.take_job(args.actor, args.job_id)
    if args.json:
        print_json(job.to_dict())
    else:
        print(f"✓ Job #{job.id} taken by {job.worker_id}")


def cmd_review(args, market: Marketplace) -> None:
    job = market.complete_and_review_job(args.actor, args.job_id, args.rating, args.dispute)
    if args.json:
        print_json(job.to_dict())
    elif job.job_status == JobStatus.DISPUTED:
        print(f"✓ Job #{job.id} disputed; awaiting administrator decision")
    else:
        print(f"✓ Job #{job.id} completed; {fmt_tokens(job.reward)} paid to {job.worker_id}")


def cmd_cancel(args, market: Marketplace) -> None:
    job = market.cancel_job(args.actor, args.job_id)
    if args.json:
        print_json(job.to_dict())
    else:
        print(f"✓ Job #{job.id} cancelled; {fmt_tokens(job.reward)} refunded")


def cmd_resolve(args, market: Marketplace) -> None:
    job = market.handle_disputed_job(args.actor, args.job_id, args.decision == "worker")
    if args.json:
        print_json(job.to_dict())
    else:
        print(f"✓ Dispute on job #{job.id} resolved for the {args.decision}")


def cmd_job(args, market: Marketplace) -> None:
    job = market.get_job(args.job_id)
    if args.json:
        print_json(job.to_dict())
    else:
        print_job(job)


def cmd_jobs(args, market: Marketplace) -> None:
    jobs = market.list_jobs(
        status=JobStatus(args.status) if args.status else None,
        creator_id=args.creator,
        worker_id=args.worker,
        limit=args.limit,
    )
    if args.json:
        print_json([j.to_dict() for j in jobs])
        return
    if not jobs:
        print("No jobs found.")
        return
    for job in jobs:
        worker = f" -> {job.worker_id}" if job.worker_id else ""
        print(f"#{job.id:<4} {job.status:<10} {fmt_tokens(job.reward):>14}  {job.creator_id}{worker}")


def cmd_account(args, market: Marketplace) -> None:
    account = market.get_account(args.account)
    quote = market.depreciation_quote(args.account)
    if args.json:
        print_json({**account.to_dict(), "depreciation": quote.to_dict()})
        return
    print(f"Account {account.account_id}")
    print(f"  Verified:   {'Yes ✓' if account.verified else 'No'}")
    print(f"  Registered: {'Yes ✓' if account.registered else 'No'}")
    print(f"  Completed:  {account.completed_jobs} jobs")
    print(f"  Badge:      {account.badge.name}")
    print(f"  Last active: {account.last_activity or '-'}")
    if quote.dormant:
        print(f"  ⚠ Dormant: next call is charged {fmt_tokens(quote.amount)} ({quote.rate}%)")


def cmd_history(args, market: Marketplace) -> None:
    history = market.job_history(args.job_id)
    if args.json:
        print_json([t.to_dict() for t in history])
        return
    for t in history:
        reason = f" ({t.reason})" if t.reason else ""
        print(f"{t.created_at:%Y-%m-%d %H:%M} {t.from_status or '-'} -> {t.to_status} by {t.actor_id}{reason}")


def cmd_events(args, market: Marketplace) -> None:
    events = market.events(MarketEventType(args.type) if args.type else None)
    if args.json:
        print_json([e.to_dict() for e in events])
        return
    for e in events:
        fields = ", ".join(f"{k}={v}" for k, v in e.data.items())
        print(f"{e.sequence:>4} {e.event_type.value}: {fields}")


COMMANDS = {
    "verify": (cmd_verify, True),
    "enroll": (cmd_enroll, True),
    "approve": (cmd_approve, True),
    "balance": (cmd_balance, False),
    "create": (cmd_create, True),
    "take": (cmd_take, True),
    "review": (cmd_review, True),
    "cancel": (cmd_cancel, True),
    "resolve": (cmd_resolve, True),
    "job": (cmd_job, False),
    "jobs": (cmd_jobs, False),
    "account": (cmd_account, False),
    "history": (cmd_history, False),
    "events": (cmd_events, False),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="helperjobs",
        description="Token-denominated job marketplace",
    )
    parser.add_argument("--state", default=None, help="State file (default: $HELPERJOBS_STATE or ~/.helperjobs/state.json)")
    parser.add_argument("--json", "-j", action="store_true", help="JSON output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log state changes")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def with_actor(p: argparse.ArgumentParser, who: str = "ACCOUNT") -> None:
        p.add_argument("--as", dest="actor", required=True, metavar=who, help="Calling account")

    p_init = subparsers.add_parser("init", help="Create a new marketplace")
    p_init.add_argument("--admin", default=MarketConfig.administrator_id, help="Administrator account")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing state file")

    p_verify = subparsers.add_parser("verify", help="Verify an account (administrator)")
    p_verify.add_argument("account")
    with_actor(p_verify, "ADMIN")

    p_enroll = subparsers.add_parser("enroll", help="Register and receive the grant")
    with_actor(p_enroll)

    p_approve = subparsers.add_parser("approve", help="Allow the engine to spend tokens")
    p_approve.add_argument("amount", type=token_amount)
    with_actor(p_approve)

    p_balance = subparsers.add_parser("balance", help="Show balance and allowance")
    p_balance.add_argument("account")

    p_create = subparsers.add_parser("create", help="Post a job")
    p_create.add_argument("reward", type=token_amount)
    p_create.add_argument("description")
    with_actor(p_create)

    p_take = subparsers.add_parser("take", help="Take a job")
    p_take.add_argument("job_id", type=int)
    with_actor(p_take)

    p_review = subparsers.add_parser("review", help="Complete and rate a job")
    p_review.add_argument("job_id", type=int)
    p_review.add_argument("rating", type=int)
    p_review.add_argument("--dispute", action="store_true", help="Withhold payment and dispute")
    with_actor(p_review)

    p_cancel = subparsers.add_parser("cancel", help="Cancel an untaken job")
    p_cancel.add_argument("job_id", type=int)
    with_actor(p_cancel)

    p_resolve = subparsers.add_parser("resolve", help="Settle a disputed job (administrator)")
    p_resolve.add_argument("job_id", type=int)
    p_resolve.add_argument("decision", choices=["worker", "creator"])
    with_actor(p_resolve, "ADMIN")

    p_job = subparsers.add_parser("job", help="Show a job")
    p_job.add_argument("job_id", type=int)

    p_jobs = subparsers.add_parser("jobs", help="List jobs")
    p_jobs.add_argument("--status", choices=[s.value for s in JobStatus])
    p_jobs.add_argument("--creator")
    p_jobs.add_argument("--worker")
    p_jobs.add_argument("--limit", type=int, default=50)

    p_account = subparsers.add_parser("account", help="Show an account")
    p_account.add_argument("account")

    p_history = subparsers.add_parser("history", help="Show a job's transitions")
    p_history.add_argument("job_id", type=int)

    p_events = subparsers.add_parser("events", help="List marketplace events")
    p_events.add_argument("--type", choices=[t.value for t in MarketEventType])

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger("helperjobs").setLevel(logging.INFO)

    state = Path(args.state or default_state_path()).expanduser()

    try:
        if args.command == "init":
            cmd_init(args, state)
            return

        handler, mutates = COMMANDS[args.command]
        market = load_marketplace(state)
        if mutates:
            market.add_commit_hook(lambda m: save_marketplace(m, state))
        handler(args, market)
    except StateFileError as e:
        print(f"✗ {e}", file=sys.stderr)
        if args.command != "init" and not state.exists():
            print("  Run 'helperjobs init' to create a marketplace.", file=sys.stderr)
        sys.exit(1)
    except (HelperJobsError, ValueError) as e:
        logger.debug(f"Command {args.command} failed: {e!r}")
        print(f"✗ {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
