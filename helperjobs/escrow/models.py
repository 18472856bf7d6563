"""Escrow hold data models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from helperjobs.types import format_datetime, parse_datetime


class EscrowStatus(str, Enum):
    """Escrow hold lifecycle status."""

    HELD = "held"  # Tokens sit in the engine account
    RELEASED = "released"  # Paid out to the worker
    REFUNDED = "refunded"  # Returned to the depositor


@dataclass
class EscrowHold:
    """Tokens held by the engine for one job.

    Attributes:
        job_id: Job the hold backs
        depositor: Account the tokens were collected from (the job creator)
        amount: Units held
        status: Hold lifecycle status
        beneficiary: Account the hold was settled to
        held_at: When the tokens were collected
        settled_at: When the hold was released or refunded
    """

    job_id: int
    depositor: str
    amount: int
    status: str = EscrowStatus.HELD.value
    beneficiary: Optional[str] = None
    held_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Escrow amount must be positive")
        if isinstance(self.status, EscrowStatus):
            self.status = self.status.value
        if self.status not in {s.value for s in EscrowStatus}:
            raise ValueError(f"Invalid escrow status: {self.status}")

    @property
    def is_settled(self) -> bool:
        return self.status != EscrowStatus.HELD.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "depositor": self.depositor,
            "amount": self.amount,
            "status": self.status,
            "beneficiary": self.beneficiary,
            "held_at": format_datetime(self.held_at),
            "settled_at": format_datetime(self.settled_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EscrowHold":
        return cls(
            job_id=int(data["job_id"]),
            depositor=data["depositor"],
            amount=int(data["amount"]),
            status=data.get("status", EscrowStatus.HELD.value),
            beneficiary=data.get("beneficiary"),
            held_at=parse_datetime(data.get("held_at")),
            settled_at=parse_datetime(data.get("settled_at")),
        )
