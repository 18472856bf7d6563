"""
Marketplace events.

The engine records one event per notable effect (registration, job
transitions, payouts, depreciation charges, badge upgrades). Events are
appended inside the call that produces them and are rolled back with it;
subscribers are only notified once the call has committed.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from helperjobs.types import format_datetime, parse_datetime, utc_now

logger = logging.getLogger(__name__)


class MarketEventType(str, Enum):
    """Types of marketplace events."""

    ACCOUNT_VERIFIED = "account_verified"
    FIRST_REGISTRATION = "first_registration"
    JOB_CREATED = "job_created"
    JOB_TAKEN = "job_taken"
    JOB_COMPLETED_AND_PAID = "job_completed_and_paid"
    JOB_COMPLETED_NOT_PAID = "job_completed_not_paid"
    JOB_DISPUTED = "job_disputed"
    JOB_CANCELLED = "job_cancelled"
    DEPRECIATION_CHARGED = "depreciation_charged"
    BADGE_UPGRADED = "badge_upgraded"


@dataclass
class MarketEvent:
    """A recorded marketplace event."""

    sequence: int
    event_type: MarketEventType
    data: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "event_type": self.event_type.value,
            "data": dict(self.data),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MarketEvent":
        return cls(
            sequence=int(data["sequence"]),
            event_type=MarketEventType(data["event_type"]),
            data=dict(data.get("data") or {}),
            created_at=parse_datetime(data.get("created_at")) or utc_now(),
        )


EventSubscriber = Callable[[MarketEvent], None]


class EventLog:
    """Append-only, in-memory event log with post-commit subscribers."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or utc_now
        self._events: List[MarketEvent] = []
        self._pending: List[MarketEvent] = []
        self._subscribers: List[EventSubscriber] = []

    def __len__(self) -> int:
        return len(self._events)

    def append(self, event_type: MarketEventType, **data: Any) -> MarketEvent:
        """Record an event; subscribers see it on the next :meth:`flush`."""
        event = MarketEvent(
            sequence=len(self._events),
            event_type=event_type,
            data=data,
            created_at=self._clock(),
        )
        self._events.append(event)
        self._pending.append(event)
        return event

    def list(
        self,
        event_type: Optional[MarketEventType] = None,
        limit: Optional[int] = None,
    ) -> List[MarketEvent]:
        """Events in recording order, optionally filtered by type."""
        events = self._events
        if event_type is not None:
            events = [e for e in events if e.event_type == MarketEventType(event_type)]
        else:
            events = list(events)
        if limit is not None:
            events = events[-limit:]
        return events

    def subscribe(self, callback: EventSubscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: EventSubscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def flush(self) -> None:
        """Deliver pending events to subscribers."""
        pending, self._pending = self._pending, []
        for event in pending:
            for callback in list(self._subscribers):
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(
                        f"Event subscriber {callback!r} failed on {event.event_type.value}: {e}"
                    )

    # === Rollback and serialization ===

    def checkpoint(self) -> int:
        """Mark the current end of the log."""
        return len(self._events)

    def revert(self, cp: int) -> None:
        """Drop events recorded after the checkpoint, unpublished."""
        del self._events[cp:]
        self._pending = []

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._events]

    def load(self, items: List[Dict[str, Any]]) -> None:
        """Replace the log's contents with serialized events."""
        self._events = [MarketEvent.from_dict(item) for item in items]
        self._pending = []
