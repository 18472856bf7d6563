"""Tests for the marketplace event log."""

import logging

import pytest

from helperjobs.events import EventLog, MarketEvent, MarketEventType
from helperjobs.identity import AlreadyRegisteredError
from helperjobs.ledger import InsufficientAllowanceError
from helperjobs.types import ONE_TOKEN


class TestEventLog:
    """Tests for EventLog."""

    def test_append_and_list(self, clock):
        """Test events are numbered in order and filterable."""
        log = EventLog(clock)
        log.append(MarketEventType.ACCOUNT_VERIFIED, account_id="alice")
        log.append(MarketEventType.FIRST_REGISTRATION, account_id="alice", grant=10000)

        events = log.list()
        assert [e.sequence for e in events] == [0, 1]
        assert events[1].created_at == clock()
        assert log.list(MarketEventType.FIRST_REGISTRATION)[0].data["grant"] == 10000
        assert len(log) == 2

    def test_subscribers_see_events_on_flush(self):
        """Test subscribers are only called on flush."""
        log = EventLog()
        received = []
        log.subscribe(received.append)

        log.append(MarketEventType.JOB_CREATED, job_id=0)
        assert received == []

        log.flush()
        assert [e.event_type for e in received] == [MarketEventType.JOB_CREATED]

    def test_failing_subscriber_is_logged(self, caplog):
        """Test a broken subscriber does not stop delivery."""
        log = EventLog()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        log.subscribe(broken)
        log.subscribe(received.append)
        log.append(MarketEventType.JOB_TAKEN, job_id=0)

        with caplog.at_level(logging.WARNING, logger="helperjobs.events"):
            log.flush()

        assert len(received) == 1
        assert "boom" in caplog.text

    def test_unsubscribe(self):
        """Test unsubscribed callbacks stop receiving events."""
        log = EventLog()
        received = []
        log.subscribe(received.append)
        log.unsubscribe(received.append)

        log.append(MarketEventType.JOB_TAKEN, job_id=0)
        log.flush()

        assert received == []

    def test_revert_drops_pending(self):
        """Test reverting discards events recorded after the checkpoint."""
        log = EventLog()
        received = []
        log.subscribe(received.append)
        cp = log.checkpoint()

        log.append(MarketEventType.JOB_TAKEN, job_id=0)
        log.revert(cp)
        log.flush()

        assert log.list() == []
        assert received == []

    def test_serialization(self, clock):
        """Test events survive to_list/load."""
        log = EventLog(clock)
        log.append(MarketEventType.JOB_DISPUTED, creator_id="alice", worker_id="bob", job_id=4)

        restored = EventLog()
        restored.load(log.to_list())

        assert restored.list() == log.list()
        assert MarketEvent.from_dict(log.to_list()[0]).data["job_id"] == 4


class TestMarketplaceEvents:
    """Tests for the events the marketplace records."""

    def test_lifecycle_events(self, market, alice, bob):
        """Test the events of a paid job."""
        job = market.create_job("alice", "Paint", 50 * ONE_TOKEN)
        market.take_job("bob", job.id)
        market.complete_and_review_job("alice", job.id, 4)

        types = [e.event_type for e in market.events()]
        assert types == [
            MarketEventType.ACCOUNT_VERIFIED,
            MarketEventType.FIRST_REGISTRATION,
            MarketEventType.ACCOUNT_VERIFIED,
            MarketEventType.FIRST_REGISTRATION,
            MarketEventType.JOB_CREATED,
            MarketEventType.JOB_TAKEN,
            MarketEventType.JOB_COMPLETED_AND_PAID,
        ]
        paid = market.events(MarketEventType.JOB_COMPLETED_AND_PAID)[0]
        assert paid.data == {
            "creator_id": "alice",
            "worker_id": "bob",
            "job_id": job.id,
            "reward": 5000,
            "stars": 4,
        }

    def test_first_registration_once(self, market, alice):
        """Test registration is announced exactly once per account."""
        with pytest.raises(AlreadyRegisteredError):
            market.enroll("alice")

        registrations = market.events(MarketEventType.FIRST_REGISTRATION)
        assert [e.data["account_id"] for e in registrations] == ["alice"]

    def test_failed_call_records_nothing(self, market, alice, bob):
        """Test a rolled-back call leaves no events and notifies nobody."""
        received = []
        market.subscribe(received.append)
        before = len(market.events())

        with pytest.raises(InsufficientAllowanceError):
            market.create_job("bob", "Too expensive", ONE_TOKEN)

        assert len(market.events()) == before
        assert received == []

    def test_subscriber_notified_after_commit(self, market, alice):
        """Test subscribers receive committed events."""
        received = []
        market.subscribe(received.append)

        market.create_job("alice", "Paint", ONE_TOKEN)

        assert [e.event_type for e in received] == [MarketEventType.JOB_CREATED]

    def test_badge_upgrade_event(self, market, alice, bob):
        """Test reaching a threshold announces the new badge."""
        for n in range(10):
            job = market.create_job("alice", f"chore {n}", ONE_TOKEN)
            market.take_job("bob", job.id)
            market.complete_and_review_job("alice", job.id, 5)

        upgrades = market.events(MarketEventType.BADGE_UPGRADED)
        assert [e.data for e in upgrades] == [
            {"account_id": "bob", "badge": "BRONZE", "completed_jobs": 10}
        ]
