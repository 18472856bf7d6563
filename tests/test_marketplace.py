"""Tests for the marketplace engine: lifecycle, escrow, depreciation ordering."""

import threading

import pytest

from helperjobs.errors import AuthorizationError, EligibilityError, HelperJobsError
from helperjobs.escrow import EscrowStatus
from helperjobs.identity import EngineAccountError, NotRegisteredError, NotVerifiedError
from helperjobs.jobs import (
    InvalidAmountError,
    InvalidRatingError,
    JobNotFoundError,
    JobStatus,
    JobStatusIncorrectError,
    UnauthorizedError,
    WorkerIsCreatorError,
)
from helperjobs.ledger import (
    ApprovalNotSupportedError,
    InsufficientAllowanceError,
    InsufficientFundsError,
)
from helperjobs.marketplace import Marketplace, NotAdministratorError
from helperjobs.types import ONE_TOKEN

ADMIN = "admin"
ENGINE = "helperjobs"
REWARD = 50 * ONE_TOKEN


@pytest.fixture
def job(market, alice, bob):
    return market.create_job("alice", "Mow the lawn", REWARD)


@pytest.fixture
def taken_job(market, job):
    return market.take_job("bob", job.id)


class TestVerifyAndEnroll:
    """Tests for verification and registration."""

    def test_only_administrator_verifies(self, market):
        """Test non-administrators cannot verify."""
        with pytest.raises(NotAdministratorError, match="not the administrator") as exc_info:
            market.verify("alice", "alice")

        assert isinstance(exc_info.value, AuthorizationError)
        assert not market.get_account("alice").verified

    def test_enroll_pays_grant(self, market, token_ledger, config):
        """Test enrollment grants 100 tokens from the engine."""
        market.verify(ADMIN, "alice")

        account = market.enroll("alice")

        assert account.registered and account.verified
        assert market.balance_of("alice") == 100 * ONE_TOKEN
        assert token_ledger.balance_of(ENGINE) == config.initial_supply - 100 * ONE_TOKEN

    def test_enroll_unverified(self, market):
        """Test unverified accounts cannot enroll or receive the grant."""
        with pytest.raises(NotVerifiedError) as exc_info:
            market.enroll("alice")

        assert isinstance(exc_info.value, EligibilityError)
        assert market.balance_of("alice") == 0

    def test_unknown_account_reads_unverified(self, market):
        """Test queries on unknown accounts return defaults."""
        account = market.get_account("nobody")

        assert not account.verified
        assert not account.registered
        assert account.completed_jobs == 0

    def test_engine_account_cannot_take_part(self, market):
        """Test the engine's own ledger account is never verified or enrolled."""
        with pytest.raises(EngineAccountError, match="engine account") as exc_info:
            market.verify(ADMIN, ENGINE)

        assert isinstance(exc_info.value, EligibilityError)
        assert not market.get_account(ENGINE).verified
        with pytest.raises(EngineAccountError):
            market.enroll(ENGINE)
        assert market.events() == []


class TestCreateJob:
    """Tests for posting jobs."""

    def test_escrows_reward(self, market, alice, clock):
        """Test the reward moves from the creator into escrow."""
        clock.advance(days=1)

        job = market.create_job("alice", "Mow the lawn", REWARD)

        assert job.id == 0
        assert job.job_status == JobStatus.CREATED
        assert market.balance_of("alice") == 100 * ONE_TOKEN - REWARD
        assert market.allowance_of("alice") == 100 * ONE_TOKEN - REWARD
        assert market.escrow_total() == REWARD
        assert market.escrow.get_hold(job.id).status == EscrowStatus.HELD.value
        assert market.get_account("alice").last_activity == clock()

    def test_requires_registration(self, market):
        """Test unregistered callers cannot post."""
        market.verify(ADMIN, "carol")

        with pytest.raises(NotRegisteredError, match="not registered"):
            market.create_job("carol", "x", ONE_TOKEN)

    def test_insufficient_funds_reports_reward(self, market, alice):
        """Test a reward above the balance fails on funds."""
        with pytest.raises(InsufficientFundsError) as exc_info:
            market.create_job("alice", "x", 100 * ONE_TOKEN + 1)

        assert exc_info.value.required == 100 * ONE_TOKEN + 1

    def test_insufficient_allowance_reports_reward(self, market, bob):
        """Test a reward above the allowance fails on allowance."""
        market.approve("bob", REWARD - 1)

        with pytest.raises(InsufficientAllowanceError, match=f"{REWARD} units required"):
            market.create_job("bob", "x", REWARD)

        assert market.balance_of("bob") == 100 * ONE_TOKEN

    def test_failed_create_does_not_consume_id(self, market, alice):
        """Test ids are only allocated by successful calls."""
        with pytest.raises(InsufficientFundsError):
            market.create_job("alice", "x", 1_000_000)

        assert market.create_job("alice", "x", ONE_TOKEN).id == 0
        assert market.create_job("alice", "y", ONE_TOKEN).id == 1

    def test_invalid_reward_charges_nothing(self, market, alice, clock):
        """Test a malformed reward fails before any depreciation charge."""
        clock.advance(days=120)

        with pytest.raises(InvalidAmountError):
            market.create_job("alice", "x", 0)

        assert market.balance_of("alice") == 100 * ONE_TOKEN
        assert market.depreciation_quote("alice").dormant


class TestTakeJob:
    """Tests for taking jobs."""

    def test_take(self, market, job, clock):
        """Test the caller becomes the worker."""
        clock.advance(hours=2)

        taken = market.take_job("bob", job.id)

        assert taken.job_status == JobStatus.TAKEN
        assert taken.worker_id == "bob"
        assert market.get_account("bob").last_activity == clock()

    def test_state_error_regardless_of_caller(self, market, taken_job, register):
        """Test a taken job fails with a state error for anyone, creator included."""
        register("carol")
        for caller in ("alice", "bob", "carol"):
            with pytest.raises(JobStatusIncorrectError) as exc_info:
                market.take_job(caller, taken_job.id)
            assert exc_info.value.current == JobStatus.TAKEN
            assert exc_info.value.expected == JobStatus.CREATED

    def test_creator_cannot_take(self, market, job):
        """Test the creator gets an authorization error on a CREATED job."""
        with pytest.raises(WorkerIsCreatorError, match="Worker can't be the creator") as exc_info:
            market.take_job("alice", job.id)

        assert isinstance(exc_info.value, AuthorizationError)

    def test_unregistered_worker(self, market, job):
        """Test unregistered workers are rejected."""
        with pytest.raises(NotRegisteredError):
            market.take_job("mallory", job.id)

    def test_unknown_job(self, market, bob):
        """Test taking a job id never allocated."""
        with pytest.raises(JobNotFoundError):
            market.take_job("bob", 42)

    def test_failed_take_rolls_back_depreciation(self, market, taken_job, register, clock):
        """Test a dormant caller's fee is undone when the operation fails."""
        register("carol", approve=100 * ONE_TOKEN)
        activity = market.get_account("carol").last_activity
        clock.advance(days=90)

        with pytest.raises(JobStatusIncorrectError):
            market.take_job("carol", taken_job.id)

        assert market.balance_of("carol") == 100 * ONE_TOKEN
        assert market.allowance_of("carol") == 100 * ONE_TOKEN
        assert market.get_account("carol").last_activity == activity


class TestCompleteAndReview:
    """Tests for the creator's review."""

    def test_paid_completion(self, market, taken_job):
        """Test the two-account scenario: 100/100, reward 50, rating 5."""
        job = market.complete_and_review_job("alice", taken_job.id, 5)

        assert job.job_status == JobStatus.COMPLETED
        assert job.stars == 5
        assert market.balance_of("bob") == 150 * ONE_TOKEN
        assert market.balance_of("alice") == 50 * ONE_TOKEN
        assert market.get_account("bob").completed_jobs == 1
        assert market.escrow_total() == 0

    def test_only_creator(self, market, taken_job):
        """Test the worker cannot review their own job."""
        with pytest.raises(UnauthorizedError, match="Only the creator"):
            market.complete_and_review_job("bob", taken_job.id, 5)

    def test_requires_taken(self, market, job):
        """Test a CREATED job cannot be reviewed."""
        with pytest.raises(JobStatusIncorrectError) as exc_info:
            market.complete_and_review_job("alice", job.id, 5)

        assert exc_info.value.expected == JobStatus.TAKEN

    def test_bad_rating_changes_nothing(self, market, taken_job):
        """Test an out-of-range rating leaves the job and balances alone."""
        with pytest.raises(InvalidRatingError):
            market.complete_and_review_job("alice", taken_job.id, 6)

        assert market.get_job(taken_job.id).job_status == JobStatus.TAKEN
        assert market.get_job(taken_job.id).stars is None
        assert market.balance_of("bob") == 100 * ONE_TOKEN

    def test_dispute_defers_payout(self, market, taken_job):
        """Test a disputed review moves no tokens."""
        job = market.complete_and_review_job("alice", taken_job.id, 1, disputed=True)

        assert job.job_status == JobStatus.DISPUTED
        assert job.stars == 1
        assert market.balance_of("alice") == 50 * ONE_TOKEN
        assert market.balance_of("bob") == 100 * ONE_TOKEN
        assert market.get_account("bob").completed_jobs == 0
        assert market.escrow_total() == REWARD


class TestHandleDisputedJob:
    """Tests for the administrator's dispute decision."""

    @pytest.fixture
    def disputed_job(self, market, taken_job):
        return market.complete_and_review_job("alice", taken_job.id, 1, disputed=True)

    def test_resolve_for_creator(self, market, disputed_job):
        """Test the dispute scenario: creator refunded, worker uncredited."""
        job = market.handle_disputed_job(ADMIN, disputed_job.id, resolved=False)

        assert job.job_status == JobStatus.COMPLETED
        assert market.balance_of("alice") == 100 * ONE_TOKEN
        assert market.balance_of("bob") == 100 * ONE_TOKEN
        assert market.get_account("bob").completed_jobs == 0

    def test_resolve_for_worker(self, market, disputed_job):
        """Test deciding for the worker pays and credits them."""
        job = market.handle_disputed_job(ADMIN, disputed_job.id, resolved=True)

        assert job.job_status == JobStatus.COMPLETED
        assert market.balance_of("bob") == 150 * ONE_TOKEN
        assert market.get_account("bob").completed_jobs == 1

    def test_only_administrator(self, market, disputed_job):
        """Test participants cannot settle disputes."""
        with pytest.raises(NotAdministratorError):
            market.handle_disputed_job("alice", disputed_job.id, resolved=False)

        assert market.get_job(disputed_job.id).job_status == JobStatus.DISPUTED

    def test_requires_disputed(self, market, taken_job):
        """Test only disputed jobs can be settled."""
        with pytest.raises(JobStatusIncorrectError) as exc_info:
            market.handle_disputed_job(ADMIN, taken_job.id, resolved=True)

        assert exc_info.value.current == JobStatus.TAKEN
        assert exc_info.value.expected == JobStatus.DISPUTED

    def test_decision_is_final(self, market, disputed_job):
        """Test a settled dispute cannot be settled again."""
        market.handle_disputed_job(ADMIN, disputed_job.id, resolved=False)

        with pytest.raises(JobStatusIncorrectError):
            market.handle_disputed_job(ADMIN, disputed_job.id, resolved=True)

        assert market.balance_of("bob") == 100 * ONE_TOKEN


class TestCancelJob:
    """Tests for cancelling jobs."""

    def test_cancel_refunds(self, market, job):
        """Test cancelling returns the reward."""
        cancelled = market.cancel_job("alice", job.id)

        assert cancelled.job_status == JobStatus.CANCELLED
        assert market.balance_of("alice") == 100 * ONE_TOKEN
        assert market.escrow_total() == 0

    def test_only_creator(self, market, job):
        """Test others cannot cancel."""
        with pytest.raises(UnauthorizedError, match="Only the creator can cancel the job"):
            market.cancel_job("bob", job.id)

    def test_cannot_cancel_taken(self, market, taken_job):
        """Test a taken job cannot be cancelled."""
        with pytest.raises(JobStatusIncorrectError):
            market.cancel_job("alice", taken_job.id)

    def test_cannot_cancel_twice(self, market, job):
        """Test refunds happen once."""
        market.cancel_job("alice", job.id)

        with pytest.raises(JobStatusIncorrectError):
            market.cancel_job("alice", job.id)

        assert market.balance_of("alice") == 100 * ONE_TOKEN


class TestDepreciationOrdering:
    """Tests for depreciation as the first effect of a call."""

    def test_dormant_create_scenario(self, market, register, clock):
        """Test balance 10000, approval 1500, reward 1000 after 90 idle days."""
        register("dora", approve=1500)
        clock.advance(days=90)

        job = market.create_job("dora", "Water plants", 1000)

        assert job.job_status == JobStatus.CREATED
        assert market.balance_of("dora") == 8500
        assert market.allowance_of("dora") == 0
        assert market.get_account("dora").last_activity == clock()

    def test_one_unit_short_fails_whole_call(self, market, register, clock):
        """Test an allowance one unit below fee + reward fails with nothing applied."""
        register("dora", approve=1499)
        activity = market.get_account("dora").last_activity
        events = len(market.events())
        clock.advance(days=90)

        with pytest.raises(InsufficientAllowanceError) as exc_info:
            market.create_job("dora", "Water plants", 1000)

        assert exc_info.value.required == 1500
        assert market.balance_of("dora") == 10000
        assert market.allowance_of("dora") == 1499
        assert market.get_account("dora").last_activity == activity
        assert market.list_jobs() == []
        assert len(market.events()) == events

    def test_registration_checked_before_depreciation(self, market, clock):
        """Test unregistered callers fail on eligibility, not economics."""
        market.verify(ADMIN, "carol")
        clock.advance(days=365)

        with pytest.raises(NotRegisteredError):
            market.take_job("carol", 0)

    def test_depreciation_before_job_lookup(self, market, register, clock):
        """Test a dormant caller short on allowance fails economically first."""
        register("dora")
        clock.advance(days=90)

        with pytest.raises(InsufficientAllowanceError) as exc_info:
            market.take_job("dora", 99)

        assert exc_info.value.required == 500

    def test_administrator_not_charged(self, market, job, taken_job, clock):
        """Test dispute settlement never charges the administrator."""
        market.complete_and_review_job("alice", taken_job.id, 0, disputed=True)
        clock.advance(days=400)

        market.handle_disputed_job(ADMIN, taken_job.id, resolved=True)

        assert market.get_account(ADMIN).last_activity is None


class TestEscrowInvariant:
    """Tests for exactly-once settlement and token conservation."""

    def test_every_job_settles_once(self, market, alice, bob, config):
        """Test payouts and refunds across all terminal paths."""
        paid = market.create_job("alice", "paid", ONE_TOKEN)
        market.take_job("bob", paid.id)
        market.complete_and_review_job("alice", paid.id, 5)

        cancelled = market.create_job("alice", "cancelled", 2 * ONE_TOKEN)
        market.cancel_job("alice", cancelled.id)

        for_worker = market.create_job("alice", "for worker", 3 * ONE_TOKEN)
        market.take_job("bob", for_worker.id)
        market.complete_and_review_job("alice", for_worker.id, 2, disputed=True)
        market.handle_disputed_job(ADMIN, for_worker.id, resolved=True)

        for_creator = market.create_job("alice", "for creator", 4 * ONE_TOKEN)
        market.take_job("bob", for_creator.id)
        market.complete_and_review_job("alice", for_creator.id, 0, disputed=True)
        market.handle_disputed_job(ADMIN, for_creator.id, resolved=False)

        open_job = market.create_job("alice", "open", 5 * ONE_TOKEN)

        holds = {h.job_id: h for h in market.escrow.list_holds()}
        assert holds[paid.id].beneficiary == "bob"
        assert holds[cancelled.id].beneficiary == "alice"
        assert holds[for_worker.id].beneficiary == "bob"
        assert holds[for_creator.id].beneficiary == "alice"
        assert holds[open_job.id].status == EscrowStatus.HELD.value
        assert market.escrow_total() == 5 * ONE_TOKEN

        assert market.balance_of("bob") == 100 * ONE_TOKEN + 4 * ONE_TOKEN
        assert market.balance_of("alice") == 100 * ONE_TOKEN - 4 * ONE_TOKEN - 5 * ONE_TOKEN
        assert market.token_ledger.total_supply() == config.initial_supply


class TestAtomicity:
    """Tests for all-or-nothing calls."""

    def test_unexpected_failure_rolls_back(self, market, alice, monkeypatch):
        """Test an error after the escrow transfer restores everything."""

        def explode(account_id):
            raise RuntimeError("storage offline")

        monkeypatch.setattr(market.identity, "record_activity", explode)

        with pytest.raises(RuntimeError, match="storage offline"):
            market.create_job("alice", "x", REWARD)

        assert market.balance_of("alice") == 100 * ONE_TOKEN
        assert market.escrow_total() == 0
        assert market.list_jobs() == []

    def test_failing_commit_hook_undoes_call(self, market, alice, bob):
        """Test a commit hook error undoes the whole call, including existing records."""
        job = market.create_job("alice", "x", REWARD)
        received = []
        market.subscribe(received.append)

        def fail(m):
            raise OSError("disk full")

        market.add_commit_hook(fail)

        with pytest.raises(OSError, match="disk full"):
            market.create_job("alice", "y", REWARD)
        with pytest.raises(OSError):
            market.take_job("bob", job.id)

        assert [j.id for j in market.list_jobs()] == [job.id]
        assert market.get_job(job.id).job_status == JobStatus.CREATED
        assert market.get_job(job.id).worker_id is None
        assert market.balance_of("alice") == 100 * ONE_TOKEN - REWARD
        assert market.escrow_total() == REWARD
        assert received == []

    def test_commit_hook_sees_finished_call(self, market, alice):
        """Test commit hooks run once per call with its effects applied."""
        seen = []
        market.add_commit_hook(lambda m: seen.append((m.escrow_total(), len(m.events()))))

        market.create_job("alice", "x", REWARD)

        assert seen == [(REWARD, len(market.events()))]

    def test_undo_reaches_records_read_before_failure(self, market, alice, bob, monkeypatch):
        """Test a failure after an in-place change restores the job and escrow hold."""
        job = market.create_job("alice", "x", REWARD)
        market.take_job("bob", job.id)

        def explode(account_id):
            raise RuntimeError("storage offline")

        monkeypatch.setattr(market.identity, "record_completion", explode)

        with pytest.raises(RuntimeError):
            market.complete_and_review_job("alice", job.id, 5)

        assert market.get_job(job.id).job_status == JobStatus.TAKEN
        assert market.escrow.get_hold(job.id).status == EscrowStatus.HELD.value
        assert market.balance_of("bob") == 100 * ONE_TOKEN

    def test_concurrent_creates_get_unique_ids(self, market, alice):
        """Test serialized calls hand out distinct sequential ids."""
        ids = []

        def post(n):
            ids.append(market.create_job("alice", f"job {n}", ONE_TOKEN).id)

        threads = [threading.Thread(target=post, args=(n,)) for n in range(20)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(ids) == list(range(20))
        assert market.balance_of("alice") == 80 * ONE_TOKEN


class TestQueries:
    """Tests for read-only queries."""

    def test_get_unknown_job(self, market):
        """Test unknown ids raise instead of reading an empty record."""
        with pytest.raises(JobNotFoundError):
            market.get_job(0)

    def test_list_jobs_filters(self, market, taken_job, alice):
        """Test listing by status and participant."""
        other = market.create_job("alice", "second", ONE_TOKEN)

        assert [j.id for j in market.list_jobs()] == [other.id, taken_job.id]
        assert [j.id for j in market.list_jobs(status=JobStatus.TAKEN)] == [taken_job.id]
        assert [j.id for j in market.list_jobs(worker_id="bob")] == [taken_job.id]

    def test_job_history(self, market, taken_job):
        """Test the audit trail through the facade."""
        market.complete_and_review_job("alice", taken_job.id, 3)

        history = market.job_history(taken_job.id)

        assert [t.to_status for t in history] == ["created", "taken", "completed"]
        assert [t.actor_id for t in history] == ["alice", "bob", "alice"]


class TestApprove:
    """Tests for approvals through the engine."""

    def test_approve_sets_allowance(self, market, bob):
        """Test the in-memory ledger takes approvals through the engine."""
        market.approve("bob", 5 * ONE_TOKEN)

        assert market.allowance_of("bob") == 5 * ONE_TOKEN

    def test_ledger_without_approve(self, config, clock, external_ledger):
        """Test a ledger with only the four token calls reports approvals as unsupported."""
        market = Marketplace(config=config, ledger=external_ledger, clock=clock)

        with pytest.raises(ApprovalNotSupportedError, match="does not accept approvals") as exc_info:
            market.approve("alice", ONE_TOKEN)

        assert isinstance(exc_info.value, HelperJobsError)
