"""Tests for the referral reconciliation engine."""

from __future__ import annotations

import pytest
from unittest.mock import AsyncMock

from web3 import Web3

from ponyref.worker.checkpoint import CheckpointStore
from ponyref.worker.engine import ReconciliationEngine, compute_unfunded
from ponyref.worker.errors import InsufficientFundsError, NetworkError, RevertError
from ponyref.worker.models import (
    BeneficiaryAccrual,
    CycleState,
    CycleStatus,
    FundingPlan,
    FundingReceipt,
    RaceEvent,
)
from ponyref.worker.retry import RetryExecutor


P1, P2, P3 = "0xP1", "0xP2", "0xP3"
B1, B2 = "0xB1", "0xB2"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeEventSource:
    def __init__(self, height: int, events: list[RaceEvent] | None = None):
        self.height = height
        self.events = events or []
        self.query_calls: list[tuple[int, int]] = []

    async def get_current_height(self) -> int:
        return self.height

    async def query_logs(self, from_block: int, to_block: int) -> list[RaceEvent]:
        self.query_calls.append((from_block, to_block))
        return [e for e in self.events if from_block <= e.block_number <= to_block]


class FakeLedger:
    """Referral contract + funder wallet in one, like the web3 adapter."""

    def __init__(
        self,
        referrers: dict[str, str] | None = None,
        pending: dict[str, int] | None = None,
        balance: int = 10**18,
    ):
        self.referrers = referrers or {}
        self.pending = pending or {}
        self.balance = balance
        self.fund_calls: list[FundingPlan] = []
        self.fund_error: Exception | None = None

    async def has_beneficiary(self, player: str) -> bool:
        return player in self.referrers

    async def beneficiary_of(self, player: str) -> str:
        return self.referrers[player]

    async def pending_balance(self, beneficiary: str) -> int:
        return self.pending.get(beneficiary, 0)

    async def available_balance(self) -> int:
        return self.balance

    async def fund(self, plan: FundingPlan) -> FundingReceipt:
        self.fund_calls.append(plan)
        if self.fund_error is not None:
            raise self.fund_error
        return FundingReceipt(tx_hash="0xabc", block_number=999, gas_used=21000)


def _event(race_id: int, player: str, block: int) -> RaceEvent:
    return RaceEvent(race_id=race_id, player=player, payout=0, won=False, block_number=block)


def _engine(source, ledger, reward=5, checkpoint=100, max_range=50, lookback=1000, store=None):
    return ReconciliationEngine(
        event_source=source,
        ledger=ledger,
        wallet=ledger,
        reward_per_event=reward,
        max_block_range=max_range,
        initial_lookback=lookback,
        checkpoint=checkpoint,
        retry=RetryExecutor(max_retries=3, base_delay=0, sleep=AsyncMock()),
        checkpoint_store=store,
    )


@pytest.fixture
def three_races():
    return [_event(1, P1, 101), _event(2, P2, 102), _event(3, P3, 103)]


# ---------------------------------------------------------------------------
# Full cycle
# ---------------------------------------------------------------------------

class TestRunCycle:

    @pytest.mark.asyncio
    async def test_end_to_end_funds_shortfall(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger(referrers={P1: B1, P3: B1}, pending={B1: 5})
        engine = _engine(source, ledger)

        report = await engine.run_cycle()

        assert report.status == CycleStatus.FUNDED
        assert report.plan.as_dict() == {B1: 5}
        assert report.plan.total == 5
        assert report.n_events == 3
        assert report.n_referred == 2
        assert ledger.fund_calls == [report.plan]
        assert engine.checkpoint == 110
        assert report.checkpoint == 110
        assert engine.state == CycleState.IDLE

    @pytest.mark.asyncio
    async def test_players_without_referrer_are_skipped(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger(referrers={P1: B1, P3: B2})
        engine = _engine(source, ledger)

        report = await engine.run_cycle()

        accruals = {a.beneficiary: a for a in report.accruals}
        assert set(accruals) == {B1, B2}
        assert accruals[B1].new_race_count == 1
        assert accruals[B1].accrued_reward == 5
        assert report.plan.as_dict() == {B1: 5, B2: 5}

    @pytest.mark.asyncio
    async def test_empty_window_issues_no_query(self):
        source = FakeEventSource(height=100)
        ledger = FakeLedger()
        engine = _engine(source, ledger, checkpoint=100)

        report = await engine.run_cycle()

        assert report.status == CycleStatus.NO_NEW_BLOCKS
        assert source.query_calls == []
        assert engine.checkpoint == 100

    @pytest.mark.asyncio
    async def test_no_events_advances_checkpoint(self):
        source = FakeEventSource(height=120)
        engine = _engine(source, FakeLedger())

        report = await engine.run_cycle()

        assert report.status == CycleStatus.NO_EVENTS
        assert source.query_calls == [(101, 120)]
        assert engine.checkpoint == 120

    @pytest.mark.asyncio
    async def test_no_referred_events_advances_checkpoint(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger()
        engine = _engine(source, ledger)

        report = await engine.run_cycle()

        assert report.status == CycleStatus.NO_REFERRED_EVENTS
        assert report.n_events == 3
        assert ledger.fund_calls == []
        assert engine.checkpoint == 110

    @pytest.mark.asyncio
    async def test_already_funded_advances_without_funding(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger(referrers={P1: B1, P3: B1}, pending={B1: 10})
        engine = _engine(source, ledger)

        report = await engine.run_cycle()

        assert report.status == CycleStatus.ALREADY_FUNDED
        assert report.plan.is_empty
        assert ledger.fund_calls == []
        assert engine.checkpoint == 110

    @pytest.mark.asyncio
    async def test_window_is_bounded_and_contiguous(self):
        source = FakeEventSource(height=10_000)
        engine = _engine(source, FakeLedger(), checkpoint=0, max_range=100, lookback=1000)

        await engine.run_cycle()
        await engine.run_cycle()

        assert source.query_calls == [(9000, 9100), (9101, 9201)]
        assert engine.checkpoint == 9201

    @pytest.mark.asyncio
    async def test_checkpoint_persisted_on_advance(self, tmp_path):
        store = CheckpointStore(tmp_path / "state.json")
        engine = _engine(FakeEventSource(height=130), FakeLedger(), store=store)

        await engine.run_cycle()

        assert store.load() == 130


# ---------------------------------------------------------------------------
# Failure handling
# ---------------------------------------------------------------------------

class TestCycleFailures:

    @pytest.mark.asyncio
    async def test_insufficient_balance_aborts_without_advancing(self):
        reward = Web3.to_wei("0.0002", "ether")
        source = FakeEventSource(height=110, events=[_event(1, P1, 101)])
        ledger = FakeLedger(referrers={P1: B1}, balance=Web3.to_wei("0.0001", "ether"))
        engine = _engine(source, ledger, reward=reward)

        with pytest.raises(InsufficientFundsError) as exc_info:
            await engine.run_cycle()

        assert exc_info.value.needed == reward
        assert exc_info.value.available == Web3.to_wei("0.0001", "ether")
        assert ledger.fund_calls == []
        assert engine.checkpoint == 100
        assert engine.state == CycleState.IDLE

    @pytest.mark.asyncio
    async def test_revert_is_not_retried(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger(referrers={P1: B1})
        ledger.fund_error = RevertError("Ownable: caller is not the owner")
        engine = _engine(source, ledger)

        with pytest.raises(RevertError, match="caller is not the owner"):
            await engine.run_cycle()

        assert len(ledger.fund_calls) == 1
        assert engine.checkpoint == 100

    @pytest.mark.asyncio
    async def test_replay_after_failed_funding_builds_identical_plan(self, three_races):
        source = FakeEventSource(height=110, events=three_races)
        ledger = FakeLedger(referrers={P1: B1, P3: B1}, pending={B1: 5})
        ledger.fund_error = NetworkError("connection reset")
        engine = _engine(source, ledger)

        with pytest.raises(NetworkError):
            await engine.run_cycle()
        assert engine.checkpoint == 100
        assert len(ledger.fund_calls) == 3

        ledger.fund_error = None
        report = await engine.run_cycle()

        assert source.query_calls == [(101, 110), (101, 110)]
        assert all(plan == report.plan for plan in ledger.fund_calls)
        assert report.plan.as_dict() == {B1: 5}
        assert engine.checkpoint == 110

    @pytest.mark.asyncio
    async def test_height_query_failure_leaves_checkpoint(self):
        source = FakeEventSource(height=110)
        source.get_current_height = AsyncMock(side_effect=NetworkError("timeout"))
        engine = _engine(source, FakeLedger())

        with pytest.raises(NetworkError):
            await engine.run_cycle()

        assert source.get_current_height.await_count == 3
        assert engine.checkpoint == 100


# ---------------------------------------------------------------------------
# Diffing
# ---------------------------------------------------------------------------

class TestBuildPlan:

    @pytest.mark.asyncio
    async def test_diffing_is_idempotent(self):
        ledger = FakeLedger(pending={B1: 3, B2: 0})
        engine = _engine(FakeEventSource(height=0), ledger)
        accruals = [
            BeneficiaryAccrual(beneficiary=B1, new_race_count=2, accrued_reward=10),
            BeneficiaryAccrual(beneficiary=B2, new_race_count=1, accrued_reward=5),
        ]

        first = await engine.build_plan(accruals)
        second = await engine.build_plan(accruals)

        assert first == second
        assert first.as_dict() == {B1: 7, B2: 5}
        assert first.total == 12

    @pytest.mark.asyncio
    async def test_pending_above_accrual_funds_nothing(self):
        ledger = FakeLedger(pending={B1: 50})
        engine = _engine(FakeEventSource(height=0), ledger)
        accruals = [BeneficiaryAccrual(beneficiary=B1, new_race_count=1, accrued_reward=5)]

        plan = await engine.build_plan(accruals)

        assert plan.is_empty
        assert plan.total == 0

    @pytest.mark.parametrize("accrued,pending,expected", [
        (10, 0, 10),
        (10, 4, 6),
        (10, 10, 0),
        (10, 25, 0),
        (0, 0, 0),
    ])
    def test_compute_unfunded_never_negative(self, accrued, pending, expected):
        assert compute_unfunded(accrued, pending) == expected
