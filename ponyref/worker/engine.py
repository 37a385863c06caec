"""Referral reconciliation engine.

One cycle: scan window -> fetch RaceExecuted events -> aggregate per
referrer -> diff against pendingRewards -> fund the shortfall in one batch.

The checkpoint (highest fully reconciled block) is engine state. It moves
forward only when a window has been completely handled, including a
confirmed funding transaction. Any failure leaves it where it was, so the
next cycle re-scans the same window. Re-diffing against the ledger's
pending balances is what keeps a replayed window from being funded twice.
"""

from __future__ import annotations

from typing import Any

import bittensor as bt
from web3 import Web3

from ponyref.chain.interface import EventSource, FunderWallet, ReferralLedger

from .checkpoint import CheckpointStore
from .errors import InsufficientFundsError
from .models import (
    BeneficiaryAccrual,
    CycleReport,
    CycleState,
    CycleStatus,
    FundingPlan,
    RaceEvent,
    ScanWindow,
)
from .retry import RetryExecutor
from .window import next_window


def _eth(wei: int) -> str:
    return f"{Web3.from_wei(wei, 'ether')} ETH"


def compute_unfunded(accrued: int, pending: int) -> int:
    """Shortfall still to fund. A pending balance above the accrual funds nothing."""
    return max(0, accrued - pending)


class ReconciliationEngine:
    """Aggregates referred races and funds referrers for the unfunded delta."""

    def __init__(
        self,
        event_source: EventSource,
        ledger: ReferralLedger,
        wallet: FunderWallet,
        reward_per_event: int,
        max_block_range: int = 2000,
        initial_lookback: int = 1000,
        checkpoint: int = 0,
        retry: RetryExecutor | None = None,
        checkpoint_store: CheckpointStore | None = None,
    ):
        if reward_per_event < 0:
            raise ValueError("reward_per_event must be >= 0")
        self.event_source = event_source
        self.ledger = ledger
        self.wallet = wallet
        self.reward_per_event = reward_per_event
        self.max_block_range = max_block_range
        self.initial_lookback = initial_lookback
        self.retry = retry or RetryExecutor()
        self.checkpoint_store = checkpoint_store

        self.checkpoint = checkpoint
        self.state = CycleState.IDLE

    # -- Cycle --

    async def run_cycle(self) -> CycleReport:
        """Execute one cycle. Raises on failure with the checkpoint unchanged."""
        try:
            return await self._run_cycle()
        finally:
            self.state = CycleState.IDLE

    async def _run_cycle(self) -> CycleReport:
        self.state = CycleState.SCANNING
        height = await self.retry.execute(self.event_source.get_current_height)
        window = next_window(
            self.checkpoint, height, self.max_block_range, self.initial_lookback,
        )

        if window.is_empty:
            bt.logging.info({"referral_cycle": "no_new_blocks", "checkpoint": self.checkpoint, "height": height})
            return self._report(CycleStatus.NO_NEW_BLOCKS, window)

        bt.logging.info({
            "referral_cycle": {
                "status": "scanning",
                "from_block": window.from_block,
                "to_block": window.to_block,
                "height": height,
            }
        })
        events = await self.retry.execute(
            lambda: self.event_source.query_logs(window.from_block, window.to_block)
        )

        if not events:
            bt.logging.info({"referral_cycle": "no_new_races"})
            self._advance(window)
            return self._report(CycleStatus.NO_EVENTS, window)

        bt.logging.info({"referral_cycle": {"races_found": len(events)}})

        self.state = CycleState.AGGREGATING
        accruals, n_referred = await self.aggregate(events)

        if not accruals:
            bt.logging.info({"referral_cycle": "no_referred_races"})
            self._advance(window)
            return self._report(CycleStatus.NO_REFERRED_EVENTS, window, n_events=len(events))

        bt.logging.info({
            "referral_cycle": {
                "referred_races": n_referred,
                "referrers": len(accruals),
            }
        })

        self.state = CycleState.DIFFING
        plan = await self.build_plan(accruals.values())

        if plan.is_empty:
            bt.logging.info({"referral_cycle": "all_referrers_already_funded"})
            self._advance(window)
            return self._report(
                CycleStatus.ALREADY_FUNDED, window,
                n_events=len(events), n_referred=n_referred,
                accruals=list(accruals.values()), plan=plan,
            )

        self.state = CycleState.FUNDING
        balance = await self.retry.execute(self.wallet.available_balance)
        bt.logging.info({
            "referral_funding": {
                "wallet_balance": _eth(balance),
                "total_to_fund": _eth(plan.total),
            }
        })
        if balance < plan.total:
            raise InsufficientFundsError(needed=plan.total, available=balance)

        receipt = await self.retry.execute(lambda: self.ledger.fund(plan))

        bt.logging.success({
            "referral_funding": {
                "status": "funded",
                "tx_hash": receipt.tx_hash,
                "block": receipt.block_number,
                "gas_used": receipt.gas_used,
                "referrers": len(plan.beneficiaries),
                "amounts": {b: _eth(a) for b, a in plan.as_dict().items()},
                "total": _eth(plan.total),
            }
        })

        self._advance(window)
        return self._report(
            CycleStatus.FUNDED, window,
            n_events=len(events), n_referred=n_referred,
            accruals=list(accruals.values()), plan=plan, receipt=receipt,
        )

    # -- Steps --

    async def aggregate(
        self, events: list[RaceEvent],
    ) -> tuple[dict[str, BeneficiaryAccrual], int]:
        """Accrue rewards per referrer, in log order. Returns (accruals, referred count)."""
        accruals: dict[str, BeneficiaryAccrual] = {}
        n_referred = 0

        for event in events:
            player = event.player
            has_ref = await self.retry.execute(lambda: self.ledger.has_beneficiary(player))
            if not has_ref:
                continue

            referrer = await self.retry.execute(lambda: self.ledger.beneficiary_of(player))
            n_referred += 1
            if referrer not in accruals:
                accruals[referrer] = BeneficiaryAccrual(beneficiary=referrer)
            accruals[referrer].add_race(self.reward_per_event)

        return accruals, n_referred

    async def build_plan(self, accruals: Any) -> FundingPlan:
        """Diff accruals against pending balances. Zero shortfalls are dropped."""
        beneficiaries: list[str] = []
        amounts: list[int] = []

        for acc in accruals:
            pending = await self.retry.execute(
                lambda: self.ledger.pending_balance(acc.beneficiary)
            )
            unfunded = compute_unfunded(acc.accrued_reward, pending)
            if unfunded == 0:
                continue

            beneficiaries.append(acc.beneficiary)
            amounts.append(unfunded)
            bt.logging.info({
                "referral_referrer": {
                    "address": acc.beneficiary,
                    "new_races": acc.new_race_count,
                    "to_fund": _eth(unfunded),
                }
            })

        return FundingPlan(beneficiaries=tuple(beneficiaries), amounts=tuple(amounts))

    # -- Checkpoint --

    def _advance(self, window: ScanWindow) -> None:
        self.checkpoint = window.to_block
        if self.checkpoint_store is None:
            return
        try:
            self.checkpoint_store.save(self.checkpoint)
        except OSError as e:
            # In-memory checkpoint still advances; a restart replays from the file.
            bt.logging.error({"checkpoint_store": f"save_failed: {e}", "checkpoint": self.checkpoint})

    def _report(self, status: CycleStatus, window: ScanWindow, **kwargs: Any) -> CycleReport:
        return CycleReport(status=status, window=window, checkpoint=self.checkpoint, **kwargs)


__all__ = ["ReconciliationEngine", "compute_unfunded"]
