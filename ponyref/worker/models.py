"""Pydantic models for the referral reconciliation cycle.

Three kinds of records flow through a cycle:
- RaceEvent: one decoded RaceExecuted log (read-only, produced by the event source)
- BeneficiaryAccrual / FundingPlan: transient per-cycle aggregation and diff
- CycleReport: what a cycle did, for logging and tests

All amounts are integers in wei.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class RaceEvent(BaseModel):
    """A single RaceExecuted log record."""

    model_config = ConfigDict(frozen=True)

    race_id: int
    player: str
    payout: int = 0
    won: bool = False
    block_number: int = 0
    log_index: int = 0


# ---------------------------------------------------------------------------
# Scan window
# ---------------------------------------------------------------------------


class ScanWindow(BaseModel):
    """Inclusive block range to scan. Empty when from_block > to_block."""

    model_config = ConfigDict(frozen=True)

    from_block: int = Field(ge=0)
    to_block: int = Field(ge=0)

    @property
    def is_empty(self) -> bool:
        return self.from_block > self.to_block


# ---------------------------------------------------------------------------
# Accrual and funding plan
# ---------------------------------------------------------------------------


class BeneficiaryAccrual(BaseModel):
    """Reward earned by one beneficiary from events in the current window."""

    beneficiary: str
    new_race_count: int = 0
    accrued_reward: int = Field(default=0, ge=0)

    def add_race(self, reward_per_event: int) -> None:
        self.new_race_count += 1
        self.accrued_reward += reward_per_event


class FundingPlan(BaseModel):
    """Parallel beneficiary/amount lists submitted as one disbursement."""

    model_config = ConfigDict(frozen=True)

    beneficiaries: tuple[str, ...] = ()
    amounts: tuple[int, ...] = ()

    @model_validator(mode="after")
    def _check_entries(self) -> "FundingPlan":
        if len(self.beneficiaries) != len(self.amounts):
            raise ValueError("beneficiaries and amounts must have equal length")
        if any(a <= 0 for a in self.amounts):
            raise ValueError("funding amounts must be positive")
        return self

    @property
    def total(self) -> int:
        return sum(self.amounts)

    @property
    def is_empty(self) -> bool:
        return not self.beneficiaries

    def as_dict(self) -> dict[str, int]:
        return dict(zip(self.beneficiaries, self.amounts))


class FundingReceipt(BaseModel):
    """Confirmed disbursement transaction."""

    tx_hash: str
    block_number: int
    gas_used: int = 0
    status: int = 1


# ---------------------------------------------------------------------------
# Cycle outcome
# ---------------------------------------------------------------------------


class CycleState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    AGGREGATING = "aggregating"
    DIFFING = "diffing"
    FUNDING = "funding"


class CycleStatus(str, Enum):
    NO_NEW_BLOCKS = "no_new_blocks"
    NO_EVENTS = "no_events"
    NO_REFERRED_EVENTS = "no_referred_events"
    ALREADY_FUNDED = "already_funded"
    FUNDED = "funded"


class CycleReport(BaseModel):
    """Outcome of one completed reconciliation cycle."""

    status: CycleStatus
    window: ScanWindow
    checkpoint: int
    n_events: int = 0
    n_referred: int = 0
    accruals: list[BeneficiaryAccrual] = Field(default_factory=list)
    plan: FundingPlan | None = None
    receipt: FundingReceipt | None = None


__all__ = [
    "BeneficiaryAccrual",
    "CycleReport",
    "CycleState",
    "CycleStatus",
    "FundingPlan",
    "FundingReceipt",
    "RaceEvent",
    "ScanWindow",
]
