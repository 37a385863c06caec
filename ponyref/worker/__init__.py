"""Referral reconciliation worker.

Scans RaceExecuted events in bounded block windows, accrues referral
rewards per referrer, diffs them against the referral contract's pending
balances, and funds the shortfall in a single batched transaction.
"""

from .engine import ReconciliationEngine, compute_unfunded
from .errors import (
    ConfigurationError,
    ExplorerError,
    InsufficientFundsError,
    NetworkError,
    ReferralWorkerError,
    RevertError,
)
from .models import (
    BeneficiaryAccrual,
    CycleReport,
    CycleState,
    CycleStatus,
    FundingPlan,
    FundingReceipt,
    RaceEvent,
    ScanWindow,
)
from .retry import RetryExecutor, retrying
from .window import next_window

__all__ = [
    "BeneficiaryAccrual",
    "ConfigurationError",
    "CycleReport",
    "CycleState",
    "CycleStatus",
    "ExplorerError",
    "FundingPlan",
    "FundingReceipt",
    "InsufficientFundsError",
    "NetworkError",
    "RaceEvent",
    "ReconciliationEngine",
    "ReferralWorkerError",
    "RetryExecutor",
    "RevertError",
    "ScanWindow",
    "compute_unfunded",
    "next_window",
    "retrying",
]
