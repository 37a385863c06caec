"""Error taxonomy for the referral worker.

Only NetworkError is retried. Everything else propagates to the cycle
boundary, where the runtime logs it and waits for the next tick.
ConfigurationError is the one fatal error and only occurs at startup.
"""

from __future__ import annotations


class ReferralWorkerError(Exception):
    """Base class for all worker errors."""


class NetworkError(ReferralWorkerError):
    """Transient transport or timeout failure talking to the chain."""


class RevertError(ReferralWorkerError):
    """The ledger rejected a transaction."""

    def __init__(self, reason: str, tx_hash: str | None = None):
        self.reason = reason or "unknown"
        self.tx_hash = tx_hash
        msg = f"transaction reverted: {self.reason}"
        if tx_hash:
            msg += f" (tx {tx_hash})"
        super().__init__(msg)


class InsufficientFundsError(ReferralWorkerError):
    """Funder balance is below the funding plan total."""

    def __init__(self, needed: int, available: int):
        self.needed = needed
        self.available = available
        super().__init__(f"insufficient balance: need {needed} wei, have {available} wei")


class ConfigurationError(ReferralWorkerError):
    """Missing or malformed startup configuration."""


class ExplorerError(ReferralWorkerError):
    """Block explorer API answered with an error status."""


__all__ = [
    "ConfigurationError",
    "ExplorerError",
    "InsufficientFundsError",
    "NetworkError",
    "ReferralWorkerError",
    "RevertError",
]
