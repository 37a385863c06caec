"""Ledger collaborator protocols.

Implementations: Web3EventSource / Web3ReferralLedger (Base mainnet via
web3.py). Tests use AsyncMock fakes.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ponyref.worker.models import FundingPlan, FundingReceipt, RaceEvent


@runtime_checkable
class EventSource(Protocol):
    """Reads RaceExecuted logs from the chain."""

    async def get_current_height(self) -> int:
        """Latest block number."""
        ...

    async def query_logs(self, from_block: int, to_block: int) -> list[RaceEvent]:
        """Decoded events in [from_block, to_block], in log order."""
        ...


@runtime_checkable
class ReferralLedger(Protocol):
    """Referral relationships, pending balances and batched funding."""

    async def has_beneficiary(self, player: str) -> bool:
        ...

    async def beneficiary_of(self, player: str) -> str:
        ...

    async def pending_balance(self, beneficiary: str) -> int:
        """Funded but unclaimed reward for ``beneficiary``, in wei."""
        ...

    async def fund(self, plan: FundingPlan) -> FundingReceipt:
        """Submit one disbursement and wait for confirmation."""
        ...


@runtime_checkable
class FunderWallet(Protocol):
    """Balance of the account paying for disbursements."""

    async def available_balance(self) -> int:
        ...


__all__ = ["EventSource", "FunderWallet", "ReferralLedger"]
