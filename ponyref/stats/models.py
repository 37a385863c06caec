"""Models for the referral statistics report."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ContractStats(BaseModel):
    """Contract-wide totals from getStats()."""

    total_rewards_funded: int
    total_rewards_claimed: int
    total_referrers: int
    contract_balance: int

    @property
    def unclaimed(self) -> int:
        return self.total_rewards_funded - self.total_rewards_claimed


class ReferrerInfo(BaseModel):
    """getReferrerInfo() result for one referrer."""

    pending: int = 0
    can_claim: bool = False


class ReferrerStats(BaseModel):
    """Aggregated view of one referrer from ReferrerSet logs."""

    referrer: str
    players: set[str] = Field(default_factory=set)
    pending_rewards: int = 0
    can_claim: bool = False

    @property
    def n_players(self) -> int:
        return len(self.players)


__all__ = ["ContractStats", "ReferrerInfo", "ReferrerStats"]
