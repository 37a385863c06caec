"""Referral statistics report.

Enumerates referrers from ReferrerSet logs, attaches each referrer's
pending balance and claimability, and renders a plain-text summary
alongside the contract-wide totals.
"""

from __future__ import annotations

from typing import Any, Iterable

from web3 import Web3

from ponyref.worker.retry import RetryExecutor

from .models import ContractStats, ReferrerStats

RULE = "=" * 80


def topic_to_address(topic: str) -> str:
    """Checksummed address from a 32-byte indexed topic."""
    return Web3.to_checksum_address("0x" + topic[-40:])


def group_referrer_logs(logs: Iterable[dict[str, Any]]) -> dict[str, ReferrerStats]:
    """Group unique players by referrer from raw ReferrerSet logs."""
    stats: dict[str, ReferrerStats] = {}
    for log in logs:
        topics = log.get("topics") or []
        if len(topics) < 3:
            continue
        player = topic_to_address(topics[1])
        referrer = topic_to_address(topics[2])
        if referrer not in stats:
            stats[referrer] = ReferrerStats(referrer=referrer)
        stats[referrer].players.add(player)
    return stats


async def collect_referrer_stats(
    logs: Iterable[dict[str, Any]],
    ledger: Any,
    retry: RetryExecutor | None = None,
) -> list[ReferrerStats]:
    """Grouped referrers with pending rewards, highest pending first."""
    retry = retry or RetryExecutor()
    stats = group_referrer_logs(logs)
    for entry in stats.values():
        referrer = entry.referrer
        info = await retry.execute(lambda: ledger.referrer_info(referrer))
        entry.pending_rewards = info.pending
        entry.can_claim = info.can_claim

    return sorted(stats.values(), key=lambda s: s.pending_rewards, reverse=True)


def _eth(wei: int) -> str:
    return f"{Web3.from_wei(wei, 'ether')} ETH"


def render_report(contract: ContractStats, referrers: list[ReferrerStats]) -> str:
    total_players = sum(r.n_players for r in referrers)
    lines = [
        RULE,
        "REFERRAL CONTRACT STATISTICS",
        RULE,
        f"Total Referrers:             {contract.total_referrers}",
        f"Unique Players with Refs:    {total_players}",
        f"Total Rewards Funded:        {_eth(contract.total_rewards_funded)}",
        f"Total Rewards Claimed:       {_eth(contract.total_rewards_claimed)}",
        f"Contract Balance:            {_eth(contract.contract_balance)}",
        f"Unclaimed Rewards:           {_eth(contract.unclaimed)}",
        RULE,
    ]

    if not referrers:
        lines += [
            "",
            "No referrers found in the scanned block range.",
            "Try setting START_BLOCK to an earlier block number in your .env file",
        ]
        return "\n".join(lines)

    lines += ["", "REFERRER BREAKDOWN:", ""]
    for r in referrers:
        lines += [
            f"Referrer: {r.referrer}",
            f"   Unique Players Referred: {r.n_players}",
            f"   Pending Rewards:         {_eth(r.pending_rewards)}",
            f"   Can Claim:               {'Yes' if r.can_claim else 'No (below minimum)'}",
            "",
        ]
    return "\n".join(lines)


__all__ = [
    "collect_referrer_stats",
    "group_referrer_logs",
    "render_report",
    "topic_to_address",
]
