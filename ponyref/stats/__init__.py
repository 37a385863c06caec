"""Read-only referral statistics report."""

from .models import ContractStats, ReferrerInfo, ReferrerStats
from .report import collect_referrer_stats, group_referrer_logs, render_report

__all__ = [
    "ContractStats",
    "ReferrerInfo",
    "ReferrerStats",
    "collect_referrer_stats",
    "group_referrer_logs",
    "render_report",
]
