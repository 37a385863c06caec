"""Referral statistics entrypoint.

Prints contract totals and a per-referrer breakdown. Read-only: needs an
RPC endpoint and a Basescan/Etherscan API key, no signing key.

Usage:
    ponyref-stats
    ponyref-stats --from-block 30000000
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

import bittensor as bt
from dotenv import load_dotenv

from ponyref.base.config import WorkerSettings, load_settings
from ponyref.chain.abi import REFERRER_SET_TOPIC
from ponyref.chain.explorer import ExplorerClient
from ponyref.chain.web3_client import Web3EventSource, Web3ReferralLedger, connect
from ponyref.stats.report import collect_referrer_stats, render_report
from ponyref.worker.errors import ConfigurationError, ReferralWorkerError
from ponyref.worker.retry import RetryExecutor


async def run_report(settings: WorkerSettings, from_block: int) -> str:
    if not settings.basescan_api_key:
        raise ConfigurationError("BASESCAN_API_KEY not set in environment")

    w3 = connect(settings.rpc_url, timeout=settings.rpc_timeout)
    retry = RetryExecutor(max_retries=settings.max_retries, base_delay=settings.retry_base_delay)
    ledger = Web3ReferralLedger(w3, settings.referral_address)
    chain = Web3EventSource(w3, settings.pixel_pony_address)
    explorer = ExplorerClient(api_key=settings.basescan_api_key, retry=retry)
    try:
        contract = await retry.execute(ledger.contract_stats)
        current_block = await retry.execute(chain.get_current_height)
        logs = await explorer.get_logs(
            settings.referral_address, REFERRER_SET_TOPIC, from_block, current_block,
        )
        bt.logging.info({"referral_stats": {"referrer_set_events": len(logs), "to_block": current_block}})
        referrers = await collect_referrer_stats(logs, ledger, retry=retry)
    finally:
        await explorer.close()
        await ledger.close()

    return render_report(contract, referrers)


def main() -> None:
    if os.environ.get("PONYREF_TEST_MODE") != "true":
        load_dotenv()

    parser = argparse.ArgumentParser(description="Pixel Pony referral stats")
    parser.add_argument("--from-block", type=int, default=None, help="First block to scan (default START_BLOCK)")
    args = parser.parse_args()

    try:
        settings = load_settings()
        from_block = args.from_block if args.from_block is not None else settings.start_block
        report = asyncio.run(run_report(settings, from_block))
    except ReferralWorkerError as e:
        bt.logging.error({"referral_stats": f"{type(e).__name__}: {e}"})
        sys.exit(1)

    print(report)


if __name__ == "__main__":
    main()
