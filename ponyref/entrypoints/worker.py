"""Referral worker entrypoint.

Scans PixelPonyV1 RaceExecuted events, works out what each referrer has
earned but not yet been funded, and tops up the referral contract in one
fundRewards transaction per cycle.
"""

import argparse
import asyncio
import os
import signal
import sys

import bittensor as bt
from dotenv import load_dotenv
from web3 import Web3


def main() -> None:
    # Load .env if not in test mode
    if os.environ.get("PONYREF_TEST_MODE") != "true":
        load_dotenv()

    parser = argparse.ArgumentParser(description="Pixel Pony Referral Worker")
    bt.logging.add_args(parser)

    from ponyref.base.config import add_args, load_settings
    from ponyref.worker.errors import ConfigurationError

    add_args(parser)
    args = parser.parse_args()

    try:
        settings = load_settings(args)
        private_key = settings.require_private_key()
    except ConfigurationError as e:
        bt.logging.error({"referral_worker": "configuration_error", "error": str(e)})
        sys.exit(1)

    bt.logging.info({
        "referral_worker": {
            "status": "starting",
            "network": "Base Mainnet",
            "pixel_pony_v1": settings.pixel_pony_address,
            "referral_contract": settings.referral_address,
            "check_interval_minutes": settings.check_interval_seconds / 60,
            "reward_per_race": f"{Web3.from_wei(settings.reward_per_race_wei, 'ether')} ETH",
            "max_block_range": settings.max_block_range,
        }
    })

    from ponyref.chain.web3_client import Web3EventSource, Web3ReferralLedger, connect
    from ponyref.worker.checkpoint import CheckpointStore
    from ponyref.worker.engine import ReconciliationEngine
    from ponyref.worker.retry import RetryExecutor
    from ponyref.worker.runtime import WorkerRuntime

    w3 = connect(settings.rpc_url, timeout=settings.rpc_timeout)
    source = Web3EventSource(w3, settings.pixel_pony_address)
    ledger = Web3ReferralLedger(
        w3,
        settings.referral_address,
        private_key=private_key,
        gas_limit=settings.gas_limit,
        receipt_timeout=settings.receipt_timeout,
    )

    store = CheckpointStore(settings.checkpoint_path) if settings.checkpoint_path else None
    checkpoint = settings.start_block
    if store is not None:
        saved = store.load()
        if saved is not None and saved > checkpoint:
            checkpoint = saved

    engine = ReconciliationEngine(
        event_source=source,
        ledger=ledger,
        wallet=ledger,
        reward_per_event=settings.reward_per_race_wei,
        max_block_range=settings.max_block_range,
        initial_lookback=settings.initial_lookback,
        checkpoint=checkpoint,
        retry=RetryExecutor(
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
        ),
        checkpoint_store=store,
    )
    runtime = WorkerRuntime(engine, check_interval=settings.check_interval_seconds)

    bt.logging.info({"referral_worker": {"funder": ledger.address, "checkpoint": checkpoint}})

    # Graceful shutdown
    loop = asyncio.new_event_loop()

    def _signal_handler(sig, frame):
        bt.logging.warning({"referral_worker": "shutdown_signal_received", "signal": sig})
        loop.call_soon_threadsafe(runtime.stop)

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        loop.run_until_complete(runtime.run())
    except KeyboardInterrupt:
        bt.logging.info({"referral_worker": "keyboard_interrupt"})
    finally:
        loop.run_until_complete(ledger.close())
        loop.close()
        bt.logging.info({"referral_worker": "stopped"})


if __name__ == "__main__":
    main()
