"""Seed the worker checkpoint file.

One-shot script that writes CHECKPOINT_PATH so the next worker start
resumes after a known block instead of the initial lookback. Without
--block it uses the current head minus INITIAL_LOOKBACK.

Usage:
    CHECKPOINT_PATH=data/checkpoint.json python scripts/dev/bootstrap_checkpoint.py --block 30000000
"""

import argparse
import asyncio
import sys

import bittensor as bt
from dotenv import load_dotenv


async def main() -> None:
    load_dotenv()

    parser = argparse.ArgumentParser(description="Seed the referral worker checkpoint")
    parser.add_argument("--block", type=int, default=None, help="Last block to treat as reconciled")
    args = parser.parse_args()

    from ponyref.base.config import load_settings
    from ponyref.chain.web3_client import Web3EventSource, connect
    from ponyref.worker.checkpoint import CheckpointStore

    settings = load_settings()
    if not settings.checkpoint_path:
        bt.logging.error({"bootstrap": "CHECKPOINT_PATH not set"})
        sys.exit(1)

    block = args.block
    if block is None:
        w3 = connect(settings.rpc_url, timeout=settings.rpc_timeout)
        source = Web3EventSource(w3, settings.pixel_pony_address)
        try:
            height = await source.get_current_height()
        finally:
            await w3.provider.disconnect()
        block = max(0, height - settings.initial_lookback)

    store = CheckpointStore(settings.checkpoint_path)
    previous = store.load()
    store.save(block)

    bt.logging.info({
        "bootstrap": "checkpoint_written",
        "path": settings.checkpoint_path,
        "previous": previous,
        "last_processed_block": block,
    })


if __name__ == "__main__":
    asyncio.run(main())
