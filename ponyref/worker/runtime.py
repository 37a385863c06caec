"""Referral worker runtime.

Main loop: run a reconciliation cycle immediately, then once per check
interval until stopped. Cycles never overlap; a slow cycle pushes the next
tick back instead of starting a second one. Cycle errors are logged and the
loop keeps going.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta, timezone

import bittensor as bt

from .engine import ReconciliationEngine
from .errors import InsufficientFundsError, NetworkError, RevertError
from .models import CycleReport


class WorkerRuntime:
    """Drives the reconciliation engine on a fixed interval."""

    def __init__(self, engine: ReconciliationEngine, check_interval: float = 3600.0):
        self.engine = engine
        self.check_interval = float(check_interval)
        self.cycles_run = 0
        self.last_report: CycleReport | None = None
        self.last_error: BaseException | None = None
        self._running = False
        self._stop_event: asyncio.Event | None = None

    async def run(self) -> None:
        """Main worker loop. Runs until stopped."""
        self._running = True
        self._stop_event = asyncio.Event()
        bt.logging.info({
            "referral_runtime": {
                "status": "starting",
                "check_interval": self.check_interval,
                "checkpoint": self.engine.checkpoint,
            }
        })

        try:
            while self._running:
                started = time.monotonic()
                await self.run_once()

                if not self._running:
                    break

                wait = max(0.0, self.check_interval - (time.monotonic() - started))
                next_at = datetime.now(timezone.utc) + timedelta(seconds=wait)
                bt.logging.info({"referral_runtime": {"next_check_at": next_at.isoformat()}})
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=wait)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            bt.logging.info({"referral_runtime": "stopped", "checkpoint": self.engine.checkpoint})

    async def run_once(self) -> CycleReport | None:
        """Run a single cycle, logging instead of raising on failure."""
        self.cycles_run += 1
        bt.logging.info({"referral_cycle": {"cycle": self.cycles_run, "status": "checking"}})
        try:
            report = await self.engine.run_cycle()
        except asyncio.CancelledError:
            raise
        except InsufficientFundsError as e:
            self.last_error = e
            bt.logging.error({
                "referral_cycle_error": "insufficient_balance",
                "need_wei": e.needed,
                "have_wei": e.available,
                "checkpoint": self.engine.checkpoint,
            })
            return None
        except RevertError as e:
            self.last_error = e
            bt.logging.error({
                "referral_cycle_error": "reverted",
                "reason": e.reason,
                "tx_hash": e.tx_hash,
                "checkpoint": self.engine.checkpoint,
            })
            return None
        except NetworkError as e:
            self.last_error = e
            bt.logging.error({
                "referral_cycle_error": "network",
                "error": str(e),
                "checkpoint": self.engine.checkpoint,
            })
            return None
        except Exception as e:
            self.last_error = e
            bt.logging.error({
                "referral_cycle_error": f"{type(e).__name__}: {e}",
                "checkpoint": self.engine.checkpoint,
            })
            return None

        self.last_error = None
        self.last_report = report
        bt.logging.info({
            "referral_cycle": {
                "cycle": self.cycles_run,
                "status": report.status.value,
                "checkpoint": report.checkpoint,
            }
        })
        return report

    def stop(self) -> None:
        """Signal the runtime to stop after the current cycle."""
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()


__all__ = ["WorkerRuntime"]
