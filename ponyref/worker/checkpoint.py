"""Optional on-disk persistence for the reconciliation checkpoint.

Without a store the checkpoint lives only in memory and a restart falls
back to the initial lookback. With one, the last advanced block survives
restarts.
"""

from __future__ import annotations

import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import bittensor as bt


class CheckpointStore:
    """JSON file holding the last fully reconciled block."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> int | None:
        """Read the checkpoint. Missing or corrupt files yield None."""
        if not self.path.exists():
            bt.logging.info({"checkpoint_store": "no_state_file", "path": str(self.path)})
            return None

        try:
            with open(self.path) as f:
                data = json.load(f)
            block = int(data["last_processed_block"])
            if block < 0:
                raise ValueError(f"negative block {block}")
        except Exception as e:
            bt.logging.warning({"checkpoint_store": f"state_corrupt, ignoring: {e}"})
            return None

        bt.logging.info({"checkpoint_store": "state_loaded", "last_processed_block": block})
        return block

    def save(self, checkpoint: int) -> None:
        """Atomically write state to disk (tmp + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "last_processed_block": int(checkpoint),
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        tmp_fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(tmp_fd, "w") as f:
                json.dump(data, f)
            os.replace(tmp_path, str(self.path))
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise


__all__ = ["CheckpointStore"]
