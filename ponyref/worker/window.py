"""Bounded block-window selection.

Each provider query covers at most ``max_range`` blocks past its start, so a
checkpoint far behind the chain head catches up over several cycles.
"""

from __future__ import annotations

from .models import ScanWindow


def next_window(
    checkpoint: int,
    current_height: int,
    max_range: int,
    initial_lookback: int,
) -> ScanWindow:
    """Return the next window to scan after ``checkpoint``.

    A checkpoint of 0 means nothing has been reconciled yet, so the scan
    starts ``initial_lookback`` blocks behind the head. When the chain has not
    moved past the checkpoint the returned window is empty
    (``from_block == to_block + 1``) and the caller must not advance.
    """
    if max_range < 0:
        raise ValueError(f"max_range must be >= 0, got {max_range}")
    if initial_lookback < 0:
        raise ValueError(f"initial_lookback must be >= 0, got {initial_lookback}")
    if checkpoint < 0 or current_height < 0:
        raise ValueError("block heights must be >= 0")

    if checkpoint == 0:
        from_block = max(0, current_height - initial_lookback)
    else:
        from_block = checkpoint + 1

    if from_block > current_height:
        # Chain head can briefly lag a checkpoint read from another provider.
        return ScanWindow(from_block=from_block, to_block=from_block - 1)

    to_block = min(from_block + max_range, current_height)
    return ScanWindow(from_block=from_block, to_block=to_block)


__all__ = ["next_window"]
