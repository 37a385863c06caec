"""Tests for bounded scan window selection."""

import pytest

from ponyref.worker.window import next_window


class TestNextWindow:

    def test_first_cycle_starts_at_lookback(self):
        w = next_window(checkpoint=0, current_height=5000, max_range=2000, initial_lookback=1000)
        assert (w.from_block, w.to_block) == (4000, 5000)

    def test_first_cycle_lookback_floors_at_zero(self):
        w = next_window(checkpoint=0, current_height=300, max_range=2000, initial_lookback=1000)
        assert (w.from_block, w.to_block) == (0, 300)

    def test_resumes_after_checkpoint(self):
        w = next_window(checkpoint=100, current_height=120, max_range=50, initial_lookback=1000)
        assert (w.from_block, w.to_block) == (101, 120)

    def test_range_is_capped(self):
        w = next_window(checkpoint=100, current_height=10_000, max_range=50, initial_lookback=1000)
        assert (w.from_block, w.to_block) == (101, 151)
        assert not w.is_empty

    def test_no_new_blocks_is_empty(self):
        w = next_window(checkpoint=100, current_height=100, max_range=50, initial_lookback=1000)
        assert w.is_empty
        assert w.from_block == w.to_block + 1

    def test_head_behind_checkpoint_is_empty(self):
        w = next_window(checkpoint=100, current_height=98, max_range=50, initial_lookback=1000)
        assert w.is_empty
        assert w.from_block == w.to_block + 1

    @pytest.mark.parametrize("checkpoint", [1, 7, 100, 12_345])
    @pytest.mark.parametrize("gap", [0, 1, 10, 49, 50, 51, 5000])
    @pytest.mark.parametrize("max_range", [0, 1, 50])
    def test_window_bounds_hold(self, checkpoint, gap, max_range):
        height = checkpoint + gap
        w = next_window(checkpoint, height, max_range, initial_lookback=1000)
        assert w.from_block == checkpoint + 1
        assert w.to_block == min(checkpoint + 1 + max_range, height)
        assert w.from_block <= w.to_block + 1

    def test_consecutive_windows_are_contiguous(self):
        checkpoint, height = 0, 1_000
        windows = []
        while True:
            w = next_window(checkpoint, height, max_range=99, initial_lookback=500)
            if w.is_empty:
                break
            windows.append(w)
            checkpoint = w.to_block

        assert windows[0].from_block == 500
        assert windows[-1].to_block == height
        for prev, nxt in zip(windows, windows[1:]):
            assert nxt.from_block == prev.to_block + 1

    def test_negative_range_rejected(self):
        with pytest.raises(ValueError):
            next_window(checkpoint=1, current_height=10, max_range=-1, initial_lookback=0)
