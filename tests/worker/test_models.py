"""Tests for worker models."""

import pytest
from pydantic import ValidationError

from ponyref.worker.models import BeneficiaryAccrual, FundingPlan, RaceEvent, ScanWindow


class TestFundingPlan:

    def test_total_and_mapping(self):
        plan = FundingPlan(beneficiaries=("0xA", "0xB"), amounts=(3, 4))
        assert plan.total == 7
        assert plan.as_dict() == {"0xA": 3, "0xB": 4}
        assert not plan.is_empty

    def test_empty_plan(self):
        plan = FundingPlan()
        assert plan.is_empty
        assert plan.total == 0

    def test_rejects_zero_amount(self):
        with pytest.raises(ValidationError):
            FundingPlan(beneficiaries=("0xA",), amounts=(0,))

    def test_rejects_mismatched_lengths(self):
        with pytest.raises(ValidationError):
            FundingPlan(beneficiaries=("0xA", "0xB"), amounts=(1,))


class TestAccrual:

    def test_add_race(self):
        acc = BeneficiaryAccrual(beneficiary="0xA")
        acc.add_race(5)
        acc.add_race(5)
        assert acc.new_race_count == 2
        assert acc.accrued_reward == 10


class TestImmutability:

    def test_race_event_is_frozen(self):
        event = RaceEvent(race_id=1, player="0xP")
        with pytest.raises(ValidationError):
            event.player = "0xQ"

    def test_window_emptiness(self):
        assert not ScanWindow(from_block=10, to_block=19).is_empty
        assert not ScanWindow(from_block=10, to_block=10).is_empty
        assert ScanWindow(from_block=11, to_block=10).is_empty
