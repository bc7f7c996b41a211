"""Tests for tip resolution."""

import pytest

from comanda.core.tips import (
    TipMode,
    TipSelection,
    fixed_tip,
    implied_percentage,
    percentage_tip,
)
from comanda.errors import InvalidTip


@pytest.mark.parametrize(
    ("percentage", "expected"),
    [(0, 0), (10, 3000), (15, 4500), (20, 6000), (12.5, 3750)],
)
def test_percentage_tip(percentage: float, expected: int) -> None:
    assert percentage_tip(30000, percentage) == expected


def test_percentage_tip_rounds_half_up() -> None:
    # 10% of 12345 is 1234.5
    assert percentage_tip(12345, 10) == 1235


def test_negative_inputs_are_rejected() -> None:
    with pytest.raises(InvalidTip):
        percentage_tip(30000, -5)
    with pytest.raises(InvalidTip):
        fixed_tip(-1)
    with pytest.raises(InvalidTip):
        fixed_tip(True)


def test_implied_percentage() -> None:
    assert implied_percentage(2500, 30000) == 8.33
    assert implied_percentage(100, 0) is None


def test_last_selection_wins() -> None:
    """Switching modes replaces the previous choice instead of adding to it."""
    selection = TipSelection(subtotal=30000)

    assert selection.select_percentage(10) == 3000
    assert selection.mode == TipMode.PERCENTAGE

    assert selection.select_fixed(2500) == 2500
    assert selection.mode == TipMode.FIXED
    assert selection.percentage is None
    assert selection.amount == 2500

    assert selection.select_percentage(15) == 4500
    assert selection.amount == 4500
    assert selection.recorded_percentage == 15


def test_zero_percent_clears_tip() -> None:
    selection = TipSelection(subtotal=30000)
    selection.select_fixed(5000)

    assert selection.select_percentage(0) == 0
    assert selection.mode == TipMode.NONE
    assert selection.amount == 0
    assert selection.recorded_percentage is None


def test_fixed_tip_records_implied_percentage() -> None:
    selection = TipSelection(subtotal=40000)
    selection.select_fixed(6000)

    assert selection.recorded_percentage == 15.0
