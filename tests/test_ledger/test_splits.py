"""Tests for the split calculator."""

from __future__ import annotations

from decimal import Decimal

import pytest

from splitledger.errors import InvalidAmount, InvalidSplit
from splitledger.ledger.splits import SplitPolicy, SplitShare, check_split_total, compute_splits

A, B, C, D = 1, 2, 3, 4


def _amounts(shares: list[SplitShare]) -> list[Decimal]:
    return [share.amount for share in shares]


# ── equal ─────────────────────────────────────────────────────────────────────


class TestEqualSplit:
    def test_even_division(self) -> None:
        shares = compute_splits(Decimal("90"), SplitPolicy.EQUAL, [A, B, C])
        assert _amounts(shares) == [Decimal("30.00")] * 3

    def test_remainder_goes_to_first_participant(self) -> None:
        """100 / 3 → 33.34, 33.33, 33.33."""
        shares = compute_splits(Decimal("100"), SplitPolicy.EQUAL, [A, B, C])
        assert _amounts(shares) == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]
        assert [s.user_id for s in shares] == [A, B, C]

    def test_remainder_follows_input_order(self) -> None:
        shares = compute_splits(Decimal("100"), SplitPolicy.EQUAL, [C, A, B])
        assert shares[0].user_id == C
        assert shares[0].amount == Decimal("33.34")

    def test_two_cent_remainder(self) -> None:
        """0.05 / 3 → 0.02, 0.02, 0.01."""
        shares = compute_splits(Decimal("0.05"), SplitPolicy.EQUAL, [A, B, C])
        assert _amounts(shares) == [Decimal("0.02"), Decimal("0.02"), Decimal("0.01")]

    def test_single_participant_owes_everything(self) -> None:
        shares = compute_splits(Decimal("42.50"), "equal", [A])
        assert _amounts(shares) == [Decimal("42.50")]

    def test_weights_are_ignored(self) -> None:
        shares = compute_splits(Decimal("10"), SplitPolicy.EQUAL, [A, B], {A: 90, B: 10})
        assert _amounts(shares) == [Decimal("5.00"), Decimal("5.00")]

    def test_deterministic(self) -> None:
        first = compute_splits(Decimal("100"), SplitPolicy.EQUAL, [A, B, C])
        second = compute_splits(Decimal("100"), SplitPolicy.EQUAL, [A, B, C])
        assert first == second


# ── percentage ────────────────────────────────────────────────────────────────


class TestPercentageSplit:
    def test_40_30_30(self) -> None:
        """3200 at 40/30/30 → 1280/960/960."""
        shares = compute_splits(
            Decimal("3200"),
            SplitPolicy.PERCENTAGE,
            [A, B, C],
            {A: Decimal("40"), B: Decimal("30"), C: Decimal("30")},
        )
        assert _amounts(shares) == [Decimal("1280.00"), Decimal("960.00"), Decimal("960.00")]
        assert shares[0].percentage == Decimal("40")
        assert shares[0].shares is None

    def test_within_tolerance_still_sums_exactly(self) -> None:
        """33.33 × 3 = 99.99 is accepted and the amounts still add up."""
        shares = compute_splits(
            Decimal("100"),
            SplitPolicy.PERCENTAGE,
            [A, B, C],
            {A: "33.33", B: "33.33", C: "33.33"},
        )
        assert sum(_amounts(shares)) == Decimal("100.00")
        assert _amounts(shares) == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]

    def test_total_off_100_rejected(self) -> None:
        with pytest.raises(InvalidSplit) as exc_info:
            compute_splits(Decimal("100"), SplitPolicy.PERCENTAGE, [A, B], {A: 50, B: 40})
        assert Decimal(exc_info.value.details["total_percentage"]) == Decimal("90")

    def test_percentages_kept_to_four_places(self) -> None:
        """Weights are rounded to the precision they are stored with before allocating."""
        shares = compute_splits(
            Decimal("100"),
            SplitPolicy.PERCENTAGE,
            [A, B, C],
            {A: "33.3333333", B: "33.3333333", C: "33.3333334"},
        )
        assert [s.percentage for s in shares] == [Decimal("33.3333")] * 3
        assert all(s.percentage.as_tuple().exponent == -4 for s in shares)
        assert _amounts(shares) == [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")]

    def test_explicit_zero_tolerance(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(
                Decimal("100"),
                SplitPolicy.PERCENTAGE,
                [A, B, C],
                {A: "33.33", B: "33.33", C: "33.33"},
                tolerance=Decimal("0"),
            )

    def test_missing_weight_counts_as_zero(self) -> None:
        shares = compute_splits(Decimal("50"), SplitPolicy.PERCENTAGE, [A, B], {A: 100})
        assert _amounts(shares) == [Decimal("50.00"), Decimal("0.00")]

    def test_negative_percentage_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.PERCENTAGE, [A, B], {A: 110, B: -10})

    def test_leftover_skips_zero_weight(self) -> None:
        """A participant at 0% never receives a leftover cent."""
        shares = compute_splits(
            Decimal("0.01"),
            SplitPolicy.PERCENTAGE,
            [A, B, C],
            {A: 0, B: 50, C: 50},
        )
        assert _amounts(shares) == [Decimal("0.00"), Decimal("0.01"), Decimal("0.00")]


# ── share ─────────────────────────────────────────────────────────────────────


class TestShareSplit:
    def test_2_1_2_1(self) -> None:
        """6000 at 2/1/2/1 → 2000/1000/2000/1000."""
        shares = compute_splits(
            Decimal("6000"),
            SplitPolicy.SHARE,
            [A, B, C, D],
            {A: 2, B: 1, C: 2, D: 1},
        )
        assert _amounts(shares) == [
            Decimal("2000.00"),
            Decimal("1000.00"),
            Decimal("2000.00"),
            Decimal("1000.00"),
        ]
        assert [s.shares for s in shares] == [2, 1, 2, 1]

    def test_uneven_shares_sum_exactly(self) -> None:
        shares = compute_splits(Decimal("10"), SplitPolicy.SHARE, [A, B, C], {A: 1, B: 1, C: 1})
        assert sum(_amounts(shares)) == Decimal("10.00")
        assert shares[0].amount == Decimal("3.34")

    def test_zero_total_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.SHARE, [A, B], {A: 0, B: 0})

    def test_no_weights_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.SHARE, [A, B])

    def test_fractional_share_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.SHARE, [A, B], {A: "1.5", B: 1})

    def test_boolean_share_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.SHARE, [A, B], {A: True, B: 1})

    def test_negative_share_rejected(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("100"), SplitPolicy.SHARE, [A, B], {A: 3, B: -1})


# ── preconditions ─────────────────────────────────────────────────────────────


class TestPreconditions:
    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), "0.00"])
    def test_non_positive_amount(self, amount) -> None:
        with pytest.raises(InvalidAmount):
            compute_splits(amount, SplitPolicy.EQUAL, [A, B])

    def test_sub_cent_amount(self) -> None:
        with pytest.raises(InvalidAmount):
            compute_splits(Decimal("10.001"), SplitPolicy.EQUAL, [A, B])

    def test_no_participants(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("10"), SplitPolicy.EQUAL, [])

    def test_duplicate_participants(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("10"), SplitPolicy.EQUAL, [A, B, A])

    def test_unknown_policy(self) -> None:
        with pytest.raises(InvalidSplit):
            compute_splits(Decimal("10"), "exact", [A, B])


class TestCheckSplitTotal:
    def test_matching_total_passes(self) -> None:
        check_split_total(Decimal("100"), [Decimal("33.34"), Decimal("33.33"), Decimal("33.33")])

    def test_mismatch_rejected(self) -> None:
        with pytest.raises(InvalidSplit) as exc_info:
            check_split_total(Decimal("100"), [Decimal("33.33")] * 3)
        assert exc_info.value.details == {"expected": "100.00", "actual": "99.99"}
