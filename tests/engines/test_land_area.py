"""
Tests for the parcel area ledger.

Covers:
- allocate / release / sell / revert_sale moves
- Insufficient area and non-positive area rejection
- Utilization bands
- Property: any sequence of accepted moves keeps the balance consistent
"""

from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from estate_engines import land_area
from estate_engines.land_area import AreaBalance, AvailabilityStatus
from estate_kernel.exceptions import InsufficientAreaError, ValidationError


def fresh(total="100"):
    return AreaBalance(parcel="P-1", total=Decimal(total))


class TestAreaMoves:
    def test_allocate_reduces_remaining(self):
        balance = land_area.allocate(fresh(), Decimal("30"))
        assert balance.allocated == Decimal("30")
        assert balance.remaining == Decimal("70")

    def test_sell_keeps_remaining(self):
        balance = land_area.allocate(fresh(), Decimal("30"))
        sold = land_area.sell(balance, Decimal("30"))
        assert sold.sold == Decimal("30")
        assert sold.allocated == Decimal("0")
        assert sold.remaining == balance.remaining

    def test_revert_sale_moves_back_to_allocated(self):
        balance = land_area.sell(land_area.allocate(fresh(), Decimal("10")), Decimal("10"))
        reverted = land_area.revert_sale(balance, Decimal("10"))
        assert reverted.sold == Decimal("0")
        assert reverted.allocated == Decimal("10")
        assert reverted.remaining == Decimal("90")

    def test_release_returns_area(self):
        balance = land_area.release(land_area.allocate(fresh(), Decimal("10")), Decimal("4"))
        assert balance.allocated == Decimal("6")
        assert balance.remaining == Decimal("94")

    def test_adjust_allocation_both_directions(self):
        balance = land_area.allocate(fresh(), Decimal("10"))
        grown = land_area.adjust_allocation(balance, Decimal("10"), Decimal("15"))
        shrunk = land_area.adjust_allocation(grown, Decimal("15"), Decimal("5"))
        assert grown.allocated == Decimal("15")
        assert shrunk.allocated == Decimal("5")


class TestAreaRejections:
    def test_allocate_beyond_remaining(self):
        balance = land_area.allocate(fresh(), Decimal("95"))
        with pytest.raises(InsufficientAreaError) as exc:
            land_area.allocate(balance, Decimal("10"))
        assert exc.value.code == "INSUFFICIENT_AREA"

    def test_sell_more_than_allocated(self):
        with pytest.raises(InsufficientAreaError):
            land_area.sell(fresh(), Decimal("1"))

    def test_revert_more_than_sold(self):
        with pytest.raises(InsufficientAreaError):
            land_area.revert_sale(fresh(), Decimal("1"))

    @pytest.mark.parametrize("area", [Decimal("0"), Decimal("-5")])
    def test_non_positive_area(self, area):
        with pytest.raises(ValidationError):
            land_area.allocate(fresh(), area)

    def test_resize_total_below_used(self):
        balance = land_area.allocate(fresh(), Decimal("60"))
        with pytest.raises(InsufficientAreaError):
            land_area.resize_total(balance, Decimal("50"))


class TestUtilization:
    @pytest.mark.parametrize(
        "used, expected",
        [
            ("0", AvailabilityStatus.AVAILABLE),
            ("50", AvailabilityStatus.PARTIALLY_AVAILABLE),
            ("80", AvailabilityStatus.ALMOST_FULL),
            ("100", AvailabilityStatus.FULLY_UTILIZED),
        ],
    )
    def test_availability_bands(self, used, expected):
        balance = fresh()
        if Decimal(used) > 0:
            balance = land_area.allocate(balance, Decimal(used))
        assert balance.availability == expected


_moves = st.lists(
    st.tuples(
        st.sampled_from(["allocate", "release", "sell", "revert_sale"]),
        st.decimals(min_value=Decimal("0.01"), max_value=Decimal("60"), places=2),
    ),
    max_size=40,
)


class TestAreaProperties:
    @settings(max_examples=200, deadline=None)
    @given(moves=_moves)
    def test_accepted_moves_never_break_the_balance(self, moves):
        balance = fresh()
        for name, area in moves:
            try:
                balance = getattr(land_area, name)(balance, area)
            except InsufficientAreaError:
                continue
            assert balance.is_consistent()
            assert balance.remaining >= 0
