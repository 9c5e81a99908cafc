"""
Tests for installment schedule generation and line status.

Covers:
- Even split with remainder on the final line
- Monthly / quarterly due dates and month-end clamping
- Line status (Pending, Partial, Overdue, Missed, Paid)
"""

from datetime import date
from decimal import Decimal

import pytest

from estate_engines.installment_schedule import (
    InstallmentFrequency,
    InstallmentStatus,
    generate_schedule,
    line_status,
    split_evenly,
)
from estate_kernel.exceptions import ValidationError


class TestGenerateSchedule:
    def test_twelve_monthly_lines(self):
        lines = generate_schedule(
            total=Decimal("120000"),
            count=12,
            frequency=InstallmentFrequency.MONTHLY,
            start_date=date(2024, 2, 1),
        )
        assert len(lines) == 12
        assert all(line.amount == Decimal("10000") for line in lines)
        assert lines[0].due_date == date(2024, 2, 1)
        assert lines[-1].due_date == date(2025, 1, 1)
        assert [line.sequence for line in lines] == list(range(1, 13))

    def test_remainder_lands_on_last_line(self):
        lines = generate_schedule(
            total=Decimal("100000"),
            count=3,
            frequency=InstallmentFrequency.MONTHLY,
            start_date=date(2024, 1, 10),
        )
        assert [line.amount for line in lines] == [
            Decimal("33333.33"),
            Decimal("33333.33"),
            Decimal("33333.34"),
        ]
        assert sum(line.amount for line in lines) == Decimal("100000")

    def test_quarterly_spacing(self):
        lines = generate_schedule(
            total=Decimal("4000"),
            count=4,
            frequency=InstallmentFrequency.QUARTERLY,
            start_date=date(2024, 1, 15),
        )
        assert [line.due_date for line in lines] == [
            date(2024, 1, 15),
            date(2024, 4, 15),
            date(2024, 7, 15),
            date(2024, 10, 15),
        ]

    def test_zero_count_rejected(self):
        with pytest.raises(ValidationError):
            generate_schedule(
                total=Decimal("100"),
                count=0,
                frequency=InstallmentFrequency.MONTHLY,
                start_date=date(2024, 1, 1),
            )

    def test_non_positive_total_rejected(self):
        with pytest.raises(ValidationError):
            generate_schedule(
                total=Decimal("0"),
                count=2,
                frequency=InstallmentFrequency.MONTHLY,
                start_date=date(2024, 1, 1),
            )


class TestCalendar:
    def _due_dates(self, start, count, frequency=InstallmentFrequency.MONTHLY):
        lines = generate_schedule(
            total=Decimal("300"), count=count, frequency=frequency, start_date=start,
        )
        return [line.due_date for line in lines]

    def test_month_end_is_clamped(self):
        assert self._due_dates(date(2024, 1, 31), 3) == [
            date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31),
        ]
        assert self._due_dates(date(2023, 1, 31), 2)[1] == date(2023, 2, 28)

    def test_year_rollover(self):
        dates = self._due_dates(date(2024, 11, 15), 2, InstallmentFrequency.QUARTERLY)
        assert dates == [date(2024, 11, 15), date(2025, 2, 15)]

    def test_split_single_line(self):
        assert split_evenly(Decimal("99.99"), 1) == [Decimal("99.99")]


class TestLineStatus:
    DUE = date(2024, 3, 1)

    def test_pending_before_due(self):
        assert line_status(Decimal("100"), Decimal("0"), self.DUE, date(2024, 2, 20)) == InstallmentStatus.PENDING

    def test_partial_before_due(self):
        assert line_status(Decimal("100"), Decimal("50"), self.DUE, date(2024, 2, 20)) == InstallmentStatus.PARTIAL

    def test_overdue_after_due(self):
        assert line_status(Decimal("100"), Decimal("0"), self.DUE, date(2024, 3, 10)) == InstallmentStatus.OVERDUE

    def test_partial_line_past_due_is_overdue(self):
        assert line_status(Decimal("100"), Decimal("50"), self.DUE, date(2024, 5, 1)) == InstallmentStatus.OVERDUE

    def test_missed_after_threshold(self):
        assert line_status(Decimal("100"), Decimal("0"), self.DUE, date(2024, 4, 5)) == InstallmentStatus.MISSED

    def test_threshold_is_configurable(self):
        status = line_status(Decimal("100"), Decimal("0"), self.DUE, date(2024, 3, 10), missed_after_days=5)
        assert status == InstallmentStatus.MISSED

    def test_paid(self):
        assert line_status(Decimal("100"), Decimal("100"), self.DUE, date(2024, 5, 1)) == InstallmentStatus.PAID
