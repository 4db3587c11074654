from datetime import date

import pytest

from kpi_recon.engine.errors import InputError
from kpi_recon.engine.fiscal import (
    add_months,
    parse_month_param,
    parse_reference_date,
    window_for,
    window_for_fiscal_year,
)


class TestWindowFor:
    def test_mid_year_reference(self):
        window = window_for(date(2025, 11, 15), fiscal_start_month=8)

        assert window.start == date(2025, 8, 1)
        assert window.end == date(2026, 8, 1)
        assert len(window.months) == 12
        assert window.fiscal_label == "FY26"
        assert window.fiscal_label.endswith("26")

    def test_start_month_boundary_belongs_to_new_year(self):
        window = window_for(date(2025, 8, 1))
        assert window.start == date(2025, 8, 1)

    def test_day_before_start_belongs_to_previous_year(self):
        window = window_for(date(2025, 7, 31))
        assert window.start == date(2024, 8, 1)
        assert window.fiscal_label == "FY25"

    def test_months_are_consecutive_first_of_month(self):
        window = window_for(date(2026, 2, 3))
        assert window.months[0] == window.start
        for previous, current in zip(window.months, window.months[1:]):
            assert current == add_months(previous, 1)
            assert current.day == 1
        assert add_months(window.months[-1], 1) == window.end

    def test_contains_is_half_open(self):
        window = window_for_fiscal_year(2025)
        assert window.contains(date(2025, 8, 1))
        assert window.contains(date(2026, 7, 1))
        assert not window.contains(date(2026, 8, 1))

    def test_january_start(self):
        window = window_for(date(2025, 5, 9), fiscal_start_month=1)
        assert window.start == date(2025, 1, 1)
        assert window.end == date(2026, 1, 1)

    def test_invalid_start_month(self):
        with pytest.raises(InputError):
            window_for(date(2025, 5, 9), fiscal_start_month=13)

    def test_months_through(self):
        window = window_for_fiscal_year(2025)
        assert window.months_through(date(2025, 10, 1)) == (
            date(2025, 8, 1),
            date(2025, 9, 1),
            date(2025, 10, 1),
        )

    def test_label_wraps_century(self):
        assert window_for_fiscal_year(2099).fiscal_label == "FY00"


class TestParseMonthParam:
    @pytest.mark.parametrize("value", ["2025-09", "2025-09-01", " 2025-09 "])
    def test_accepts_month_forms(self, value):
        assert parse_month_param(value) == date(2025, 9, 1)

    @pytest.mark.parametrize("value", ["2025-09-15", "2025-13", "2025-00", "0000-05", "2025/09", "sept", "", None, "2025-9"])
    def test_rejects_everything_else(self, value):
        with pytest.raises(InputError) as exc:
            parse_month_param(value, field="m")
        assert exc.value.field == "m"
        assert exc.value.code == "invalid_input"


class TestParseReferenceDate:
    def test_iso_date(self):
        assert parse_reference_date("2025-11-15") == date(2025, 11, 15)

    @pytest.mark.parametrize("value", ["2025-02-30", "15/11/2025", ""])
    def test_invalid(self, value):
        with pytest.raises(InputError):
            parse_reference_date(value)
