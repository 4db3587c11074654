"""
Fiscal-year window arithmetic.

Everything here is a pure function of its arguments: the reference date is
always supplied by the caller, never read from a clock.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Tuple

from kpi_recon.engine.errors import InputError

DEFAULT_FISCAL_START_MONTH = 8
MONTHS_PER_YEAR = 12

_MONTH_PARAM = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?$")


def first_of_month(value: date) -> date:
    return date(value.year, value.month, 1)


def add_months(value: date, months: int) -> date:
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


@dataclass(frozen=True)
class FiscalWindow:
    fiscal_label: str
    fiscal_start_year: int
    start: date
    end: date
    months: Tuple[date, ...]

    def contains(self, month: date) -> bool:
        return self.start <= month < self.end

    def months_through(self, month: date) -> Tuple[date, ...]:
        """Window months from the fiscal start up to and including ``month``."""
        return tuple(m for m in self.months if m <= month)


def _check_start_month(fiscal_start_month: int) -> None:
    if not 1 <= fiscal_start_month <= 12:
        raise InputError("fiscal_start_month", fiscal_start_month, "must be between 1 and 12")


def window_for_fiscal_year(
    fiscal_start_year: int, fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH
) -> FiscalWindow:
    _check_start_month(fiscal_start_month)
    if not 1900 <= fiscal_start_year <= 9998:
        raise InputError("fy", fiscal_start_year, "fiscal year out of range")
    start = date(fiscal_start_year, fiscal_start_month, 1)
    months = tuple(add_months(start, i) for i in range(MONTHS_PER_YEAR))
    return FiscalWindow(
        fiscal_label=f"FY{(fiscal_start_year + 1) % 100:02d}",
        fiscal_start_year=fiscal_start_year,
        start=start,
        end=add_months(start, MONTHS_PER_YEAR),
        months=months,
    )


def window_for(
    reference_date: date, fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH
) -> FiscalWindow:
    """Return the fiscal year window that contains ``reference_date``."""
    _check_start_month(fiscal_start_month)
    if reference_date.month >= fiscal_start_month:
        fiscal_start_year = reference_date.year
    else:
        fiscal_start_year = reference_date.year - 1
    return window_for_fiscal_year(fiscal_start_year, fiscal_start_month)


def parse_month_param(value: Optional[str], field: str = "month") -> date:
    """
    Parse an explicit month parameter (``YYYY-MM`` or ``YYYY-MM-01``).

    Any other shape, a day other than the first, or an impossible month is an
    InputError; there is no silent fallback to the current month.
    """
    if value is None or not value.strip():
        raise InputError(field, value, "a month is required")
    match = _MONTH_PARAM.match(value.strip())
    if not match:
        raise InputError(field, value, "expected YYYY-MM or YYYY-MM-01")
    year, month, day = match.groups()
    if day is not None and day != "01":
        raise InputError(field, value, "month must be the first day of the month")
    try:
        return date(int(year), int(month), 1)
    except ValueError:
        raise InputError(field, value, "month out of range") from None


def parse_reference_date(value: Optional[str], field: str = "reference_date") -> date:
    if value is None or not value.strip():
        raise InputError(field, value, "a date is required")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise InputError(field, value, "expected an ISO date YYYY-MM-DD")
