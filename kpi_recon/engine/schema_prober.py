"""
Adaptive month/channel/amount resolution for legacy tables whose columns
drifted over time.

A prober holds an explicit, ordered list of named candidate resolvers. Each
resolver is a pure function from a raw row to an optional value; the first
candidate returning a value wins. The same list is tried for every row, so
the outcome never depends on row order or on per-row heuristics.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Mapping, Optional, Sequence, Tuple

_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
_YEAR_MONTH = re.compile(r"^(\d{4})[-/](\d{1,2})$")

Row = Mapping[str, Any]


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    match = _ISO_DATE.match(value.strip())
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


@dataclass(frozen=True)
class CandidateResolver:
    kind: str
    column: str
    resolve: Callable[[Row], Optional[date]]

    @property
    def name(self) -> str:
        return f"{self.kind}:{self.column}"

    def __call__(self, row: Row) -> Optional[date]:
        return self.resolve(row)


def direct_month(column: str) -> CandidateResolver:
    """A month column. Any valid date in it counts for its own month."""

    def resolve(row: Row) -> Optional[date]:
        value = _to_date(row.get(column))
        if value is None:
            return None
        return value.replace(day=1)

    return CandidateResolver(kind="direct_month", column=column, resolve=resolve)


def year_month(column: str) -> CandidateResolver:
    """A ``YYYY-MM`` string read as the first day of that month."""

    def resolve(row: Row) -> Optional[date]:
        value = row.get(column)
        if not isinstance(value, str):
            return None
        match = _YEAR_MONTH.match(value.strip())
        if not match:
            return None
        year, month = int(match.group(1)), int(match.group(2))
        try:
            return date(year, month, 1)
        except ValueError:
            return None

    return CandidateResolver(kind="year_month", column=column, resolve=resolve)


def truncated_date(column: str) -> CandidateResolver:
    """A full date or timestamp truncated to its month."""

    def resolve(row: Row) -> Optional[date]:
        value = _to_date(row.get(column))
        if value is None:
            return None
        return date(value.year, value.month, 1)

    return CandidateResolver(kind="truncated_date", column=column, resolve=resolve)


@dataclass(frozen=True)
class ProbeResult:
    month: date
    candidate: str


class MonthProber:
    def __init__(self, candidates: Sequence[CandidateResolver]):
        if not candidates:
            raise ValueError("MonthProber needs at least one candidate resolver")
        self.candidates: Tuple[CandidateResolver, ...] = tuple(candidates)

    @property
    def candidate_names(self) -> Tuple[str, ...]:
        return tuple(c.name for c in self.candidates)

    def probe(self, row: Row) -> Optional[ProbeResult]:
        for candidate in self.candidates:
            month = candidate(row)
            if month is not None:
                return ProbeResult(month=month, candidate=candidate.name)
        return None


def first_present(row: Row, columns: Sequence[str]) -> Optional[Any]:
    """Coalesce: the first non-null, non-blank value among ``columns``."""
    for column in columns:
        value = row.get(column)
        if not _blank(value):
            return value
    return None


def parse_amount(value: Any) -> Optional[Decimal]:
    if _blank(value):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    text = str(value).strip().replace(",", "")
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    if not amount.is_finite():
        return None
    return amount


def first_amount(row: Row, columns: Sequence[str]) -> Optional[Decimal]:
    """The first candidate column that parses as a number."""
    for column in columns:
        amount = parse_amount(row.get(column))
        if amount is not None:
            return amount
    return None
