"""Domain models shared by aggregation, resolution, diffing and reporting."""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Tuple, Union

from kpi_recon.utils.enums.reconciliation import (
    ChannelCode,
    SourceId,
    channel_rank,
)

PivotKey = Tuple[date, ChannelCode]
Pivot = Mapping[PivotKey, Decimal]

ZERO = Decimal("0")


def pivot_sort_key(key: PivotKey) -> Tuple[date, int]:
    month, channel = key
    return month, channel_rank(channel)


def freeze_pivot(amounts: Mapping[PivotKey, Decimal]) -> Pivot:
    """Return an immutable pivot with keys in (month, channel order) order."""
    return MappingProxyType({key: amounts[key] for key in sorted(amounts, key=pivot_sort_key)})


def month_sums(amounts: Pivot) -> Dict[date, Decimal]:
    sums: Dict[date, Decimal] = {}
    for (month, _channel), amount in amounts.items():
        sums[month] = sums.get(month, ZERO) + amount
    return sums


@dataclass(frozen=True)
class MonthlyFact:
    month: date
    channel: ChannelCode
    amount: Decimal
    source: SourceId
    raw_label: str = ""


@dataclass(frozen=True)
class UnifiedFact:
    month: date
    channel: ChannelCode
    amount: Decimal
    provenance: Union[SourceId, str]


@dataclass(frozen=True)
class DiffRecord:
    month: date
    channel: Union[ChannelCode, str]
    delta: Decimal


@dataclass(frozen=True)
class UnclassifiedLabel:
    """Raw label of one source that normalised to OTHER, tracked across the window."""

    source: SourceId
    raw_label: str
    first_month: date
    last_month: date
    total: Decimal
    by_month: Mapping[date, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class UnclassifiedChannelWarning:
    """Non-fatal taxonomy drift signal attached to every report payload."""

    source: SourceId
    raw_label: str
    first_month: date
    last_month: date
    total: Decimal

    @classmethod
    def from_label(cls, label: UnclassifiedLabel) -> "UnclassifiedChannelWarning":
        return cls(
            source=label.source,
            raw_label=label.raw_label,
            first_month=label.first_month,
            last_month=label.last_month,
            total=label.total,
        )


@dataclass(frozen=True)
class ChannelStats:
    channel: ChannelCode
    total: Decimal
    first_month: date
    last_month: date
    raw_variants: Tuple[str, ...]


@dataclass(frozen=True)
class UnresolvedRows:
    """Rows of a legacy source that no month candidate could place."""

    rows: int = 0
    amount: Decimal = ZERO


@dataclass(frozen=True)
class SourcePivot:
    """Everything one aggregator produced for one fiscal window."""

    source: SourceId
    facts: Tuple[MonthlyFact, ...]
    amounts: Pivot
    month_totals: Mapping[date, Decimal]
    unclassified: Tuple[UnclassifiedLabel, ...] = ()
    row_count: int = 0
    unresolved: UnresolvedRows = UnresolvedRows()

    @property
    def is_empty(self) -> bool:
        return not self.amounts

    def get(self, month: date, channel: ChannelCode) -> Optional[Decimal]:
        return self.amounts.get((month, channel))


def facts_to_pivot(facts: Iterable[MonthlyFact]) -> Pivot:
    amounts: Dict[PivotKey, Decimal] = {}
    for fact in facts:
        key = (fact.month, fact.channel)
        amounts[key] = amounts.get(key, ZERO) + fact.amount
    return freeze_pivot(amounts)
