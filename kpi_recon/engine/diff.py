"""
Reconciliation diffs between two (month, channel) pivots.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from kpi_recon.engine.models import (
    ZERO,
    DiffRecord,
    Pivot,
    PivotKey,
    month_sums,
    pivot_sort_key,
)
from kpi_recon.engine.unifier import UnifiedView, unified_amounts
from kpi_recon.utils.enums.reconciliation import (
    CHANNEL_ORDER,
    NO_PROVENANCE,
    TOTAL_CHANNEL,
    ChannelCode,
    SourceId,
)


def diff(
    a: Pivot,
    b: Pivot,
    months: Optional[Sequence[date]] = None,
    only_non_zero: bool = True,
) -> List[DiffRecord]:
    """
    ``a - b`` per (month, channel), absent entries counting as 0, followed by
    a TOTAL record per month.

    By default only non-zero deltas are materialised. With
    ``only_non_zero=False`` every month in ``months`` gets a record for every
    channel and TOTAL, zero or not.
    """
    if only_non_zero:
        keys: Iterable[PivotKey] = set(a) | set(b)
        diff_months = {month for month, _ in keys}
    else:
        if months is None:
            months = sorted({month for month, _ in set(a) | set(b)})
        keys = {(month, channel) for month in months for channel in CHANNEL_ORDER}
        diff_months = set(months)

    records: List[DiffRecord] = []
    a_totals = month_sums(a)
    b_totals = month_sums(b)
    by_month = {}
    for key in sorted(keys, key=pivot_sort_key):
        delta = a.get(key, ZERO) - b.get(key, ZERO)
        if delta != 0 or not only_non_zero:
            by_month.setdefault(key[0], []).append(DiffRecord(month=key[0], channel=key[1], delta=delta))

    for month in sorted(diff_months):
        records.extend(by_month.get(month, []))
        total_delta = a_totals.get(month, ZERO) - b_totals.get(month, ZERO)
        if total_delta != 0 or not only_non_zero:
            records.append(DiffRecord(month=month, channel=TOTAL_CHANNEL, delta=total_delta))
    return records


@dataclass(frozen=True)
class SourceDiff:
    """A named standing comparison: ``left - right``."""

    name: str
    left: str
    right: str
    records: Tuple[DiffRecord, ...]

    @property
    def has_differences(self) -> bool:
        return any(r.delta != 0 for r in self.records)


def diff_vs_source(
    stored_unified: Pivot,
    unified: UnifiedView,
    months: Optional[Sequence[date]] = None,
    only_non_zero: bool = True,
) -> SourceDiff:
    """Stored unified table minus what the precedence chain resolves fresh."""
    return SourceDiff(
        name="diff_vs_source",
        left=SourceId.UNIFIED.value,
        right="resolved",
        records=tuple(diff(stored_unified, unified_amounts(unified), months, only_non_zero)),
    )


def compare_sources(
    left: SourceId,
    left_pivot: Pivot,
    right: SourceId,
    right_pivot: Pivot,
    months: Optional[Sequence[date]] = None,
    only_non_zero: bool = True,
) -> SourceDiff:
    return SourceDiff(
        name=f"{left.value}_vs_{right.value}",
        left=left.value,
        right=right.value,
        records=tuple(diff(left_pivot, right_pivot, months, only_non_zero)),
    )


@dataclass(frozen=True)
class MonthCheckRow:
    month: date
    channel: ChannelCode
    unified_amount: Decimal
    source_amounts: Mapping[str, Decimal]
    unified_source: str
    diff_vs_source: Decimal


def month_check_rows(
    month: date,
    stored_unified: Pivot,
    sources: Mapping[SourceId, Pivot],
    unified: UnifiedView,
    only_diffs: bool = False,
) -> List[MonthCheckRow]:
    """
    One row per channel for a single month, putting the stored unified amount
    next to every source amount and the provenance the resolver chose.
    """
    rows = []
    for channel in CHANNEL_ORDER:
        key = (month, channel)
        fact = unified.get(key)
        provenance = NO_PROVENANCE if fact is None else fact.provenance
        chosen = ZERO if fact is None else fact.amount
        stored = stored_unified.get(key, ZERO)
        source_amounts = {source.value: pivot.get(key, ZERO) for source, pivot in sources.items()}
        if stored == 0 and chosen == 0 and not any(source_amounts.values()) and provenance == NO_PROVENANCE:
            continue
        row = MonthCheckRow(
            month=month,
            channel=channel,
            unified_amount=stored,
            source_amounts=source_amounts,
            unified_source=provenance.value if isinstance(provenance, SourceId) else provenance,
            diff_vs_source=stored - chosen,
        )
        if only_diffs and row.diff_vs_source == 0:
            continue
        rows.append(row)
    return rows
