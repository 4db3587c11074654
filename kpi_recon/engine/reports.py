"""
Presentational reductions over the resolved, invariant-checked unified view:
month x channel pivot, month-over-month, year-to-date and target achievement.
No business rules live here.
"""
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from kpi_recon.engine.channel_normalizer import normalize
from kpi_recon.engine.fiscal import FiscalWindow, add_months
from kpi_recon.engine.models import ZERO, Pivot, PivotKey
from kpi_recon.engine.rows import TargetRow
from kpi_recon.engine.unifier import UnifiedView
from kpi_recon.utils.enums.reconciliation import (
    CHANNEL_ORDER,
    NO_PROVENANCE,
    TOTAL_CHANNEL,
    ChannelCode,
    SourceId,
)

PERCENT_PLACES = Decimal("0.1")


def percent(numerator: Decimal, denominator: Decimal) -> Optional[Decimal]:
    """``numerator / denominator`` as a percentage, or None when the divisor is 0."""
    if denominator == 0:
        return None
    return (numerator / denominator * 100).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PivotView:
    fiscal_label: str
    months: Tuple[date, ...]
    channels: Tuple[ChannelCode, ...]
    cells: Mapping[PivotKey, Decimal]
    provenance: Mapping[PivotKey, str]
    row_totals: Mapping[date, Decimal]
    column_totals: Mapping[ChannelCode, Decimal]
    grand_total: Decimal
    includes_oem: bool = False

    def cell(self, month: date, channel: ChannelCode) -> Decimal:
        return self.cells.get((month, channel), ZERO)

    def row_total(self, month: date) -> Decimal:
        return self.row_totals.get(month, ZERO)


def build_pivot_view(
    window: FiscalWindow,
    unified: UnifiedView,
    oem_amounts: Optional[Pivot] = None,
) -> PivotView:
    """
    Lay the unified view out as a months x channels grid with totals.

    ``oem_amounts`` is added onto WHOLESALE in the presented cells only; the
    provenance of those cells is left as resolved. Passing it, even empty,
    marks the view as including OEM.
    """
    cells: Dict[PivotKey, Decimal] = {}
    provenance: Dict[PivotKey, str] = {}
    for month in window.months:
        for channel in CHANNEL_ORDER:
            key = (month, channel)
            fact = unified.get(key)
            amount = ZERO if fact is None else fact.amount
            origin = NO_PROVENANCE if fact is None else fact.provenance
            provenance[key] = origin.value if isinstance(origin, SourceId) else origin
            cells[key] = amount

    if oem_amounts is not None:
        for (month, _channel), amount in oem_amounts.items():
            if not window.contains(month):
                continue
            key = (month, ChannelCode.WHOLESALE)
            cells[key] = cells.get(key, ZERO) + amount

    row_totals = {
        month: sum((cells[(month, channel)] for channel in CHANNEL_ORDER), ZERO)
        for month in window.months
    }
    column_totals = {
        channel: sum((cells[(month, channel)] for month in window.months), ZERO)
        for channel in CHANNEL_ORDER
    }
    return PivotView(
        fiscal_label=window.fiscal_label,
        months=window.months,
        channels=CHANNEL_ORDER,
        cells=cells,
        provenance=provenance,
        row_totals=row_totals,
        column_totals=column_totals,
        grand_total=sum(row_totals.values(), ZERO),
        includes_oem=oem_amounts is not None,
    )


def target_amounts(targets: Sequence[TargetRow]) -> Dict[PivotKey, Decimal]:
    amounts: Dict[PivotKey, Decimal] = {}
    for row in targets:
        if row.amount is None:
            continue
        key = (row.month, normalize(row.raw_label))
        amounts[key] = amounts.get(key, ZERO) + Decimal(row.amount)
    return amounts


@dataclass(frozen=True)
class SummaryRow:
    channel: str
    previous: Decimal
    current: Decimal
    mom_delta: Decimal
    mom_pct: Optional[Decimal]
    ytd: Decimal
    target: Decimal
    achievement_pct: Optional[Decimal]


@dataclass(frozen=True)
class MonthlySummary:
    fiscal_label: str
    month: date
    previous_month: date
    rows: Tuple[SummaryRow, ...]
    total: SummaryRow


def _summary_row(channel: str, previous, current, ytd, target) -> SummaryRow:
    return SummaryRow(
        channel=channel,
        previous=previous,
        current=current,
        mom_delta=current - previous,
        mom_pct=percent(current - previous, previous),
        ytd=ytd,
        target=target,
        achievement_pct=percent(current, target),
    )


def build_summary(
    window: FiscalWindow,
    month: date,
    amounts: Pivot,
    previous_amounts: Pivot,
    targets: Mapping[PivotKey, Decimal],
) -> MonthlySummary:
    """
    Per-channel summary for ``month`` of ``window``.

    ``previous_amounts`` must hold the prior month, which for the first month
    of a fiscal year lives in the previous window.
    """
    previous_month = add_months(month, -1)
    ytd_months = window.months_through(month)
    rows = []
    for channel in CHANNEL_ORDER:
        rows.append(
            _summary_row(
                channel.value,
                previous_amounts.get((previous_month, channel), ZERO),
                amounts.get((month, channel), ZERO),
                sum((amounts.get((m, channel), ZERO) for m in ytd_months), ZERO),
                targets.get((month, channel), ZERO),
            )
        )
    total = _summary_row(
        TOTAL_CHANNEL,
        sum((r.previous for r in rows), ZERO),
        sum((r.current for r in rows), ZERO),
        sum((r.ytd for r in rows), ZERO),
        sum((r.target for r in rows), ZERO),
    )
    return MonthlySummary(
        fiscal_label=window.fiscal_label,
        month=month,
        previous_month=previous_month,
        rows=tuple(rows),
        total=total,
    )


def pivot_frame(view: PivotView) -> pd.DataFrame:
    records = []
    for month in view.months:
        record = {"month": month.isoformat()}
        for channel in view.channels:
            record[channel.value] = view.cell(month, channel)
        record[TOTAL_CHANNEL] = view.row_total(month)
        records.append(record)
    totals = {"month": TOTAL_CHANNEL}
    for channel in view.channels:
        totals[channel.value] = view.column_totals[channel]
    totals[TOTAL_CHANNEL] = view.grand_total
    records.append(totals)
    return pd.DataFrame.from_records(records, columns=["month", *[c.value for c in view.channels], TOTAL_CHANNEL])


def summary_frame(summary: MonthlySummary) -> pd.DataFrame:
    columns = ["channel", "previous", "current", "mom_delta", "mom_pct", "ytd", "target", "achievement_pct"]
    rows: List[Dict[str, object]] = [
        {column: getattr(row, column) for column in columns}
        for row in (*summary.rows, summary.total)
    ]
    return pd.DataFrame.from_records(rows, columns=columns)


def to_csv(frame: pd.DataFrame) -> str:
    return frame.to_csv(index=False)
