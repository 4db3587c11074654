from pydantic import BaseModel, PlainSerializer
from datetime import date
from decimal import Decimal
from typing import Annotated, Dict, List, Optional, Union

from kpi_recon.engine.diff import SourceDiff
from kpi_recon.engine.models import UnclassifiedChannelWarning
from kpi_recon.services.kpi_reconciliation_service import (
    ConsistencyReport,
    DiffReport,
    PivotReport,
    SourceAudit,
    SourceComparison,
    SummaryReport,
)
from kpi_recon.engine.reports import SummaryRow


def _amount_out(value: Decimal) -> Union[int, str]:
    # Whole yen as JSON numbers, anything fractional as an exact string
    if value == value.to_integral_value():
        return int(value)
    return str(value)


def _percent_out(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


Amount = Annotated[Decimal, PlainSerializer(_amount_out, return_type=Union[int, str])]
Percent = Annotated[Optional[Decimal], PlainSerializer(_percent_out, return_type=Optional[float])]


def _label(value) -> str:
    return getattr(value, "value", value)


class UnclassifiedWarningOut(BaseModel):
    source: str
    raw_label: str
    first_month: date
    last_month: date
    total: Amount

    @classmethod
    def from_warning(cls, warning: UnclassifiedChannelWarning) -> "UnclassifiedWarningOut":
        return cls(
            source=_label(warning.source),
            raw_label=warning.raw_label,
            first_month=warning.first_month,
            last_month=warning.last_month,
            total=warning.total,
        )


def _warnings(warnings) -> List[UnclassifiedWarningOut]:
    return [UnclassifiedWarningOut.from_warning(w) for w in warnings]


class PivotRowOut(BaseModel):
    month: date
    cells: Dict[str, Amount]
    provenance: Dict[str, str]
    total: Amount


class PivotResponse(BaseModel):
    state: str
    fiscal_label: str
    months: List[date]
    channels: List[str]
    rows: List[PivotRowOut]
    column_totals: Dict[str, Amount]
    grand_total: Amount
    includes_oem: bool
    warnings: List[UnclassifiedWarningOut]

    @classmethod
    def from_report(cls, report: PivotReport) -> "PivotResponse":
        view = report.view
        rows = [
            PivotRowOut(
                month=month,
                cells={c.value: view.cell(month, c) for c in view.channels},
                provenance={c.value: view.provenance[(month, c)] for c in view.channels},
                total=view.row_total(month),
            )
            for month in view.months
        ]
        return cls(
            state=report.state.value,
            fiscal_label=view.fiscal_label,
            months=list(view.months),
            channels=[c.value for c in view.channels],
            rows=rows,
            column_totals={c.value: view.column_totals[c] for c in view.channels},
            grand_total=view.grand_total,
            includes_oem=view.includes_oem,
            warnings=_warnings(report.warnings),
        )


class DiffRecordOut(BaseModel):
    month: date
    channel: str
    delta: Amount


class SourceDiffOut(BaseModel):
    name: str
    left: str
    right: str
    records: List[DiffRecordOut]

    @classmethod
    def from_diff(cls, source_diff: SourceDiff) -> "SourceDiffOut":
        return cls(
            name=source_diff.name,
            left=source_diff.left,
            right=source_diff.right,
            records=[
                DiffRecordOut(month=r.month, channel=_label(r.channel), delta=r.delta)
                for r in source_diff.records
            ],
        )


class UnclassifiedRowOut(BaseModel):
    month: date
    source: str
    channel: str
    raw_label_variants: List[str]
    summed_amount: Amount
    first_seen: date
    last_seen: date


def _unclassified(rows) -> List[UnclassifiedRowOut]:
    return [
        UnclassifiedRowOut(
            month=r.month,
            source=_label(r.source),
            channel=_label(r.channel),
            raw_label_variants=list(r.raw_label_variants),
            summed_amount=r.summed_amount,
            first_seen=r.first_seen,
            last_seen=r.last_seen,
        )
        for r in rows
    ]


class DiffsResponse(BaseModel):
    state: str
    fiscal_label: str
    diffs: List[SourceDiffOut]
    unclassified: List[UnclassifiedRowOut]
    warnings: List[UnclassifiedWarningOut]

    @classmethod
    def from_report(cls, report: DiffReport) -> "DiffsResponse":
        return cls(
            state=report.state.value,
            fiscal_label=report.window.fiscal_label,
            diffs=[SourceDiffOut.from_diff(d) for d in report.diffs],
            unclassified=_unclassified(report.unclassified),
            warnings=_warnings(report.warnings),
        )


class ChannelStatsOut(BaseModel):
    channel: str
    total: Amount
    first_month: date
    last_month: date
    raw_variants: List[str]


class UnresolvedRowsOut(BaseModel):
    rows: int
    amount: Amount


class SourceAuditResponse(BaseModel):
    fiscal_label: str
    rows: List[UnclassifiedRowOut]
    channel_stats: Dict[str, List[ChannelStatsOut]]
    zero_web_months: List[date]
    unresolved: Dict[str, UnresolvedRowsOut]
    warnings: List[UnclassifiedWarningOut]

    @classmethod
    def from_audit(cls, audit: SourceAudit) -> "SourceAuditResponse":
        return cls(
            fiscal_label=audit.window.fiscal_label,
            rows=_unclassified(audit.rows),
            channel_stats={
                source: [
                    ChannelStatsOut(
                        channel=_label(s.channel),
                        total=s.total,
                        first_month=s.first_month,
                        last_month=s.last_month,
                        raw_variants=list(s.raw_variants),
                    )
                    for s in stats
                ]
                for source, stats in audit.channel_stats.items()
            },
            zero_web_months=list(audit.zero_web_months),
            unresolved={
                source: UnresolvedRowsOut(rows=u.rows, amount=u.amount) for source, u in audit.unresolved.items()
            },
            warnings=_warnings(audit.warnings),
        )


class ConsistencyResponse(BaseModel):
    state: str
    fiscal_label: str
    checked_scopes: List[str]

    @classmethod
    def from_report(cls, report: ConsistencyReport) -> "ConsistencyResponse":
        return cls(
            state=report.state.value,
            fiscal_label=report.window.fiscal_label,
            checked_scopes=list(report.checked_scopes),
        )


class MonthCheckRowOut(BaseModel):
    channel: str
    unified_amount: Amount
    source_amounts: Dict[str, Amount]
    unified_source: str
    diff_vs_source: Amount


class SourceComparisonResponse(BaseModel):
    fiscal_label: str
    month: date
    rows: List[MonthCheckRowOut]
    warnings: List[UnclassifiedWarningOut]

    @classmethod
    def from_comparison(cls, comparison: SourceComparison) -> "SourceComparisonResponse":
        return cls(
            fiscal_label=comparison.window.fiscal_label,
            month=comparison.month,
            rows=[
                MonthCheckRowOut(
                    channel=_label(r.channel),
                    unified_amount=r.unified_amount,
                    source_amounts=dict(r.source_amounts),
                    unified_source=r.unified_source,
                    diff_vs_source=r.diff_vs_source,
                )
                for r in comparison.rows
            ],
            warnings=_warnings(comparison.warnings),
        )


class SummaryRowOut(BaseModel):
    channel: str
    previous: Amount
    current: Amount
    mom_delta: Amount
    mom_pct: Percent
    ytd: Amount
    target: Amount
    achievement_pct: Percent

    @classmethod
    def from_row(cls, row: SummaryRow) -> "SummaryRowOut":
        return cls(
            channel=row.channel,
            previous=row.previous,
            current=row.current,
            mom_delta=row.mom_delta,
            mom_pct=row.mom_pct,
            ytd=row.ytd,
            target=row.target,
            achievement_pct=row.achievement_pct,
        )


class SummaryResponse(BaseModel):
    state: str
    fiscal_label: str
    month: date
    previous_month: date
    rows: List[SummaryRowOut]
    total: SummaryRowOut
    warnings: List[UnclassifiedWarningOut]

    @classmethod
    def from_report(cls, report: SummaryReport) -> "SummaryResponse":
        summary = report.summary
        return cls(
            state=report.state.value,
            fiscal_label=summary.fiscal_label,
            month=summary.month,
            previous_month=summary.previous_month,
            rows=[SummaryRowOut.from_row(r) for r in summary.rows],
            total=SummaryRowOut.from_row(summary.total),
            warnings=_warnings(report.warnings),
        )
