"""
Data-quality audit of channel classification, reported alongside diffs.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Sequence, Tuple

from kpi_recon.engine.models import (
    ZERO,
    ChannelStats,
    Pivot,
    SourcePivot,
    UnclassifiedChannelWarning,
    month_sums,
)
from kpi_recon.utils.enums.reconciliation import ChannelCode, SourceId, channel_rank


@dataclass(frozen=True)
class UnclassifiedAuditRow:
    month: date
    source: SourceId
    channel: ChannelCode
    raw_label_variants: Tuple[str, ...]
    summed_amount: Decimal
    first_seen: date
    last_seen: date


def unclassified_audit(pivots: Iterable[SourcePivot]) -> List[UnclassifiedAuditRow]:
    """
    Per (month, source): the raw labels that fell into OTHER and their sum.
    ``first_seen``/``last_seen`` span every label in the row across the window.
    """
    rows = []
    for pivot in pivots:
        by_month: Dict[date, Dict[str, Decimal]] = {}
        spans: Dict[str, Tuple[date, date]] = {}
        for label in pivot.unclassified:
            spans[label.raw_label] = (label.first_month, label.last_month)
            for month, amount in label.by_month.items():
                labels = by_month.setdefault(month, {})
                labels[label.raw_label] = labels.get(label.raw_label, ZERO) + amount
        for month, labels in sorted(by_month.items()):
            variants = tuple(sorted(labels))
            rows.append(
                UnclassifiedAuditRow(
                    month=month,
                    source=pivot.source,
                    channel=ChannelCode.OTHER,
                    raw_label_variants=variants,
                    summed_amount=sum(labels.values(), ZERO),
                    first_seen=min(spans[v][0] for v in variants),
                    last_seen=max(spans[v][1] for v in variants),
                )
            )
    rows.sort(key=lambda r: (r.month, r.source.value))
    return rows


def unclassified_warnings(pivots: Iterable[SourcePivot]) -> List[UnclassifiedChannelWarning]:
    warnings = [
        UnclassifiedChannelWarning.from_label(label)
        for pivot in pivots
        for label in pivot.unclassified
    ]
    warnings.sort(key=lambda w: (w.source.value, w.raw_label))
    return warnings


def channel_stats(pivot: SourcePivot) -> List[ChannelStats]:
    """Sum, first/last month and raw label variants for every channel of one source."""
    grouped: Dict[ChannelCode, Dict[str, object]] = {}
    for fact in pivot.facts:
        stat = grouped.setdefault(
            fact.channel,
            {"total": ZERO, "first": fact.month, "last": fact.month, "raw": set()},
        )
        stat["total"] += fact.amount
        stat["first"] = min(stat["first"], fact.month)
        stat["last"] = max(stat["last"], fact.month)
        stat["raw"].add(fact.raw_label)

    return [
        ChannelStats(
            channel=channel,
            total=stat["total"],
            first_month=stat["first"],
            last_month=stat["last"],
            raw_variants=tuple(sorted(stat["raw"])),
        )
        for channel, stat in sorted(grouped.items(), key=lambda item: channel_rank(item[0]))
    ]


def zero_web_months(amounts: Pivot, months: Sequence[date]) -> List[date]:
    """Months where WEB is zero while the month as a whole sold something."""
    totals = month_sums(amounts)
    return [
        month
        for month in months
        if amounts.get((month, ChannelCode.WEB), ZERO) == 0 and totals.get(month, ZERO) > 0
    ]
