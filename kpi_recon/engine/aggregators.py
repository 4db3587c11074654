"""
Source aggregators: one per upstream fact table, each turning its own row
shape into ``MonthlyFact`` and grouping them into a (month, channel) pivot.
"""
import logging
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from kpi_recon.engine.channel_normalizer import normalize
from kpi_recon.engine.fiscal import FiscalWindow
from kpi_recon.engine.models import (
    ZERO,
    MonthlyFact,
    SourcePivot,
    UnclassifiedLabel,
    UnresolvedRows,
    facts_to_pivot,
)
from kpi_recon.engine.rows import ChannelMonthRow, LegacyRow, MonthTotalRow, TargetRow
from kpi_recon.engine.schema_prober import MonthProber, first_amount, first_present
from kpi_recon.utils.enums.reconciliation import ChannelCode, SourceId

logger = logging.getLogger(__name__)


class SourceStore(Protocol):
    """Read-only storage handle injected into every aggregator."""

    async def fetch_channel_months(
        self, source: SourceId, window: FiscalWindow
    ) -> Sequence[ChannelMonthRow]:
        ...

    async def fetch_month_totals(
        self, source: SourceId, window: FiscalWindow
    ) -> Sequence[MonthTotalRow]:
        ...

    async def fetch_legacy_rows(
        self, source: SourceId, window: FiscalWindow
    ) -> Sequence[LegacyRow]:
        ...

    async def fetch_targets(self, window: FiscalWindow) -> Sequence[TargetRow]:
        ...


def collect_unclassified(facts: Sequence[MonthlyFact]) -> Tuple[UnclassifiedLabel, ...]:
    """Group OTHER facts by raw label with first/last month seen and running sum."""
    by_label: Dict[Tuple[SourceId, str], Dict[date, Decimal]] = {}
    for fact in facts:
        if fact.channel is not ChannelCode.OTHER:
            continue
        months = by_label.setdefault((fact.source, fact.raw_label), {})
        months[fact.month] = months.get(fact.month, ZERO) + fact.amount

    labels = []
    for (source, raw_label), months in sorted(by_label.items(), key=lambda item: item[0][1]):
        ordered = dict(sorted(months.items()))
        labels.append(
            UnclassifiedLabel(
                source=source,
                raw_label=raw_label,
                first_month=min(ordered),
                last_month=max(ordered),
                total=sum(ordered.values(), ZERO),
                by_month=ordered,
            )
        )
    return tuple(labels)


def _make_fact(
    source: SourceId, month: date, raw_label: Optional[str], amount: Optional[Decimal]
) -> Optional[MonthlyFact]:
    # Null and zero amounts contribute nothing and must not create a pivot key.
    if amount is None or amount == 0:
        return None
    return MonthlyFact(
        month=month,
        channel=normalize(raw_label),
        amount=Decimal(amount),
        source=source,
        raw_label="" if raw_label is None else str(raw_label),
    )


class SourceAggregator(ABC):
    def __init__(self, source: SourceId, store: SourceStore):
        self.source = source
        self.store = store

    @abstractmethod
    async def collect(self, window: FiscalWindow) -> Tuple[List[MonthlyFact], int, UnresolvedRows]:
        """Return (facts, raw row count, rows with no month) for the window."""

    async def month_totals(self, window: FiscalWindow) -> Dict[date, Decimal]:
        # Store-side month-only totals, never derived from this source's facts
        totals: Dict[date, Decimal] = {}
        for total in await self.store.fetch_month_totals(self.source, window):
            if not window.contains(total.month) or total.amount is None:
                continue
            totals[total.month] = totals.get(total.month, ZERO) + Decimal(total.amount)
        return totals

    async def aggregate(self, window: FiscalWindow) -> SourcePivot:
        facts, row_count, unresolved = await self.collect(window)
        month_totals = await self.month_totals(window)
        facts.sort(key=lambda f: (f.month, f.channel.value, f.raw_label))
        pivot = SourcePivot(
            source=self.source,
            facts=tuple(facts),
            amounts=facts_to_pivot(facts),
            month_totals=dict(sorted(month_totals.items())),
            unclassified=collect_unclassified(facts),
            row_count=row_count,
            unresolved=unresolved,
        )
        for label in pivot.unclassified:
            logger.warning(
                "Unclassified channel label %r in source %s: %s (%s..%s)",
                label.raw_label,
                self.source.value,
                label.total,
                label.first_month.isoformat(),
                label.last_month.isoformat(),
            )
        logger.info(
            "Aggregated source %s for %s: rows=%s keys=%s",
            self.source.value,
            window.fiscal_label,
            row_count,
            len(pivot.amounts),
        )
        return pivot


class ChannelMonthAggregator(SourceAggregator):
    """Sources whose store query already groups by (raw channel, month)."""

    async def collect(self, window: FiscalWindow):
        rows = await self.store.fetch_channel_months(self.source, window)

        facts = []
        for row in rows:
            if not window.contains(row.month):
                continue
            fact = _make_fact(self.source, row.month, row.raw_label, row.amount)
            if fact is not None:
                facts.append(fact)
        return facts, len(rows), UnresolvedRows()


class LegacyAggregator(SourceAggregator):
    """
    Sources whose month, channel and amount columns are not fixed. The month
    is resolved by the prober; channel and amount by ordered column lists.
    """

    def __init__(
        self,
        source: SourceId,
        store: SourceStore,
        prober: MonthProber,
        channel_columns: Sequence[str] = (),
        amount_columns: Sequence[str] = ("amount",),
        fixed_label: Optional[str] = None,
    ):
        super().__init__(source, store)
        self.prober = prober
        self.channel_columns = tuple(channel_columns)
        self.amount_columns = tuple(amount_columns)
        self.fixed_label = fixed_label

    async def collect(self, window: FiscalWindow):
        rows = await self.store.fetch_legacy_rows(self.source, window)

        facts = []
        unresolved_rows = 0
        unresolved_amount = ZERO
        for row in rows:
            amount = first_amount(row.payload, self.amount_columns)
            probe = self.prober.probe(row.payload)
            if probe is None:
                unresolved_rows += 1
                unresolved_amount += amount or ZERO
                continue
            if not window.contains(probe.month):
                continue
            raw_label = self.fixed_label
            if raw_label is None:
                raw_label = first_present(row.payload, self.channel_columns)
            fact = _make_fact(self.source, probe.month, raw_label, amount)
            if fact is not None:
                facts.append(fact)

        if unresolved_rows:
            logger.warning(
                "Source %s: %s rows (%s) had no resolvable month (candidates: %s)",
                self.source.value,
                unresolved_rows,
                unresolved_amount,
                ", ".join(self.prober.candidate_names),
            )
        return facts, len(rows), UnresolvedRows(rows=unresolved_rows, amount=unresolved_amount)
