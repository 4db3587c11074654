import asyncio
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

from kpi_recon.engine.fiscal import FiscalWindow
from kpi_recon.engine.rows import ChannelMonthRow, LegacyRow, MonthTotalRow, TargetRow
from kpi_recon.engine.schema_prober import MonthProber, first_amount
from kpi_recon.services.source_registry import SOURCE_REGISTRY
from kpi_recon.utils.enums.reconciliation import SourceId


def month(value: str) -> date:
    year, mon = value.split("-")[:2]
    return date(int(year), int(mon), 1)


def cm(label, ym: str, amount) -> ChannelMonthRow:
    return ChannelMonthRow(raw_label=label, month=month(ym), amount=None if amount is None else Decimal(amount))


def legacy_month_totals(source: SourceId, payloads: List[dict]) -> List[MonthTotalRow]:
    """What the store's month-only query returns for well-formed legacy rows."""
    entry = SOURCE_REGISTRY[source]
    prober = MonthProber(entry["month_candidates"])
    totals: Dict[date, Decimal] = {}
    for payload in payloads:
        probe = prober.probe(payload)
        amount = first_amount(payload, entry["amount_columns"])
        if probe is None or amount is None:
            continue
        totals[probe.month] = totals.get(probe.month, Decimal("0")) + amount
    return [MonthTotalRow(month=m, amount=a) for m, a in sorted(totals.items())]


class FakeStore:
    """
    In-memory stand-in for KpiSourceRepository.

    Month totals default to the per-month sum of a source's channel rows or
    probed legacy rows; pass ``month_totals`` to make them disagree.
    ``failures`` maps a source to the exception its queries raise, ``delays``
    to seconds they sleep.
    """

    def __init__(
        self,
        channel_months: Optional[Dict[SourceId, List[ChannelMonthRow]]] = None,
        month_totals: Optional[Dict[SourceId, List[MonthTotalRow]]] = None,
        legacy: Optional[Dict[SourceId, List[dict]]] = None,
        targets: Optional[List[TargetRow]] = None,
        failures: Optional[Dict[object, Exception]] = None,
        delays: Optional[Dict[object, float]] = None,
    ):
        self.channel_months = channel_months or {}
        self.month_totals = month_totals or {}
        self.legacy = legacy or {}
        self.targets = targets or []
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls: List[tuple] = []
        self.cancelled: List[object] = []

    async def _enter(self, key, method: str):
        self.calls.append((method, key))
        delay = self.delays.get(key)
        if delay:
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                self.cancelled.append(key)
                raise
        if key in self.failures:
            raise self.failures[key]

    async def fetch_channel_months(self, source: SourceId, window: FiscalWindow):
        await self._enter(source, "channel_months")
        return list(self.channel_months.get(source, []))

    async def fetch_month_totals(self, source: SourceId, window: FiscalWindow):
        await self._enter(source, "month_totals")
        if source in self.month_totals:
            return list(self.month_totals[source])
        if source in self.legacy:
            return legacy_month_totals(source, self.legacy[source])
        totals: Dict[date, Decimal] = {}
        for row in self.channel_months.get(source, []):
            if row.amount is not None:
                totals[row.month] = totals.get(row.month, Decimal("0")) + row.amount
        return [MonthTotalRow(month=m, amount=a) for m, a in sorted(totals.items())]

    async def fetch_legacy_rows(self, source: SourceId, window: FiscalWindow):
        await self._enter(source, "legacy_rows")
        return [LegacyRow(payload=row) for row in self.legacy.get(source, [])]

    async def fetch_targets(self, window: FiscalWindow):
        await self._enter("targets", "targets")
        return [t for t in self.targets if window.contains(t.month)]

