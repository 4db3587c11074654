"""
Request-scoped KPI reconciliation.

One run aggregates every source for a fiscal window concurrently, resolves
the precedence chain and is then checked, diffed or reduced into reports.
Nothing is cached between runs.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from kpi_recon.config import settings
from kpi_recon.engine.aggregators import SourceStore
from kpi_recon.engine.audit import (
    UnclassifiedAuditRow,
    channel_stats,
    unclassified_audit,
    unclassified_warnings,
    zero_web_months,
)
from kpi_recon.engine.diff import (
    MonthCheckRow,
    SourceDiff,
    compare_sources,
    diff_vs_source,
    month_check_rows,
)
from kpi_recon.engine.errors import KpiReconError, MonthDiscrepancy, SourceUnavailable
from kpi_recon.engine.fiscal import FiscalWindow, add_months, first_of_month, window_for
from kpi_recon.engine.invariants import channel_sum_discrepancies, raise_if_inconsistent
from kpi_recon.engine.models import (
    ChannelStats,
    SourcePivot,
    UnclassifiedChannelWarning,
    UnresolvedRows,
)
from kpi_recon.engine.reports import (
    MonthlySummary,
    PivotView,
    build_pivot_view,
    build_summary,
    target_amounts,
)
from kpi_recon.engine.unifier import PrecedenceResolver, UnifiedView, unified_amounts
from kpi_recon.services.source_registry import build_aggregator, is_legacy
from kpi_recon.services.time_decorator import timing_decorator_async
from kpi_recon.utils.enums.reconciliation import ReconciliationState, SourceId

logger = logging.getLogger(__name__)

# Every run reads these; the precedence chain is drawn from them
RECONCILED_SOURCES = (SourceId.ACTUALS, SourceId.FINAL, SourceId.COMPUTED, SourceId.UNIFIED)
TARGETS_SOURCE = "targets"


@dataclass(frozen=True)
class ReconciliationRun:
    window: FiscalWindow
    pivots: Mapping[SourceId, SourcePivot]
    unified: UnifiedView

    @property
    def reconciled_pivots(self) -> List[SourcePivot]:
        return [self.pivots[s] for s in RECONCILED_SOURCES if s in self.pivots]

    @property
    def state(self) -> ReconciliationState:
        if all(p.is_empty for p in self.reconciled_pivots):
            return ReconciliationState.EMPTY
        return ReconciliationState.OK

    @property
    def warnings(self) -> List[UnclassifiedChannelWarning]:
        return unclassified_warnings(self.reconciled_pivots)


@dataclass(frozen=True)
class PivotReport:
    view: PivotView
    state: ReconciliationState
    warnings: Tuple[UnclassifiedChannelWarning, ...]


@dataclass(frozen=True)
class DiffReport:
    window: FiscalWindow
    state: ReconciliationState
    diffs: Tuple[SourceDiff, ...]
    unclassified: Tuple[UnclassifiedAuditRow, ...]
    warnings: Tuple[UnclassifiedChannelWarning, ...]


@dataclass(frozen=True)
class SourceAudit:
    window: FiscalWindow
    rows: Tuple[UnclassifiedAuditRow, ...]
    channel_stats: Mapping[str, Tuple[ChannelStats, ...]]
    zero_web_months: Tuple[date, ...]
    unresolved: Mapping[str, UnresolvedRows]
    warnings: Tuple[UnclassifiedChannelWarning, ...]


@dataclass(frozen=True)
class ConsistencyReport:
    window: FiscalWindow
    state: ReconciliationState
    checked_scopes: Tuple[str, ...]


@dataclass(frozen=True)
class SourceComparison:
    window: FiscalWindow
    month: date
    rows: Tuple[MonthCheckRow, ...]
    warnings: Tuple[UnclassifiedChannelWarning, ...]


@dataclass(frozen=True)
class SummaryReport:
    summary: MonthlySummary
    state: ReconciliationState
    warnings: Tuple[UnclassifiedChannelWarning, ...]


class KpiReconciliationService:
    def __init__(
        self,
        store: SourceStore,
        priority: Optional[Sequence[str]] = None,
        fiscal_start_month: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        tolerance: Optional[Decimal] = None,
    ):
        self.store = store
        self.resolver = PrecedenceResolver(priority or settings.SOURCE_PRIORITY)
        self.fiscal_start_month = fiscal_start_month or settings.FISCAL_START_MONTH
        self.timeout_seconds = timeout_seconds or settings.SOURCE_TIMEOUT_SECONDS
        self.tolerance = settings.RECONCILIATION_TOLERANCE if tolerance is None else tolerance

    def window_for(self, reference_date: date) -> FiscalWindow:
        return window_for(reference_date, self.fiscal_start_month)

    async def _aggregate_source(self, source: SourceId, window: FiscalWindow) -> SourcePivot:
        aggregator = build_aggregator(source, self.store)
        try:
            return await asyncio.wait_for(aggregator.aggregate(window), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("Source %s timed out after %ss", source.value, self.timeout_seconds)
            raise SourceUnavailable(source.value, f"timed out after {self.timeout_seconds}s") from e
        except KpiReconError:
            raise
        except Exception as e:
            logger.error("Source %s failed: %s", source.value, e, exc_info=True)
            raise SourceUnavailable(source.value, str(e)) from e

    async def aggregate_sources(
        self, window: FiscalWindow, sources: Sequence[SourceId]
    ) -> Dict[SourceId, SourcePivot]:
        """
        Aggregate ``sources`` concurrently and wait for all of them.

        The first failure cancels the remaining queries and is re-raised; a
        partial set of pivots is never returned.
        """
        tasks = {
            source: asyncio.create_task(self._aggregate_source(source, window), name=f"aggregate-{source.value}")
            for source in sources
        }
        try:
            done, pending = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
            failures = [
                task for task in tasks.values()
                if task in done and not task.cancelled() and task.exception() is not None
            ]
            if failures:
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                raise failures[0].exception()
            return {source: task.result() for source, task in tasks.items()}
        finally:
            for task in tasks.values():
                if not task.done():
                    task.cancel()

    @timing_decorator_async
    async def run(self, window: FiscalWindow, include_oem: bool = False) -> ReconciliationRun:
        sources = list(RECONCILED_SOURCES)
        if include_oem:
            sources.append(SourceId.OEM)
        pivots = await self.aggregate_sources(window, sources)
        unified = self.resolver.resolve(pivots, window.months)
        return ReconciliationRun(window=window, pivots=pivots, unified=unified)

    def discrepancies(self, run: ReconciliationRun) -> List[MonthDiscrepancy]:
        """Channel-sum discrepancies of every reconciled source against its store-side month totals."""
        found: List[MonthDiscrepancy] = []
        for source in RECONCILED_SOURCES:
            pivot = run.pivots[source]
            found.extend(
                channel_sum_discrepancies(
                    pivot.amounts, pivot.month_totals, run.window.months, source.value, self.tolerance
                )
            )
        return found

    async def checked_run(self, window: FiscalWindow, include_oem: bool = False) -> ReconciliationRun:
        run = await self.run(window, include_oem=include_oem)
        raise_if_inconsistent(self.discrepancies(run))
        return run

    async def assert_consistency(self, window: FiscalWindow) -> ConsistencyReport:
        run = await self.checked_run(window)
        return ConsistencyReport(
            window=window,
            state=run.state,
            checked_scopes=tuple(s.value for s in RECONCILED_SOURCES),
        )

    async def get_pivot(self, window: FiscalWindow, include_oem: bool = False) -> PivotReport:
        run = await self.checked_run(window, include_oem=include_oem)
        oem = run.pivots[SourceId.OEM].amounts if include_oem else None
        return PivotReport(
            view=build_pivot_view(window, run.unified, oem_amounts=oem),
            state=run.state,
            warnings=tuple(run.warnings),
        )

    async def get_diffs(self, window: FiscalWindow, only_non_zero: bool = True) -> DiffReport:
        run = await self.checked_run(window)
        months = window.months
        diffs = (
            diff_vs_source(run.pivots[SourceId.UNIFIED].amounts, run.unified, months, only_non_zero),
            compare_sources(
                SourceId.FINAL,
                run.pivots[SourceId.FINAL].amounts,
                SourceId.COMPUTED,
                run.pivots[SourceId.COMPUTED].amounts,
                months,
                only_non_zero,
            ),
        )
        for source_diff in diffs:
            if source_diff.has_differences:
                logger.info(
                    "Diff %s for %s: %s non-zero records",
                    source_diff.name,
                    window.fiscal_label,
                    sum(1 for r in source_diff.records if r.delta != 0),
                )
        return DiffReport(
            window=window,
            state=run.state,
            diffs=diffs,
            unclassified=tuple(unclassified_audit(run.reconciled_pivots)),
            warnings=tuple(run.warnings),
        )

    async def get_unified_source_audit(self, window: FiscalWindow) -> SourceAudit:
        # Diagnostic surface: available even when the invariant does not hold
        run = await self.run(window)
        return SourceAudit(
            window=window,
            rows=tuple(unclassified_audit(run.reconciled_pivots)),
            channel_stats={
                source.value: tuple(channel_stats(run.pivots[source])) for source in RECONCILED_SOURCES
            },
            zero_web_months=tuple(zero_web_months(unified_amounts(run.unified), window.months)),
            unresolved={
                pivot.source.value: pivot.unresolved for pivot in run.reconciled_pivots if is_legacy(pivot.source)
            },
            warnings=tuple(run.warnings),
        )

    async def get_source_comparison(self, month: date, only_diffs: bool = False) -> SourceComparison:
        window = self.window_for(month)
        run = await self.run(window)
        sources = {s: run.pivots[s].amounts for s in self.resolver.priority}
        rows = month_check_rows(
            month, run.pivots[SourceId.UNIFIED].amounts, sources, run.unified, only_diffs=only_diffs
        )
        return SourceComparison(window=window, month=month, rows=tuple(rows), warnings=tuple(run.warnings))

    async def _fetch_targets(self, window: FiscalWindow):
        try:
            return await asyncio.wait_for(self.store.fetch_targets(window), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            logger.error("Targets timed out after %ss", self.timeout_seconds)
            raise SourceUnavailable(TARGETS_SOURCE, f"timed out after {self.timeout_seconds}s") from e
        except Exception as e:
            logger.error("Targets failed: %s", e, exc_info=True)
            raise SourceUnavailable(TARGETS_SOURCE, str(e)) from e

    async def get_summary(self, reference_date: date) -> SummaryReport:
        """
        Month-over-month, year-to-date and target achievement for the month
        containing ``reference_date``, built from checked unified amounts only.
        """
        month = first_of_month(reference_date)
        window = self.window_for(month)
        run = await self.checked_run(window)
        previous_month = add_months(month, -1)
        if window.contains(previous_month):
            previous_run = run
        else:
            previous_run = await self.checked_run(self.window_for(previous_month))
        targets = await self._fetch_targets(window)

        summary = build_summary(
            window,
            month,
            unified_amounts(run.unified),
            unified_amounts(previous_run.unified),
            target_amounts(targets),
        )
        return SummaryReport(summary=summary, state=run.state, warnings=tuple(run.warnings))
