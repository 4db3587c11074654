import asyncio
from datetime import date
from decimal import Decimal

import pytest

from kpi_recon.engine.errors import ReconciliationError, SourceUnavailable
from kpi_recon.engine.fiscal import window_for_fiscal_year
from kpi_recon.engine.models import UnresolvedRows
from kpi_recon.engine.rows import MonthTotalRow
from kpi_recon.services.kpi_reconciliation_service import KpiReconciliationService
from kpi_recon.utils.enums.reconciliation import (
    TOTAL_CHANNEL,
    ChannelCode,
    ReconciliationState,
    SourceId,
)

from tests.fakes import FakeStore, cm

FY26 = window_for_fiscal_year(2025)
SEP = date(2025, 9, 1)
OCT = date(2025, 10, 1)


def service_for(store, **kwargs) -> KpiReconciliationService:
    kwargs.setdefault("priority", ["actuals", "final", "computed"])
    kwargs.setdefault("timeout_seconds", 1.0)
    return KpiReconciliationService(store, fiscal_start_month=8, tolerance=Decimal(0), **kwargs)


class TestRun:
    async def test_precedence_and_provenance(self, fy26_store):
        run = await service_for(fy26_store).run(FY26)

        assert run.unified[(SEP, ChannelCode.WEB)].provenance is SourceId.ACTUALS
        assert run.unified[(SEP, ChannelCode.WHOLESALE)].amount == Decimal(70)
        assert run.unified[(SEP, ChannelCode.WHOLESALE)].provenance is SourceId.FINAL
        assert run.unified[(OCT, ChannelCode.WEB)].amount == Decimal(118)
        assert run.unified[(OCT, ChannelCode.OTHER)].provenance is SourceId.COMPUTED
        assert run.unified[(SEP, ChannelCode.SHOKU)].provenance == "none"
        assert run.state is ReconciliationState.OK

    async def test_idempotent(self, fy26_store):
        service = service_for(fy26_store)

        first = await service.get_diffs(FY26)
        second = await service.get_diffs(FY26)
        pivot_a = await service.get_pivot(FY26)
        pivot_b = await service.get_pivot(FY26)

        assert first == second
        assert pivot_a == pivot_b

    async def test_empty_window(self):
        report = await service_for(FakeStore()).get_pivot(FY26)

        assert report.state is ReconciliationState.EMPTY
        assert report.view.grand_total == 0


class TestDiffs:
    async def test_standing_diffs(self, fy26_store):
        report = await service_for(fy26_store).get_diffs(FY26)

        by_name = {d.name: d for d in report.diffs}
        stale = [(r.month, r.channel, r.delta) for r in by_name["diff_vs_source"].records]
        assert stale == [
            (SEP, ChannelCode.WHOLESALE, Decimal(-5)),
            (SEP, TOTAL_CHANNEL, Decimal(-5)),
            (OCT, ChannelCode.WEB, Decimal(2)),
            (OCT, TOTAL_CHANNEL, Decimal(2)),
        ]
        divergence = [(r.month, r.channel, r.delta) for r in by_name["final_vs_computed"].records]
        assert divergence == [
            (SEP, ChannelCode.WEB, Decimal(-90)),
            (SEP, TOTAL_CHANNEL, Decimal(-90)),
            (OCT, ChannelCode.WEB, Decimal(-2)),
            (OCT, ChannelCode.OTHER, Decimal(-5)),
            (OCT, TOTAL_CHANNEL, Decimal(-7)),
        ]

    async def test_unclassified_reported_alongside(self, fy26_store):
        report = await service_for(fy26_store).get_diffs(FY26)

        assert [(w.source, w.raw_label) for w in report.warnings] == [
            (SourceId.COMPUTED, "Pop-up"),
            (SourceId.UNIFIED, "Pop-up"),
        ]
        assert {(r.source, r.month) for r in report.unclassified} == {
            (SourceId.COMPUTED, OCT),
            (SourceId.UNIFIED, OCT),
        }


class TestConsistency:
    async def test_consistent(self, fy26_store):
        report = await service_for(fy26_store).assert_consistency(FY26)
        assert report.state is ReconciliationState.OK
        assert report.checked_scopes == ("actuals", "final", "computed", "unified")

    @pytest.mark.parametrize("source", [SourceId.ACTUALS, SourceId.FINAL, SourceId.COMPUTED, SourceId.UNIFIED])
    async def test_every_checked_scope_can_fail(self, fy26_store, source):
        fy26_store.month_totals[source] = [MonthTotalRow(month=SEP, amount=Decimal(1_000))]

        with pytest.raises(ReconciliationError) as exc:
            await service_for(fy26_store).assert_consistency(FY26)

        assert {d.scope for d in exc.value.details} == {source.value}

    async def test_legacy_row_the_prober_cannot_place_is_a_discrepancy(self, fy26_store):
        # The store total counts a row whose month column holds an impossible day
        fy26_store.legacy[SourceId.FINAL].append(
            {"fiscal_month": "2025-09-31", "channel_code": "WEB", "actual_amount_yen": 500}
        )
        fy26_store.month_totals[SourceId.FINAL] = [
            MonthTotalRow(month=SEP, amount=Decimal(570)),
            MonthTotalRow(month=OCT, amount=Decimal(118)),
        ]
        service = service_for(fy26_store)

        with pytest.raises(ReconciliationError) as exc:
            await service.assert_consistency(FY26)

        (detail,) = exc.value.details
        assert (detail.scope, detail.month, detail.discrepancy) == ("final", SEP, Decimal(-500))

        audit = await service.get_unified_source_audit(FY26)
        assert audit.unresolved == {"final": UnresolvedRows(rows=1, amount=Decimal(500))}

    async def test_rows_lost_by_channel_join_are_detected(self, fy26_store):
        fy26_store.month_totals[SourceId.ACTUALS] = [MonthTotalRow(month=SEP, amount=Decimal(190))]
        service = service_for(fy26_store)

        with pytest.raises(ReconciliationError) as exc:
            await service.get_pivot(FY26)

        (detail,) = exc.value.details
        assert detail.scope == "actuals"
        assert detail.month == SEP
        assert detail.discrepancy == Decimal(-50)

    async def test_audit_stays_available_when_inconsistent(self, fy26_store):
        fy26_store.month_totals[SourceId.ACTUALS] = [MonthTotalRow(month=SEP, amount=Decimal(1))]

        audit = await service_for(fy26_store).get_unified_source_audit(FY26)

        assert audit.zero_web_months == ()
        stats = {s.channel: s for s in audit.channel_stats["actuals"]}
        assert stats[ChannelCode.STORE].raw_variants == (" store ",)


class TestSourceFailures:
    async def test_failure_aborts_whole_run(self, fy26_store):
        fy26_store.failures[SourceId.COMPUTED] = RuntimeError("connection reset")

        with pytest.raises(SourceUnavailable) as exc:
            await service_for(fy26_store).get_pivot(FY26)

        assert exc.value.source == "computed"
        assert "connection reset" in exc.value.reason

    async def test_timeout_is_source_unavailable(self, fy26_store):
        fy26_store.delays[SourceId.FINAL] = 5

        with pytest.raises(SourceUnavailable) as exc:
            await service_for(fy26_store, timeout_seconds=0.05).run(FY26)

        assert exc.value.source == "final"

    async def test_failure_cancels_slow_siblings(self, fy26_store):
        fy26_store.delays[SourceId.UNIFIED] = 5
        fy26_store.failures[SourceId.ACTUALS] = RuntimeError("boom")

        with pytest.raises(SourceUnavailable):
            await service_for(fy26_store, timeout_seconds=10).run(FY26)
        await asyncio.sleep(0)

        assert SourceId.UNIFIED in fy26_store.cancelled


class TestReports:
    async def test_pivot_with_oem(self, fy26_store):
        report = await service_for(fy26_store).get_pivot(FY26, include_oem=True)

        assert report.view.cell(SEP, ChannelCode.WHOLESALE) == Decimal(100)
        assert report.view.includes_oem
        assert all(w.source is not SourceId.OEM for w in report.warnings)

    async def test_pivot_without_oem_skips_the_source(self, fy26_store):
        await service_for(fy26_store).get_pivot(FY26)
        assert ("legacy_rows", SourceId.OEM) not in fy26_store.calls

    async def test_source_comparison(self, fy26_store):
        comparison = await service_for(fy26_store).get_source_comparison(SEP, only_diffs=True)

        assert [(r.channel, r.unified_source, r.diff_vs_source) for r in comparison.rows] == [
            (ChannelCode.WHOLESALE, "final", Decimal(-5)),
        ]
        assert comparison.rows[0].source_amounts == {
            "actuals": Decimal(0),
            "final": Decimal(70),
            "computed": Decimal(70),
        }

    async def test_summary(self, fy26_store):
        report = await service_for(fy26_store).get_summary(date(2025, 10, 20))

        summary = report.summary
        web = summary.rows[0]
        assert summary.month == OCT
        assert (web.previous, web.current) == (Decimal(100), Decimal(118))
        assert web.mom_pct == Decimal("18.0")
        assert web.target == Decimal(150)
        assert web.achievement_pct == Decimal("78.7")
        assert summary.total.ytd == Decimal(333)

    async def test_summary_first_month_reads_previous_year(self):
        store = FakeStore(channel_months={SourceId.ACTUALS: [cm("WEB", "2025-07", 80), cm("WEB", "2025-08", 100)]})

        report = await service_for(store).get_summary(date(2025, 8, 3))

        web = report.summary.rows[0]
        assert report.summary.previous_month == date(2025, 7, 1)
        assert web.previous == Decimal(80)
        assert web.ytd == Decimal(100)
