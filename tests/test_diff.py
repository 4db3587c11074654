from datetime import date
from decimal import Decimal

from kpi_recon.engine.diff import compare_sources, diff, diff_vs_source, month_check_rows
from kpi_recon.engine.models import DiffRecord
from kpi_recon.engine.unifier import resolve
from kpi_recon.utils.enums.reconciliation import TOTAL_CHANNEL, ChannelCode, SourceId

SEP = date(2025, 9, 1)
OCT = date(2025, 10, 1)
WEB = ChannelCode.WEB
STORE = ChannelCode.STORE


class TestDiff:
    def test_sparse_example(self):
        a = {(SEP, WEB): Decimal(100)}
        b = {(SEP, WEB): Decimal(100), (SEP, STORE): Decimal(50)}

        assert diff(a, b) == [
            DiffRecord(month=SEP, channel=STORE, delta=Decimal(-50)),
            DiffRecord(month=SEP, channel=TOTAL_CHANNEL, delta=Decimal(-50)),
        ]

    def test_equal_maps_produce_nothing(self):
        a = {(SEP, WEB): Decimal(7), (OCT, STORE): Decimal(3)}
        assert diff(a, dict(a)) == []

    def test_total_can_be_zero_while_channels_differ(self):
        a = {(SEP, WEB): Decimal(10)}
        b = {(SEP, STORE): Decimal(10)}
        records = diff(a, b)
        assert [r.channel for r in records] == [WEB, STORE]
        assert all(r.channel != TOTAL_CHANNEL for r in records)

    def test_dense_grid(self):
        records = diff({}, {}, months=[SEP], only_non_zero=False)
        assert [r.channel for r in records] == [*ChannelCode, TOTAL_CHANNEL]
        assert all(r.delta == 0 for r in records)

    def test_ordering_by_month_then_channel(self):
        a = {(OCT, STORE): Decimal(1), (SEP, WEB): Decimal(2)}
        months = [r.month for r in diff(a, {})]
        assert months == sorted(months)


class TestStandingDiffs:
    def test_diff_vs_source_is_stored_minus_resolved(self):
        unified = resolve([(SourceId.ACTUALS, {(SEP, WEB): Decimal(100)})], [SEP])
        stored = {(SEP, WEB): Decimal(95)}

        result = diff_vs_source(stored, unified, [SEP])

        assert result.name == "diff_vs_source"
        assert result.has_differences
        assert result.records[0] == DiffRecord(month=SEP, channel=WEB, delta=Decimal(-5))

    def test_compare_sources_name(self):
        result = compare_sources(SourceId.FINAL, {}, SourceId.COMPUTED, {})
        assert result.name == "final_vs_computed"
        assert not result.has_differences


class TestMonthCheckRows:
    def test_rows_show_every_source_and_provenance(self):
        actuals = {(SEP, WEB): Decimal(100)}
        final = {(SEP, WEB): Decimal(98), (SEP, STORE): Decimal(40)}
        unified = resolve([(SourceId.ACTUALS, actuals), (SourceId.FINAL, final)], [SEP])
        stored = {(SEP, WEB): Decimal(100), (SEP, STORE): Decimal(45)}

        rows = month_check_rows(
            SEP, stored, {SourceId.ACTUALS: actuals, SourceId.FINAL: final}, unified
        )

        assert [r.channel for r in rows] == [WEB, STORE]
        assert rows[0].unified_source == "actuals"
        assert rows[0].source_amounts == {"actuals": Decimal(100), "final": Decimal(98)}
        assert rows[1].unified_source == "final"
        assert rows[1].diff_vs_source == Decimal(5)

        only = month_check_rows(
            SEP, stored, {SourceId.ACTUALS: actuals, SourceId.FINAL: final}, unified, only_diffs=True
        )
        assert [r.channel for r in only] == [STORE]
