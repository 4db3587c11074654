# Registry for KPI sources and how each one is aggregated
from kpi_recon.engine.aggregators import (
    ChannelMonthAggregator,
    LegacyAggregator,
    SourceAggregator,
    SourceStore,
)
from kpi_recon.engine.schema_prober import (
    MonthProber,
    direct_month,
    truncated_date,
    year_month,
)
from kpi_recon.utils.enums.reconciliation import ChannelCode, SourceId

SOURCE_REGISTRY = {
    SourceId.ACTUALS: {
        "kind": "channel_month",
        "table": "sales_actuals_monthly",
    },
    SourceId.FINAL: {
        "kind": "legacy",
        "table": "kpi_sales_monthly_final_v1",
        "month_candidates": [
            direct_month("fiscal_month"),
            year_month("fiscal_ym"),
            year_month("ym"),
            truncated_date("fiscal_date"),
            truncated_date("sales_date"),
        ],
        "channel_columns": ["channel_code", "channel", "channel_cd", "ch"],
        "amount_columns": ["actual_amount_yen", "amount_yen", "amount"],
    },
    SourceId.COMPUTED: {
        "kind": "channel_month",
        "table": "kpi_sales_monthly_computed_v2",
    },
    SourceId.UNIFIED: {
        "kind": "channel_month",
        "table": "kpi_sales_monthly_unified_v1",
    },
    SourceId.OEM: {
        "kind": "legacy",
        "table": "wholesale_oem_sales",
        "month_candidates": [
            direct_month("sale_month"),
            year_month("sale_ym"),
            truncated_date("sale_date"),
        ],
        "amount_columns": ["amount_yen", "amount"],
        "fixed_label": ChannelCode.WHOLESALE.value,
    },
}


def legacy_entry(source: SourceId) -> dict:
    entry = SOURCE_REGISTRY[source]
    if entry["kind"] != "legacy":
        raise ValueError(f"Source {source.value} is not a legacy source")
    return entry


def is_legacy(source: SourceId) -> bool:
    return SOURCE_REGISTRY[source]["kind"] == "legacy"


def build_aggregator(source: SourceId, store: SourceStore) -> SourceAggregator:
    entry = SOURCE_REGISTRY[source]
    if entry["kind"] == "channel_month":
        return ChannelMonthAggregator(source, store)
    return LegacyAggregator(
        source,
        store,
        prober=MonthProber(entry["month_candidates"]),
        channel_columns=entry.get("channel_columns", ()),
        amount_columns=entry["amount_columns"],
        fixed_label=entry.get("fixed_label"),
    )
