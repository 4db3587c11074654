import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Sequence, Tuple

from sqlalchemy import Date, Numeric, cast, func, select, text
from sqlalchemy.dialects.postgresql import JSONB

from kpi_recon.config import settings
from kpi_recon.db.models.dim_channel import DimChannel
from kpi_recon.db.models.kpi_sales_monthly import (
    KpiSalesMonthlyComputed,
    KpiSalesMonthlyUnified,
)
from kpi_recon.db.models.manual_entries import KpiManualEntry
from kpi_recon.db.models.sales_actuals import SalesActualMonthly
from kpi_recon.engine.fiscal import FiscalWindow
from kpi_recon.engine.rows import ChannelMonthRow, LegacyRow, MonthTotalRow, TargetRow
from kpi_recon.engine.schema_prober import CandidateResolver
from kpi_recon.services.source_registry import is_legacy, legacy_entry
from kpi_recon.utils.enums.reconciliation import SourceId

logger = logging.getLogger(__name__)

TARGET_METRIC = "target"

# Postgres patterns for the month candidates. Day validity is not checked.
_ISO_DATE_SQL = "^[0-9]{4}-(0?[1-9]|1[0-2])-[0-9]{1,2}"
_ISO_MONTH_PART_SQL = "^[0-9]{4}-([0-9]{1,2})"
_YEAR_MONTH_SQL = "^[0-9]{4}[-/](0?[1-9]|1[0-2])$"
_YEAR_MONTH_PART_SQL = "^[0-9]{4}[-/]([0-9]{1,2})"
_NUMBER_SQL = "^-?[0-9]+([.][0-9]+)?$"


def _as_month(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def _candidate_month_sql(candidate: CandidateResolver, param: str) -> str:
    value = f"btrim(src.payload ->> :{param})"
    if candidate.kind == "year_month":
        pattern, month_part = _YEAR_MONTH_SQL, _YEAR_MONTH_PART_SQL
    else:
        pattern, month_part = _ISO_DATE_SQL, _ISO_MONTH_PART_SQL
    return (
        f"(CASE WHEN {value} ~ '{pattern}' AND left({value}, 4) <> '0000' "
        f"THEN make_date(left({value}, 4)::int, substring({value} from '{month_part}')::int, 1) END)"
    )


def _amount_sql(param: str) -> str:
    value = f"replace(btrim(src.payload ->> :{param}), ',', '')"
    return f"(CASE WHEN {value} ~ '{_NUMBER_SQL}' THEN {value}::numeric END)"


def legacy_month_exprs(candidates: Sequence[CandidateResolver]) -> Tuple[List[str], Dict[str, str]]:
    """One SQL month expression per candidate column, in candidate order."""
    exprs, params = [], {}
    for i, candidate in enumerate(candidates):
        params[f"month_col_{i}"] = candidate.column
        exprs.append(_candidate_month_sql(candidate, f"month_col_{i}"))
    return exprs, params


def legacy_amount_exprs(columns: Sequence[str]) -> Tuple[List[str], Dict[str, str]]:
    exprs, params = [], {}
    for i, column in enumerate(columns):
        params[f"amount_col_{i}"] = column
        exprs.append(_amount_sql(f"amount_col_{i}"))
    return exprs, params


class KpiSourceRepository:
    """
    Read-only access to the KPI source tables.

    Every method opens its own session from ``session_factory`` so the
    reconciliation service can run source queries concurrently.
    """

    def __init__(self, session_factory, schema: str = None):
        self.session_factory = session_factory
        self.schema = schema or settings.KPI_SCHEMA

    def _legacy_from(self, source: SourceId) -> str:
        # Whole rows as JSON so columns missing from this deployment never break the query
        table = legacy_entry(source)["table"]
        return f'(SELECT to_jsonb(t) AS payload FROM "{self.schema}"."{table}" AS t) AS src'

    def _channel_month_stmt(self, source: SourceId, window: FiscalWindow):
        if source is SourceId.ACTUALS:
            month = cast(func.date_trunc("month", SalesActualMonthly.fiscal_month), Date)
            return (
                select(
                    DimChannel.channel_code.label("raw_label"),
                    month.label("month"),
                    func.sum(SalesActualMonthly.actual_amount_yen).label("amount"),
                )
                .select_from(SalesActualMonthly)
                .join(DimChannel, DimChannel.channel_id == SalesActualMonthly.channel_id)
                .where(
                    SalesActualMonthly.fiscal_month >= window.start,
                    SalesActualMonthly.fiscal_month < window.end,
                )
                .group_by(DimChannel.channel_code, month)
            )
        if source is SourceId.COMPUTED:
            month = cast(func.date_trunc("month", KpiSalesMonthlyComputed.fiscal_month), Date)
            return (
                select(
                    KpiSalesMonthlyComputed.channel_code.label("raw_label"),
                    month.label("month"),
                    func.sum(KpiSalesMonthlyComputed.actual_amount_yen).label("amount"),
                )
                .where(
                    KpiSalesMonthlyComputed.fiscal_month >= window.start,
                    KpiSalesMonthlyComputed.fiscal_month < window.end,
                )
                .group_by(KpiSalesMonthlyComputed.channel_code, month)
            )
        if source is SourceId.UNIFIED:
            month = cast(func.date_trunc("month", KpiSalesMonthlyUnified.month), Date)
            return (
                select(
                    KpiSalesMonthlyUnified.channel_code.label("raw_label"),
                    month.label("month"),
                    func.sum(KpiSalesMonthlyUnified.amount).label("amount"),
                )
                .where(
                    KpiSalesMonthlyUnified.month >= window.start,
                    KpiSalesMonthlyUnified.month < window.end,
                )
                .group_by(KpiSalesMonthlyUnified.channel_code, month)
            )
        raise ValueError(f"Source {source.value} has no grouped channel/month query")

    def _legacy_rows_stmt(self, source: SourceId, window: FiscalWindow):
        months, params = legacy_month_exprs(legacy_entry(source)["month_candidates"])
        unplaced = " AND ".join(f"{m} IS NULL" for m in months)
        in_window = " OR ".join(f"({m} >= :start AND {m} < :end)" for m in months)
        return (
            text(f"SELECT src.payload AS payload FROM {self._legacy_from(source)} WHERE ({unplaced}) OR {in_window}")
            .bindparams(start=window.start, end=window.end, **params)
            .columns(payload=JSONB)
        )

    def _legacy_month_total_stmt(self, source: SourceId, window: FiscalWindow):
        entry = legacy_entry(source)
        months, month_params = legacy_month_exprs(entry["month_candidates"])
        amounts, amount_params = legacy_amount_exprs(entry["amount_columns"])
        sql = (
            "SELECT probed.month AS month, sum(probed.amount) AS amount FROM ("
            f"SELECT coalesce({', '.join(months)}) AS month, coalesce({', '.join(amounts)}) AS amount "
            f"FROM {self._legacy_from(source)}"
            ") AS probed "
            "WHERE probed.month >= :start AND probed.month < :end "
            "GROUP BY probed.month"
        )
        return (
            text(sql)
            .bindparams(start=window.start, end=window.end, **month_params, **amount_params)
            .columns(month=Date, amount=Numeric)
        )

    def _month_total_stmt(self, source: SourceId, window: FiscalWindow):
        # Month-only totals never touch the channel dimension
        if is_legacy(source):
            return self._legacy_month_total_stmt(source, window)
        if source is SourceId.ACTUALS:
            column, amount = SalesActualMonthly.fiscal_month, SalesActualMonthly.actual_amount_yen
        elif source is SourceId.COMPUTED:
            column, amount = KpiSalesMonthlyComputed.fiscal_month, KpiSalesMonthlyComputed.actual_amount_yen
        elif source is SourceId.UNIFIED:
            column, amount = KpiSalesMonthlyUnified.month, KpiSalesMonthlyUnified.amount
        else:
            raise ValueError(f"Source {source.value} has no month total query")
        month = cast(func.date_trunc("month", column), Date)
        return (
            select(month.label("month"), func.sum(amount).label("amount"))
            .where(column >= window.start, column < window.end)
            .group_by(month)
        )

    async def fetch_channel_months(self, source: SourceId, window: FiscalWindow) -> List[ChannelMonthRow]:
        stmt = self._channel_month_stmt(source, window)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [
            ChannelMonthRow(raw_label=r["raw_label"], month=_as_month(r["month"]), amount=r["amount"])
            for r in rows
        ]

    async def fetch_month_totals(self, source: SourceId, window: FiscalWindow) -> List[MonthTotalRow]:
        stmt = self._month_total_stmt(source, window)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [MonthTotalRow(month=_as_month(r["month"]), amount=r["amount"]) for r in rows]

    async def fetch_legacy_rows(self, source: SourceId, window: FiscalWindow) -> List[LegacyRow]:
        """
        Rows of a legacy table as JSON objects, bounded to the window. A row
        is kept when any month candidate falls inside the window, or when no
        candidate parses at all. The prober makes the final decision.
        """
        stmt = self._legacy_rows_stmt(source, window)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            payloads = result.scalars().all()
        logger.debug("Fetched %s legacy rows for %s in %s", len(payloads), source.value, window.fiscal_label)
        return [LegacyRow(payload=p or {}) for p in payloads]

    async def fetch_targets(self, window: FiscalWindow) -> List[TargetRow]:
        stmt = (
            select(
                KpiManualEntry.channel_code.label("raw_label"),
                KpiManualEntry.month.label("month"),
                func.sum(KpiManualEntry.amount).label("amount"),
            )
            .where(
                KpiManualEntry.metric == TARGET_METRIC,
                KpiManualEntry.month >= window.start,
                KpiManualEntry.month < window.end,
            )
            .group_by(KpiManualEntry.channel_code, KpiManualEntry.month)
        )
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            rows = result.mappings().all()
        return [
            TargetRow(
                raw_label=r["raw_label"],
                month=_as_month(r["month"]),
                amount=None if r["amount"] is None else Decimal(r["amount"]),
            )
            for r in rows
        ]
