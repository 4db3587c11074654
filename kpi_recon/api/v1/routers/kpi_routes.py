"""
KPI reconciliation API router: pivots, diffs, audit, consistency, month
check and monthly summary over the reconciled sources.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from kpi_recon.db.session import get_db
from kpi_recon.dependencies.kpi_dependencies import (
    get_reconciliation_service,
    resolve_reference_date,
    resolve_window,
)
from kpi_recon.engine.errors import InputError, ReconciliationError, SourceUnavailable
from kpi_recon.engine.fiscal import parse_month_param
from kpi_recon.engine.reports import pivot_frame, summary_frame, to_csv
from kpi_recon.schemas.kpi_schemas import (
    ConsistencyResponse,
    DiffsResponse,
    PivotResponse,
    SourceAuditResponse,
    SourceComparisonResponse,
    SummaryResponse,
)
from kpi_recon.services.kpi_reconciliation_service import KpiReconciliationService
from kpi_recon.utils.enums.reconciliation import ReconciliationState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/kpi", tags=["KPI Reconciliation"])


def create_api_response(
    data: Any,
    message: str = "Success",
    status: str = "success",
    error: bool = False
) -> Dict[str, Any]:
    """Create standardized API response format"""
    return {
        "status": status,
        "error": error,
        "message": message,
        "data": data
    }


def error_response(e: Exception) -> JSONResponse:
    """Translate an engine error into the standard envelope and status code."""
    if isinstance(e, InputError):
        status_code, data = 400, e.to_dict()
    elif isinstance(e, SourceUnavailable):
        status_code, data = 503, e.to_dict()
    elif isinstance(e, ReconciliationError):
        status_code = 409
        data = {"state": ReconciliationState.INCONSISTENT.value, **e.to_dict()}
    else:
        logger.exception("Unhandled KPI reconciliation error")
        return JSONResponse(
            status_code=500,
            content=create_api_response(
                data=None, message=f"KPI reconciliation failed: {e}", status="error", error=True
            ),
        )
    return JSONResponse(
        status_code=status_code,
        content=create_api_response(data=data, message=e.message, status="error", error=True),
    )


def csv_response(content: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/pivot", summary="Month x channel pivot of the unified view")
async def get_pivot(
    reference_date: Optional[str] = Query(None, description="Any date in the fiscal year (YYYY-MM-DD)"),
    fy: Optional[str] = Query(None, description="Fiscal start year, e.g. 2025 for FY26"),
    include_oem: bool = Query(False, description="Add OEM sales onto WHOLESALE"),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        window = resolve_window(service, reference_date, fy)
        report = await service.get_pivot(window, include_oem=include_oem)
        return create_api_response(
            data=PivotResponse.from_report(report).model_dump(mode="json"),
            message="Pivot retrieved successfully",
        )
    except Exception as e:
        return error_response(e)


@router.get("/pivot.csv", summary="Pivot as CSV")
async def get_pivot_csv(
    reference_date: Optional[str] = Query(None),
    fy: Optional[str] = Query(None),
    include_oem: bool = Query(False),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        window = resolve_window(service, reference_date, fy)
        report = await service.get_pivot(window, include_oem=include_oem)
        return csv_response(to_csv(pivot_frame(report.view)), f"kpi_pivot_{window.fiscal_label}.csv")
    except Exception as e:
        return error_response(e)


@router.get("/diffs", summary="Stored unified vs resolved, and final vs computed")
async def get_diffs(
    reference_date: Optional[str] = Query(None),
    fy: Optional[str] = Query(None),
    only_non_zero: bool = Query(True, description="Omit zero deltas"),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        window = resolve_window(service, reference_date, fy)
        report = await service.get_diffs(window, only_non_zero=only_non_zero)
        return create_api_response(
            data=DiffsResponse.from_report(report).model_dump(mode="json"),
            message="Diffs retrieved successfully",
        )
    except Exception as e:
        return error_response(e)


@router.get("/source-audit", summary="Unclassified channel labels and per-channel statistics")
async def get_source_audit(
    reference_date: Optional[str] = Query(None),
    fy: Optional[str] = Query(None),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        window = resolve_window(service, reference_date, fy)
        audit = await service.get_unified_source_audit(window)
        return create_api_response(
            data=SourceAuditResponse.from_audit(audit).model_dump(mode="json"),
            message="Source audit retrieved successfully",
        )
    except Exception as e:
        return error_response(e)


@router.get("/consistency", summary="Assert channel sums equal month totals")
async def get_consistency(
    reference_date: Optional[str] = Query(None),
    fy: Optional[str] = Query(None),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        window = resolve_window(service, reference_date, fy)
        report = await service.assert_consistency(window)
        return create_api_response(
            data=ConsistencyResponse.from_report(report).model_dump(mode="json"),
            message="Channel sums are consistent",
        )
    except Exception as e:
        return error_response(e)


@router.get("/check-month", summary="Every source side by side for one month")
async def check_month(
    m: Optional[str] = Query(None, description="Month as YYYY-MM or YYYY-MM-01"),
    only_diffs: bool = Query(False, description="Only rows where unified differs from the chosen source"),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        month = parse_month_param(m, field="m")
        comparison = await service.get_source_comparison(month, only_diffs=only_diffs)
        return create_api_response(
            data=SourceComparisonResponse.from_comparison(comparison).model_dump(mode="json"),
            message="Month check retrieved successfully",
        )
    except Exception as e:
        return error_response(e)


@router.get("/summary", summary="Month-over-month, YTD and target achievement")
async def get_summary(
    reference_date: Optional[str] = Query(None),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        report = await service.get_summary(resolve_reference_date(reference_date))
        return create_api_response(
            data=SummaryResponse.from_report(report).model_dump(mode="json"),
            message="Summary retrieved successfully",
        )
    except Exception as e:
        return error_response(e)


@router.get("/summary.csv", summary="Summary as CSV")
async def get_summary_csv(
    reference_date: Optional[str] = Query(None),
    service: KpiReconciliationService = Depends(get_reconciliation_service),
):
    try:
        report = await service.get_summary(resolve_reference_date(reference_date))
        summary = report.summary
        return csv_response(
            to_csv(summary_frame(summary)),
            f"kpi_summary_{summary.month.strftime('%Y-%m')}.csv",
        )
    except Exception as e:
        return error_response(e)


@router.get("/health", summary="Database connectivity")
async def health(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
        return create_api_response(data={"database": "ok"}, message="KPI store reachable")
    except Exception as e:
        logger.error("KPI store health check failed: %s", e)
        return error_response(SourceUnavailable("database", str(e)))
