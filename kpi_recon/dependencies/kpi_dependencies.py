# kpi_recon/dependencies/kpi_dependencies.py
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from kpi_recon.config import settings
from kpi_recon.db.repositories.kpi_source_repository import KpiSourceRepository
from kpi_recon.db.session import AsyncSessionLocal
from kpi_recon.engine.errors import InputError
from kpi_recon.engine.fiscal import FiscalWindow, parse_reference_date, window_for_fiscal_year
from kpi_recon.services.kpi_reconciliation_service import KpiReconciliationService


def get_reconciliation_service() -> KpiReconciliationService:
    """
    A fresh service per request, wired to a repository that opens its own
    sessions. Override this dependency in tests to inject a fake store.
    """
    return KpiReconciliationService(KpiSourceRepository(AsyncSessionLocal))


def report_today() -> date:
    """Today's date in the reporting timezone; only the HTTP boundary reads the clock."""
    return datetime.now(ZoneInfo(settings.REPORT_TIMEZONE)).date()


def resolve_reference_date(reference_date: Optional[str]) -> date:
    if reference_date is None or not reference_date.strip():
        return report_today()
    return parse_reference_date(reference_date)


def resolve_window(
    service: KpiReconciliationService,
    reference_date: Optional[str] = None,
    fy: Optional[str] = None,
) -> FiscalWindow:
    """
    Window from an explicit fiscal start year (``fy=2025``) or from a
    reference date; with neither, the fiscal year containing today.
    """
    if fy is not None and fy.strip():
        if reference_date:
            raise InputError("fy", fy, "pass either fy or reference_date, not both")
        if not fy.strip().isdigit():
            raise InputError("fy", fy, "expected a four digit fiscal start year")
        return window_for_fiscal_year(int(fy), service.fiscal_start_month)
    return service.window_for(resolve_reference_date(reference_date))
