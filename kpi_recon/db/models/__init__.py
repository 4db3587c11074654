from .dim_channel import DimChannel
from .sales_actuals import SalesActualMonthly
from .kpi_sales_monthly import KpiSalesMonthlyComputed, KpiSalesMonthlyUnified
from .manual_entries import KpiManualEntry

__all__ = [
    "DimChannel",
    "SalesActualMonthly",
    "KpiSalesMonthlyComputed",
    "KpiSalesMonthlyUnified",
    "KpiManualEntry",
]
