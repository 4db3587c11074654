from sqlalchemy import Column, BigInteger, String, Date, Numeric
from kpi_recon.db.base import Base


class KpiSalesMonthlyComputed(Base):
    __tablename__ = "kpi_sales_monthly_computed_v2"

    id = Column(BigInteger, primary_key=True)
    channel_code = Column(String(64), nullable=True)
    fiscal_month = Column(Date, nullable=False)
    actual_amount_yen = Column(Numeric(18, 0), nullable=True)


class KpiSalesMonthlyUnified(Base):
    # Materialised view in production; keyed by (channel_code, month)
    __tablename__ = "kpi_sales_monthly_unified_v1"

    channel_code = Column(String(64), primary_key=True)
    month = Column(Date, primary_key=True)
    amount = Column(Numeric(18, 0), nullable=True)
