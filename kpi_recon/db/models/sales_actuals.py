from sqlalchemy import Column, BigInteger, Date, Numeric, ForeignKey, TIMESTAMP, func
from kpi_recon.db.base import Base


class SalesActualMonthly(Base):
    __tablename__ = "sales_actuals_monthly"

    id = Column(BigInteger, primary_key=True)
    channel_id = Column(BigInteger, ForeignKey("dim_channel.channel_id"), nullable=True)
    fiscal_month = Column(Date, nullable=False)
    actual_amount_yen = Column(Numeric(18, 0), nullable=True)
    created_at = Column(TIMESTAMP, server_default=func.now(), nullable=True)
