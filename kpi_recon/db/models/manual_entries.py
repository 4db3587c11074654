from sqlalchemy import Column, BigInteger, String, Date, Numeric, TIMESTAMP, func
from kpi_recon.db.base import Base


class KpiManualEntry(Base):
    __tablename__ = "kpi_manual_entries_v1"

    id = Column(BigInteger, primary_key=True)
    metric = Column(String(64), nullable=False)
    channel_code = Column(String(64), nullable=True)
    month = Column(Date, nullable=False)
    amount = Column(Numeric(18, 0), nullable=True)
    updated_at = Column(TIMESTAMP, server_default=func.now(), onupdate=func.now(), nullable=True)
