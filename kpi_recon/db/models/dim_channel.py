from sqlalchemy import Column, BigInteger, String, Boolean
from kpi_recon.db.base import Base


class DimChannel(Base):
    __tablename__ = "dim_channel"

    channel_id = Column(BigInteger, primary_key=True)
    channel_code = Column(String(64), nullable=True)
    channel_name = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=True)
