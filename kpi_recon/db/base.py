from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

from kpi_recon.config import settings

metadata = MetaData(schema=settings.KPI_SCHEMA)
Base = declarative_base(metadata=metadata)
