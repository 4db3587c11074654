import pytest
from decimal import Decimal

from kpi_recon.engine.rows import TargetRow
from kpi_recon.utils.enums.reconciliation import SourceId

from tests.fakes import FakeStore, cm, month


@pytest.fixture
def fy26_store() -> FakeStore:
    """Two months of FY26 data where every source agrees except where noted."""
    return FakeStore(
        channel_months={
            SourceId.ACTUALS: [
                cm("WEB", "2025-09", 100),
                cm(" store ", "2025-09", 40),
            ],
            SourceId.COMPUTED: [
                cm("WEB", "2025-09", 90),
                cm("WHOLESALE", "2025-09", 70),
                cm("WEB", "2025-10", 120),
                cm("Pop-up", "2025-10", 5),
            ],
            SourceId.UNIFIED: [
                cm("WEB", "2025-09", 100),
                cm("STORE", "2025-09", 40),
                cm("WHOLESALE", "2025-09", 65),
                cm("WEB", "2025-10", 120),
                cm("Pop-up", "2025-10", 5),
            ],
        },
        legacy={
            SourceId.FINAL: [
                {"fiscal_month": "2025-09-01", "channel_code": "WHOLESALE", "actual_amount_yen": 70},
                {"fiscal_month": None, "fiscal_ym": "2025-10", "channel": "web", "amount": "118"},
            ],
            SourceId.OEM: [
                {"sale_date": "2025-09-17", "amount_yen": 30},
            ],
        },
        targets=[
            TargetRow(raw_label="WEB", month=month("2025-10"), amount=Decimal(150)),
        ],
    )
