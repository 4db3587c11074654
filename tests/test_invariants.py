from datetime import date
from decimal import Decimal

import pytest

from kpi_recon.engine.errors import ReconciliationError
from kpi_recon.engine.invariants import assert_channel_sums, channel_sum_discrepancies
from kpi_recon.utils.enums.reconciliation import ChannelCode

SEP = date(2025, 9, 1)
OCT = date(2025, 10, 1)

UNIFIED = {
    (SEP, ChannelCode.WEB): Decimal(100),
    (SEP, ChannelCode.STORE): Decimal(50),
}


def test_matching_totals_pass():
    assert_channel_sums(UNIFIED, {SEP: Decimal(150)})


def test_mismatch_names_month_and_signed_discrepancy():
    with pytest.raises(ReconciliationError) as exc:
        assert_channel_sums(UNIFIED, {SEP: Decimal(200)})

    (detail,) = exc.value.details
    assert detail.month == SEP
    assert detail.discrepancy == Decimal(-50)
    assert exc.value.to_dict()["details"][0]["discrepancy"] == "-50"


def test_all_offending_months_reported_at_once():
    with pytest.raises(ReconciliationError) as exc:
        assert_channel_sums(UNIFIED, {SEP: Decimal(140), OCT: Decimal(5)}, months=[SEP, OCT])

    assert [(d.month, d.discrepancy) for d in exc.value.details] == [
        (SEP, Decimal(10)),
        (OCT, Decimal(-5)),
    ]


def test_tolerance():
    assert channel_sum_discrepancies(UNIFIED, {SEP: Decimal(151)}, tolerance=Decimal(1)) == []


def test_scope_is_carried():
    (detail,) = channel_sum_discrepancies(UNIFIED, {SEP: Decimal(0)}, scope="actuals")
    assert detail.scope == "actuals"
