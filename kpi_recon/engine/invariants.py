"""
Channel-sum invariant: for every month, the per-channel amounts must add up
to an independently computed month total.
"""
import logging
from datetime import date
from decimal import Decimal
from typing import List, Mapping, Optional, Sequence

from kpi_recon.engine.errors import MonthDiscrepancy, ReconciliationError
from kpi_recon.engine.models import ZERO, Pivot, month_sums

logger = logging.getLogger(__name__)


def channel_sum_discrepancies(
    amounts: Pivot,
    per_month_total: Mapping[date, Decimal],
    months: Optional[Sequence[date]] = None,
    scope: str = "unified",
    tolerance: Decimal = ZERO,
) -> List[MonthDiscrepancy]:
    """Every month whose channel sum differs from its stated total by more than ``tolerance``."""
    sums = month_sums(amounts)
    if months is None:
        months = sorted(set(sums) | set(per_month_total))
    found = []
    for month in months:
        channel_sum = sums.get(month, ZERO)
        stated = per_month_total.get(month, ZERO)
        if abs(channel_sum - stated) > tolerance:
            found.append(
                MonthDiscrepancy(scope=scope, month=month, channel_sum=channel_sum, stated_total=stated)
            )
    return found


def raise_if_inconsistent(discrepancies: Sequence[MonthDiscrepancy]) -> None:
    if discrepancies:
        error = ReconciliationError(discrepancies)
        logger.error(error.message, extra={"discrepancies": [d.to_dict() for d in discrepancies]})
        raise error


def assert_channel_sums(
    amounts: Pivot,
    per_month_total: Mapping[date, Decimal],
    months: Optional[Sequence[date]] = None,
    scope: str = "unified",
    tolerance: Decimal = ZERO,
) -> None:
    """Collect every offending month first, then raise one ReconciliationError."""
    raise_if_inconsistent(
        channel_sum_discrepancies(amounts, per_month_total, months, scope, tolerance)
    )
