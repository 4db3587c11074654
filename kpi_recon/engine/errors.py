"""
Typed errors raised by the KPI reconciliation engine.

Every error carries a machine-readable ``code`` and renders itself through
``to_dict()`` so routers can put it straight into a response body.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Iterable, Tuple


class KpiReconError(Exception):
    code = "kpi_recon_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class InputError(KpiReconError):
    """Malformed month/window parameter; raised before any source is queried."""

    code = "invalid_input"

    def __init__(self, field: str, value: Any, reason: str = "invalid value"):
        super().__init__(f"Invalid {field} parameter {value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"field": self.field, "value": str(self.value), "reason": self.reason})
        return data


class SourceUnavailable(KpiReconError):
    """A source query failed or timed out; the whole run is aborted."""

    code = "source_unavailable"

    def __init__(self, source: str, reason: str):
        super().__init__(f"Source '{source}' unavailable: {reason}")
        self.source = source
        self.reason = reason

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"source": self.source, "reason": self.reason})
        return data


@dataclass(frozen=True)
class MonthDiscrepancy:
    scope: str
    month: date
    channel_sum: Decimal
    stated_total: Decimal

    @property
    def discrepancy(self) -> Decimal:
        return self.channel_sum - self.stated_total

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope,
            "month": self.month.isoformat(),
            "channel_sum": str(self.channel_sum),
            "stated_total": str(self.stated_total),
            "discrepancy": str(self.discrepancy),
        }


class ReconciliationError(KpiReconError):
    """Channel sums disagree with the independently computed month totals."""

    code = "reconciliation_failed"

    def __init__(self, details: Iterable[MonthDiscrepancy]):
        self.details: Tuple[MonthDiscrepancy, ...] = tuple(details)
        months = ", ".join(
            f"{d.scope}:{d.month.isoformat()}({d.discrepancy:+})" for d in self.details
        )
        super().__init__(f"Channel sums do not match month totals for {months}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["details"] = [d.to_dict() for d in self.details]
        return data
