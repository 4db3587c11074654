"""
Row shapes returned by the storage collaborator, one variant per source schema.

Aggregators convert these into ``MonthlyFact`` at their boundary; nothing
downstream of an aggregator sees a source-specific row.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Optional, Union


@dataclass(frozen=True)
class ChannelMonthRow:
    """Pre-grouped (raw channel label, month) amount from a regular source."""

    raw_label: Optional[str]
    month: date
    amount: Optional[Decimal]


@dataclass(frozen=True)
class LegacyRow:
    """A legacy-table row exposed as a plain mapping of whatever columns exist."""

    payload: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class MonthTotalRow:
    month: date
    amount: Optional[Decimal]


@dataclass(frozen=True)
class TargetRow:
    raw_label: Optional[str]
    month: date
    amount: Optional[Decimal]


SourceRow = Union[ChannelMonthRow, LegacyRow]
