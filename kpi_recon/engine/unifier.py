"""
Precedence resolution of several per-source pivots into one unified view.
"""
import logging
from collections import Counter
from datetime import date
from types import MappingProxyType
from typing import Dict, Mapping, Sequence, Tuple

from kpi_recon.engine.models import (
    ZERO,
    Pivot,
    PivotKey,
    SourcePivot,
    UnifiedFact,
    freeze_pivot,
    pivot_sort_key,
)
from kpi_recon.utils.enums.reconciliation import (
    CHANNEL_ORDER,
    NO_PROVENANCE,
    SourceId,
)

logger = logging.getLogger(__name__)

UnifiedView = Mapping[PivotKey, UnifiedFact]


def resolve(
    sources_by_priority: Sequence[Tuple[SourceId, Pivot]],
    months: Sequence[date],
) -> UnifiedView:
    """
    Resolve one amount per (month, channel) over the full months x channels grid.

    The first source in priority order holding an entry for a key wins and
    becomes the fact's provenance; keys no source holds resolve to 0 with
    provenance "none". Output order is fixed by the grid, not by the inputs.
    """
    grid = sorted(
        {(month, channel) for month in months for channel in CHANNEL_ORDER},
        key=pivot_sort_key,
    )
    resolved: Dict[PivotKey, UnifiedFact] = {}
    for key in grid:
        month, channel = key
        fact = UnifiedFact(month=month, channel=channel, amount=ZERO, provenance=NO_PROVENANCE)
        for source, pivot in sources_by_priority:
            amount = pivot.get(key)
            if amount is not None:
                fact = UnifiedFact(month=month, channel=channel, amount=amount, provenance=source)
                break
        resolved[key] = fact
    return MappingProxyType(resolved)


def unified_amounts(unified: UnifiedView) -> Pivot:
    return freeze_pivot({key: fact.amount for key, fact in unified.items() if fact.amount != 0})


class PrecedenceResolver:
    """Applies a configured, explicit source priority to aggregated source pivots."""

    def __init__(self, priority: Sequence[SourceId]):
        priority = tuple(SourceId(p) for p in priority)
        if not priority:
            raise ValueError("Source priority must name at least one source")
        if len(set(priority)) != len(priority):
            raise ValueError(f"Source priority contains duplicates: {priority}")
        if SourceId.UNIFIED in priority:
            raise ValueError("The stored unified table is reconciled against, never ranked")
        self.priority = priority

    def order(self, pivots: Mapping[SourceId, SourcePivot]) -> Tuple[SourcePivot, ...]:
        missing = [s.value for s in self.priority if s not in pivots]
        if missing:
            raise ValueError(f"Missing source pivots for priority chain: {missing}")
        return tuple(pivots[source] for source in self.priority)

    def resolve(self, pivots: Mapping[SourceId, SourcePivot], months: Sequence[date]) -> UnifiedView:
        chain = self.order(pivots)
        unified = resolve([(p.source, p.amounts) for p in chain], months)
        counts = Counter(
            fact.provenance.value if isinstance(fact.provenance, SourceId) else fact.provenance
            for fact in unified.values()
        )
        logger.info("Resolved %s unified facts by provenance: %s", len(unified), dict(sorted(counts.items())))
        return unified
