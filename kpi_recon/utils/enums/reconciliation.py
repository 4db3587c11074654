from enum import Enum


class ChannelCode(str, Enum):
    WEB = "WEB"
    WHOLESALE = "WHOLESALE"
    STORE = "STORE"
    SHOKU = "SHOKU"
    OTHER = "OTHER"


class SourceId(str, Enum):
    ACTUALS = "actuals"
    FINAL = "final"
    COMPUTED = "computed"
    UNIFIED = "unified"
    OEM = "oem"


class ReconciliationState(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    INCONSISTENT = "inconsistent"


# Display order for pivots and summaries; OTHER always last.
CHANNEL_ORDER = tuple(ChannelCode)

# Provenance of a unified fact no source could supply.
NO_PROVENANCE = "none"

# Channel slot used by per-month total diff records.
TOTAL_CHANNEL = "TOTAL"

DEFAULT_SOURCE_PRIORITY = (SourceId.ACTUALS, SourceId.FINAL, SourceId.COMPUTED)


def channel_rank(channel) -> int:
    if channel == TOTAL_CHANNEL:
        return len(CHANNEL_ORDER)
    return CHANNEL_ORDER.index(ChannelCode(channel))
