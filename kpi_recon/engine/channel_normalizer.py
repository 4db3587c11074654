import re
from typing import Any

from kpi_recon.utils.enums.reconciliation import ChannelCode

_WHITESPACE = re.compile(r"\s+")

_CODES = {code.value: code for code in ChannelCode}


def canonical_label(raw_label: Any) -> str:
    """Trim, collapse internal whitespace and uppercase a raw channel label."""
    if raw_label is None:
        return ""
    return _WHITESPACE.sub(" ", str(raw_label).strip()).upper()


def normalize(raw_label: Any) -> ChannelCode:
    """
    Map a free-form channel label onto the closed channel taxonomy.

    Exact match only: anything that is not literally one of the codes after
    canonicalisation (including None and blank labels) becomes OTHER, so
    unexpected upstream values stay visible instead of being misfiled.
    """
    return _CODES.get(canonical_label(raw_label), ChannelCode.OTHER)


def is_classified(raw_label: Any) -> bool:
    return normalize(raw_label) is not ChannelCode.OTHER
