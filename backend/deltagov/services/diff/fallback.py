"""
Size-based fallback policy.

Inputs above the configured byte limit are not run through Myers. The caller
gets an approximate delta instead: counts estimated from a multiset
comparison of tokens, no hunks, and ``is_approximate=True``.
"""

from __future__ import annotations

from collections import Counter
from enum import StrEnum

from deltagov.services.diff.models import DeltaResult, Granularity


class FallbackDecision(StrEnum):
    RUN_REAL = "run_real"
    RUN_PLACEHOLDER = "run_placeholder"


def decide(size_a: int, size_b: int, limit: int) -> FallbackDecision:
    """Return RUN_PLACEHOLDER when either input is larger than ``limit`` bytes."""
    if size_a > limit or size_b > limit:
        return FallbackDecision.RUN_PLACEHOLDER
    return FallbackDecision.RUN_REAL


def build_placeholder(
    from_version: str,
    to_version: str,
    tokens_a: list[str],
    tokens_b: list[str],
    granularity: Granularity,
) -> DeltaResult:
    """
    Build an approximate delta without computing an edit script.

    Tokens present in both versions count as unchanged regardless of their
    position, so the estimate is a lower bound on the real edit distance.
    """
    counter_a = Counter(tokens_a)
    counter_b = Counter(tokens_b)
    unchanged = sum((counter_a & counter_b).values())
    return DeltaResult(
        from_version=from_version,
        to_version=to_version,
        granularity=granularity,
        insertions=len(tokens_b) - unchanged,
        deletions=len(tokens_a) - unchanged,
        unchanged=unchanged,
        hunks=(),
        is_approximate=True,
    )
