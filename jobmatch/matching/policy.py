"""Per-tier matching policy.

`policy_for` is the single place where result counts, AI candidate windows
and fallback thresholds are decided. Other components receive a
`TierPolicy` and never re-derive these numbers.
"""

from __future__ import annotations

from jobmatch.matching.models import Tier, TierPolicy

_POLICIES: dict[Tier, TierPolicy] = {
    Tier.FREE: TierPolicy(
        tier=Tier.FREE,
        result_count=5,
        use_ai=True,
        max_candidates_for_ai=50,
        fallback_threshold=3,
        include_score_breakdown=False,
    ),
    Tier.PREMIUM: TierPolicy(
        tier=Tier.PREMIUM,
        result_count=10,
        use_ai=True,
        max_candidates_for_ai=100,
        fallback_threshold=3,
        include_score_breakdown=True,
    ),
}


def parse_tier(value: Tier | str) -> Tier:
    """Convert a tier name to `Tier`, case-insensitively."""
    if isinstance(value, Tier):
        return value
    normalized = str(value).strip().lower()
    for tier in Tier:
        if tier.value == normalized:
            return tier
    raise ValueError(f"Unknown tier: {value!r}. Must be one of: free, premium")


def policy_for(tier: Tier | str) -> TierPolicy:
    """Return the matching policy for a subscription tier."""
    return _POLICIES[parse_tier(tier)]
