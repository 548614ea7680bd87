"""Fingerprint generation for cached match results.

This module provides functions for:
- Building an order-insensitive signature of a user profile
- Computing the cache key for a (profile, candidate pool, tier) request
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from jobmatch.matching.models import JobCandidate, Tier, UserProfile

# Profile list fields whose order carries no meaning
UNORDERED_PROFILE_FIELDS = ("career_paths", "languages", "roles", "skills", "industries")


def _normalize(value: str) -> str:
    return " ".join(value.split()).casefold()


def profile_signature(profile: UserProfile) -> dict[str, Any]:
    """Return the profile fields that influence matching, in canonical form.

    The tier is excluded (it is hashed separately) and so is the user id,
    so two users with identical preferences share cache entries. Target
    cities keep their declared order because it drives the diversity
    allocation.

    Args:
        profile: The user profile.

    Returns:
        A JSON-serializable dictionary.
    """
    signature: dict[str, Any] = {
        "target_cities": [_normalize(city) for city in profile.target_cities],
        "entry_level_preference": _normalize(profile.entry_level_preference),
        "visa_status": _normalize(profile.visa_status or ""),
        "work_environment": _normalize(profile.work_environment or ""),
    }
    for field_name in UNORDERED_PROFILE_FIELDS:
        values: Iterable[str] = getattr(profile, field_name)
        signature[field_name] = sorted(_normalize(value) for value in values)
    return signature


def compute_fingerprint(
    profile: UserProfile,
    candidates: Iterable[JobCandidate],
    tier: Tier,
    prompt_version: str,
) -> str:
    """Compute the cache fingerprint for a match request.

    Hashes the profile signature, the sorted set of candidate ids, the
    tier and the prompt version. Candidate order does not matter.

    Args:
        profile: The user profile.
        candidates: The candidate pool.
        tier: The tier the request is served under.
        prompt_version: Version tag of the scoring prompt.

    Returns:
        A SHA-256 hex digest.
    """
    payload = {
        "profile": profile_signature(profile),
        "candidate_ids": sorted({candidate.id for candidate in candidates}),
        "tier": getattr(tier, "value", tier),
        "prompt_version": prompt_version,
    }
    source = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(source.encode()).hexdigest()
