"""Job matching and selection engine.

This module ranks a pool of job postings for one user: AI scoring when
it is available and usable, deterministic rule-based scoring otherwise,
followed by city and source diversity rebalancing and result caching.

Public API:
    - MatchingService: Main matching orchestrator
    - BatchMatcher: Bounded-concurrency matching for many users
    - ProfileService: Load profiles and candidate pools
    - JobCandidate / UserProfile: Input models
    - MatchResult / ScoredCandidate / Provenance: Output models
    - MatchingConfig: Configuration settings
"""

from jobmatch.matching.batch import BatchMatcher, BatchRequest, BatchResult
from jobmatch.matching.config import (
    MatchingConfig,
    get_matching_config,
    reset_matching_config,
)
from jobmatch.matching.models import (
    EmptyCandidatePoolError,
    InputError,
    InvalidProfileError,
    JobCandidate,
    MatchResult,
    Provenance,
    ScoredCandidate,
    Tier,
    TierPolicy,
    UserProfile,
)
from jobmatch.matching.policy import policy_for
from jobmatch.matching.profile import ProfileService
from jobmatch.matching.service import MatchingService

__all__ = [
    "MatchingService",
    "BatchMatcher",
    "BatchRequest",
    "BatchResult",
    "ProfileService",
    "JobCandidate",
    "UserProfile",
    "Tier",
    "TierPolicy",
    "policy_for",
    "ScoredCandidate",
    "Provenance",
    "MatchResult",
    "InputError",
    "EmptyCandidatePoolError",
    "InvalidProfileError",
    "MatchingConfig",
    "get_matching_config",
    "reset_matching_config",
]
