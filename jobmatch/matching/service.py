"""Matching orchestrator.

`MatchingService.match` is the only place that decides between AI
scoring and the rule-based fallback. Everything below it returns
values; only `InputError` subclasses reach the caller.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any

from jobmatch.cache.fingerprint import compute_fingerprint
from jobmatch.cache.store import CacheEntry, CacheStore, InMemoryCacheStore
from jobmatch.matching.budget import CallBudget
from jobmatch.matching.config import MatchingConfig, get_matching_config
from jobmatch.matching.diversity import DiversityRebalancer
from jobmatch.matching.llm import ScoringClient
from jobmatch.matching.models import (
    EmptyCandidatePoolError,
    InvalidProfileError,
    JobCandidate,
    MatchAlgorithm,
    MatchResult,
    Provenance,
    ScoredCandidate,
    ScoringErrorKind,
    Tier,
    TierPolicy,
    UserProfile,
)
from jobmatch.matching.policy import parse_tier, policy_for
from jobmatch.matching.prompts import PromptBuilder
from jobmatch.matching.rules import RuleBasedScorer

logger = logging.getLogger(__name__)

FALLBACK_AI_DISABLED = "ai_disabled_for_tier"
FALLBACK_AI_UNAVAILABLE = "ai_unavailable"
FALLBACK_CIRCUIT_OPEN = "circuit_open"
FALLBACK_INSUFFICIENT_MATCHES = "insufficient_ai_matches"

# Results produced after these failures are not cached so the next request retries AI
_TRANSIENT_FALLBACKS = frozenset(
    {
        ScoringErrorKind.TIMEOUT.value,
        ScoringErrorKind.SERVICE_UNAVAILABLE.value,
        FALLBACK_CIRCUIT_OPEN,
    }
)


class FailureTracker:
    """Consecutive AI failure counts per request class (tier).

    Once a class has failed more than `threshold` times in a row, AI is
    skipped for it until `cooldown_seconds` have passed since the last
    failure; the next attempt after that is a trial.
    """

    def __init__(
        self,
        cooldown_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._failures: dict[str, int] = {}
        self._last_failure: dict[str, float] = {}

    def failures(self, key: str) -> int:
        return self._failures.get(key, 0)

    def is_open(self, key: str, threshold: int) -> bool:
        if self.failures(key) <= threshold:
            return False
        elapsed = self._clock() - self._last_failure.get(key, 0.0)
        return elapsed < self.cooldown_seconds

    def record_failure(self, key: str) -> None:
        self._failures[key] = self.failures(key) + 1
        self._last_failure[key] = self._clock()

    def record_success(self, key: str) -> None:
        self._failures.pop(key, None)
        self._last_failure.pop(key, None)


class MatchingService:
    """Produces ranked, diversified matches for one user at a time."""

    def __init__(
        self,
        config: MatchingConfig | None = None,
        *,
        cache: CacheStore | None = None,
        scoring_client: ScoringClient | None = None,
        scorer: RuleBasedScorer | None = None,
        prompt_builder: PromptBuilder | None = None,
        rebalancer: DiversityRebalancer | None = None,
        failure_tracker: FailureTracker | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or get_matching_config()
        self.cache: CacheStore = cache or InMemoryCacheStore(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )

        self.scoring_client = scoring_client
        if self.scoring_client is None and self.config.ai_enabled:
            self.scoring_client = ScoringClient(
                config=self.config, budget=CallBudget.from_config(self.config)
            )

        self.scorer = scorer or RuleBasedScorer()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.rebalancer = rebalancer or DiversityRebalancer(
            penalty=self.config.source_substitution_penalty
        )
        self.failure_tracker = failure_tracker or FailureTracker(
            cooldown_seconds=self.config.ai_failure_cooldown_seconds, clock=clock
        )
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    async def match(
        self,
        profile: UserProfile,
        candidates: Sequence[JobCandidate | Mapping[str, Any]],
        tier: Tier | str | None = None,
    ) -> MatchResult:
        """Match a profile against a candidate pool.

        Args:
            profile: The requesting user's profile.
            candidates: The candidate pool; raw mappings are validated here.
            tier: Tier to serve the request under (defaults to the profile's).

        Returns:
            At most `result_count` unique matches with provenance.

        Raises:
            EmptyCandidatePoolError: The pool has no candidates.
            InvalidProfileError: The profile lacks fields the tier requires.
        """
        started = self._clock()
        resolved_tier = parse_tier(tier) if tier is not None else profile.tier
        policy = policy_for(resolved_tier)
        pool = self._prepare(profile, candidates, resolved_tier)

        fingerprint = compute_fingerprint(
            profile, pool, resolved_tier, self.prompt_builder.prompt_version
        )

        cached = await self._cache_get(fingerprint)
        if cached is not None:
            return self._from_cache(cached, started)

        async with self._fingerprint_lock(fingerprint):
            # Another request may have filled the entry while we waited
            cached = await self._cache_get(fingerprint)
            if cached is not None:
                return self._from_cache(cached, started)

            result = await self._score(profile, pool, policy, started)
            if result.provenance.fallback_reason in _TRANSIENT_FALLBACKS:
                logger.debug("Not caching result produced after a transient AI failure")
            else:
                await self._cache_put(fingerprint, result)

        return result

    def _prepare(
        self,
        profile: UserProfile,
        candidates: Sequence[JobCandidate | Mapping[str, Any]],
        tier: Tier,
    ) -> list[JobCandidate]:
        if not candidates:
            raise EmptyCandidatePoolError()

        problems = profile.problems_for_tier(tier)
        if problems:
            raise InvalidProfileError(problems)

        pool: list[JobCandidate] = []
        seen: set[str] = set()
        duplicates = 0
        for raw in candidates:
            candidate = (
                raw if isinstance(raw, JobCandidate) else JobCandidate.model_validate(raw)
            )
            if candidate.id in seen:
                duplicates += 1
                continue
            seen.add(candidate.id)
            pool.append(candidate)

        if duplicates:
            logger.warning("Dropped %d candidates with duplicate ids", duplicates)
        return pool

    async def _score(
        self,
        profile: UserProfile,
        pool: list[JobCandidate],
        policy: TierPolicy,
        started: float,
    ) -> MatchResult:
        rule_ranked = self.scorer.rank(profile, pool)
        tier_key = policy.tier.value

        ranked = rule_ranked
        fallback_reason = self._skip_reason(policy)
        tokens_used = 0
        ai_model: str | None = None

        if fallback_reason is None and self.scoring_client is not None:
            request = self.prompt_builder.build(
                profile, [item.candidate for item in rule_ranked], policy
            )
            outcome = await self.scoring_client.score(
                request, timeout_seconds=self.config.ai_timeout_seconds
            )
            tokens_used = outcome.tokens_used
            ai_model = outcome.model
            required = min(policy.fallback_threshold, len(request.candidates))

            if outcome.error is not None:
                fallback_reason = outcome.error.kind.value
                if outcome.error.counts_as_failure:
                    self.failure_tracker.record_failure(tier_key)
                logger.warning(
                    "AI scoring failed (%s): %s; using rule-based matching",
                    fallback_reason,
                    outcome.error.message,
                )
            elif len(outcome.scored) < required:
                fallback_reason = FALLBACK_INSUFFICIENT_MATCHES
                self.failure_tracker.record_failure(tier_key)
                logger.warning(
                    "AI returned %d valid matches (need %d); using rule-based matching",
                    len(outcome.scored),
                    required,
                )
            else:
                self.failure_tracker.record_success(tier_key)
                ranked = self._merge(outcome.scored, rule_ranked)
        elif fallback_reason is not None:
            logger.info("Skipping AI scoring: %s", fallback_reason)

        rebalanced = self.rebalancer.rebalance(
            ranked, policy.result_count, profile.target_cities
        )
        matches = rebalanced.matches
        if not policy.include_score_breakdown:
            matches = tuple(replace(item, score_breakdown=None) for item in matches)

        provenance = Provenance(
            algorithm="rules" if fallback_reason else _algorithm_for(matches),
            cache_hit=False,
            latency_ms=self._elapsed_ms(started),
            cost_units=tokens_used,
            fallback_reason=fallback_reason,
            ai_model=ai_model,
            prompt_version=self.prompt_builder.prompt_version,
            substitutions=rebalanced.substitutions,
            city_allocations={
                allocation.city: allocation.target_count
                for allocation in rebalanced.allocations
            },
        )
        logger.info(
            "Matched %d of %d candidates (tier=%s, algorithm=%s)",
            len(matches),
            len(pool),
            policy.tier.value,
            provenance.algorithm,
        )
        return MatchResult(matches=matches, provenance=provenance)

    def _skip_reason(self, policy: TierPolicy) -> str | None:
        if not policy.use_ai:
            return FALLBACK_AI_DISABLED
        if self.scoring_client is None:
            return FALLBACK_AI_UNAVAILABLE
        if self.failure_tracker.is_open(policy.tier.value, policy.fallback_threshold):
            return FALLBACK_CIRCUIT_OPEN
        return None

    @staticmethod
    def _merge(
        ai_scored: Sequence[ScoredCandidate], rule_ranked: Sequence[ScoredCandidate]
    ) -> list[ScoredCandidate]:
        """AI entries best first, then the remaining candidates in rule order."""
        order = sorted(
            range(len(ai_scored)),
            key=lambda i: (-ai_scored[i].match_score, -ai_scored[i].confidence_score, i),
        )
        merged = [ai_scored[i] for i in order]
        scored_ids = {item.candidate_id for item in merged}
        merged.extend(item for item in rule_ranked if item.candidate_id not in scored_ids)
        return merged

    def _from_cache(self, entry: CacheEntry, started: float) -> MatchResult:
        provenance = replace(
            entry.result.provenance,
            cache_hit=True,
            cost_units=0,
            latency_ms=self._elapsed_ms(started),
        )
        logger.debug("Cache hit for %s", entry.fingerprint[:12])
        return MatchResult(matches=entry.result.matches, provenance=provenance)

    async def _cache_get(self, fingerprint: str) -> CacheEntry | None:
        try:
            return await self.cache.get(fingerprint)
        except Exception as e:
            logger.warning("Cache read failed, treating as miss: %s", e)
            return None

    async def _cache_put(self, fingerprint: str, result: MatchResult) -> None:
        try:
            await self.cache.put(self.cache.new_entry(fingerprint, result))
        except Exception as e:
            logger.warning("Cache write failed, result not cached: %s", e)

    @asynccontextmanager
    async def _fingerprint_lock(self, fingerprint: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(fingerprint, asyncio.Lock())
        self._lock_users[fingerprint] = self._lock_users.get(fingerprint, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[fingerprint] -= 1
            if self._lock_users[fingerprint] == 0:
                del self._lock_users[fingerprint]
                del self._locks[fingerprint]

    def _elapsed_ms(self, started: float) -> float:
        return round((self._clock() - started) * 1000, 3)


def _algorithm_for(matches: Sequence[ScoredCandidate]) -> MatchAlgorithm:
    origins = {item.origin for item in matches}
    if origins == {"ai"}:
        return "ai"
    if "ai" in origins:
        return "hybrid"
    return "rules"
