"""City and source diversity rebalancing of a ranked match list."""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace

from jobmatch.matching.matchers import city_matches, normalize_city
from jobmatch.matching.models import DiversityAllocation, ScoredCandidate

logger = logging.getLogger(__name__)

DEFAULT_SUBSTITUTION_PENALTY = 5

# Below this size a city-balanced selection is discarded in favour of the top-n
MIN_BALANCED_RESULTS = 3

SUBSTITUTION_NOTE = "substituted for source diversity"


@dataclass(frozen=True)
class RebalanceOutcome:
    """Final ordered list plus what the rebalancer did to produce it."""

    matches: tuple[ScoredCandidate, ...]
    allocations: tuple[DiversityAllocation, ...] = ()
    substitutions: int = 0


def allocate(n: int, cities: Sequence[str]) -> list[DiversityAllocation]:
    """Split `n` slots across cities; the remainder goes to the first cities."""
    if n <= 0 or not cities:
        return []
    per_city, remainder = divmod(n, len(cities))
    return [
        DiversityAllocation(city=city, target_count=per_city + (1 if i < remainder else 0))
        for i, city in enumerate(cities)
    ]


RankKey = Callable[[ScoredCandidate], tuple[bool, int, int]]


def rank_key(ranked: Sequence[ScoredCandidate]) -> RankKey:
    """Ordering for members of `ranked`: AI-scored first, then score, then position.

    AI and rule scores are on different scales, so a rule score never
    outranks an AI score. Within one origin the higher score wins and the
    input position breaks ties.
    """
    position = {item.candidate_id: index for index, item in enumerate(ranked)}

    def key(item: ScoredCandidate) -> tuple[bool, int, int]:
        return (item.origin != "ai", -item.match_score, position[item.candidate_id])

    return key


class DiversityRebalancer:
    """Best-effort city and source balancing. Never raises."""

    def __init__(self, penalty: int = DEFAULT_SUBSTITUTION_PENALTY) -> None:
        if penalty < 0:
            raise ValueError("penalty must be non-negative")
        self.penalty = penalty

    def rebalance(
        self,
        ranked: Sequence[ScoredCandidate],
        n: int,
        target_cities: Sequence[str],
    ) -> RebalanceOutcome:
        ranked = self._unique(ranked)
        if n <= 0:
            return RebalanceOutcome(matches=())

        key = rank_key(ranked)
        top_n = ranked[:n]
        if len(target_cities) < 2 or n < MIN_BALANCED_RESULTS:
            # City balancing is off, the source cap still applies
            result, substitutions = self._enforce_source_cap(list(top_n), ranked, n, key)
            return RebalanceOutcome(matches=tuple(result), substitutions=substitutions)

        allocations = allocate(n, target_cities)
        selected = self._select_by_city(ranked, allocations, key)

        if len(selected) >= MIN_BALANCED_RESULTS:
            chosen = {item.candidate_id for item in selected}
            for item in ranked:
                if len(selected) >= n:
                    break
                if item.candidate_id not in chosen:
                    selected.append(item)
                    chosen.add(item.candidate_id)
            result = sorted(selected[:n], key=key)
        else:
            logger.debug(
                "City rebalance produced %d results; keeping the top %d", len(selected), n
            )
            result = list(top_n)

        result, substitutions = self._enforce_source_cap(result, ranked, n, key)
        return RebalanceOutcome(
            matches=tuple(result),
            allocations=tuple(allocations),
            substitutions=substitutions,
        )

    @staticmethod
    def _unique(ranked: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
        seen: set[str] = set()
        unique: list[ScoredCandidate] = []
        for item in ranked:
            if item.candidate_id in seen:
                continue
            seen.add(item.candidate_id)
            unique.append(item)
        return unique

    @staticmethod
    def _select_by_city(
        ranked: Sequence[ScoredCandidate],
        allocations: Sequence[DiversityAllocation],
        key: RankKey,
    ) -> list[ScoredCandidate]:
        best_first = sorted(ranked, key=key)
        selected: list[ScoredCandidate] = []
        chosen: set[str] = set()
        for allocation in allocations:
            taken = 0
            for item in best_first:
                if taken >= allocation.target_count:
                    break
                if item.candidate_id in chosen:
                    continue
                if city_matches(item.candidate, allocation.city):
                    selected.append(item)
                    chosen.add(item.candidate_id)
                    taken += 1
        return selected

    def _enforce_source_cap(
        self,
        result: list[ScoredCandidate],
        ranked: Sequence[ScoredCandidate],
        n: int,
        key: RankKey,
    ) -> tuple[list[ScoredCandidate], int]:
        cap = math.ceil(n / 2)
        counts = Counter(item.candidate.source for item in result)
        if not counts:
            return result, 0

        dominant, count = counts.most_common(1)[0]
        if count <= cap:
            return result, 0

        chosen = {item.candidate_id for item in result}
        pool = [
            item
            for item in sorted(ranked, key=key)
            if item.candidate_id not in chosen and item.candidate.source != dominant
        ]
        # Lowest-ranked members of the dominant source go first
        excess = sorted(
            (item for item in result if item.candidate.source == dominant),
            key=key,
            reverse=True,
        )[: count - cap]

        substitutions = 0
        for victim in excess:
            replacement = self._pick_replacement(victim, pool, counts, cap)
            if replacement is None:
                logger.info(
                    "No alternative source for %s; accepting %d results from %s",
                    victim.candidate_id,
                    counts[dominant],
                    dominant,
                )
                break
            pool.remove(replacement)
            counts[dominant] -= 1
            counts[replacement.candidate.source] += 1
            result[result.index(victim)] = self._penalize(replacement)
            substitutions += 1

        return sorted(result, key=key), substitutions

    @staticmethod
    def _pick_replacement(
        victim: ScoredCandidate,
        pool: Sequence[ScoredCandidate],
        counts: Counter[str],
        cap: int,
    ) -> ScoredCandidate | None:
        eligible = [item for item in pool if counts[item.candidate.source] < cap]
        if not eligible:
            return None
        victim_city = normalize_city(victim.candidate.city)
        if victim_city:
            for item in eligible:
                if normalize_city(item.candidate.city) == victim_city:
                    return item
        return eligible[0]

    def _penalize(self, item: ScoredCandidate) -> ScoredCandidate:
        reason = f"{item.reason} ({SUBSTITUTION_NOTE})" if item.reason else SUBSTITUTION_NOTE
        return replace(
            item,
            match_score=max(0, item.match_score - self.penalty),
            reason=reason,
        )
