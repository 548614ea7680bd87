"""Deterministic rule-based scoring.

This scorer needs no network and never fails, so it is the guaranteed
fallback when AI scoring is skipped or unusable. It is also used to
pre-rank the pool before the AI window is cut.
"""

from __future__ import annotations

from collections.abc import Sequence

from jobmatch.matching.matchers import is_senior_only, matching_career_paths, matching_city
from jobmatch.matching.models import (
    JobCandidate,
    ScoredCandidate,
    UserProfile,
    clamp_score,
)

BASE_SCORE = 50
CAREER_MATCH_BONUS = 30
CAREER_MISMATCH_PENALTY = -20
SENIORITY_CONFLICT_PENALTY = -30
CITY_MATCH_BONUS = 10
CITY_MISMATCH_PENALTY = -10

BASE_CONFIDENCE = 50
EARLY_CAREER_CONFIDENCE = 20
CITY_CONFIDENCE = 15
CAREER_CONFIDENCE = 15


class RuleBasedScorer:
    """Keyword and location heuristics producing 0-100 scores."""

    def score(
        self, profile: UserProfile, candidates: Sequence[JobCandidate]
    ) -> list[ScoredCandidate]:
        """Score every candidate, preserving input order."""
        return [self._score_one(profile, candidate) for candidate in candidates]

    def rank(
        self, profile: UserProfile, candidates: Sequence[JobCandidate]
    ) -> list[ScoredCandidate]:
        """Score every candidate and sort best first.

        Ties are broken by confidence, then by position in the input.
        """
        scored = self.score(profile, candidates)
        order = sorted(
            range(len(scored)),
            key=lambda i: (-scored[i].match_score, -scored[i].confidence_score, i),
        )
        return [scored[i] for i in order]

    def _score_one(self, profile: UserProfile, candidate: JobCandidate) -> ScoredCandidate:
        breakdown: dict[str, int] = {"base": BASE_SCORE}
        reasons: list[str] = []
        confidence = BASE_CONFIDENCE

        if profile.career_paths:
            matched_paths = matching_career_paths(profile.career_paths, candidate)
            if matched_paths:
                breakdown["career"] = CAREER_MATCH_BONUS
                confidence += CAREER_CONFIDENCE
                reasons.append(f"Career path alignment ({', '.join(matched_paths)})")
            else:
                breakdown["career"] = CAREER_MISMATCH_PENALTY

        if profile.is_entry_level and is_senior_only(candidate):
            breakdown["seniority"] = SENIORITY_CONFLICT_PENALTY
            reasons.append("Senior role for an entry-level search")

        if profile.target_cities:
            city = matching_city(candidate, profile.target_cities)
            if city is not None:
                breakdown["location"] = CITY_MATCH_BONUS
                confidence += CITY_CONFIDENCE
                reasons.append(f"Great location match ({city})")
            else:
                breakdown["location"] = CITY_MISMATCH_PENALTY

        if candidate.is_early_career:
            confidence += EARLY_CAREER_CONFIDENCE
            reasons.append("Perfect for early career")

        return ScoredCandidate(
            candidate=candidate,
            match_score=clamp_score(sum(breakdown.values())),
            confidence_score=clamp_score(confidence),
            reason=", ".join(reasons) if reasons else "General match",
            score_breakdown=breakdown,
            origin="rules",
        )
