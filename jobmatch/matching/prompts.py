"""Prompt construction for AI match scoring."""

from __future__ import annotations

import json
import re
from collections.abc import Sequence

from jobmatch.matching.models import JobCandidate, ScoringRequest, TierPolicy, UserProfile

PROMPT_VERSION = "match-v1"

BREAKDOWN_DIMENSIONS = ("career", "location", "seniority", "skills")

# Description excerpt length per candidate, by whether breakdowns are requested
PREMIUM_EXCERPT_CHARS = 300
FREE_EXCERPT_CHARS = 150

# Ask for more matches than will be shown so the rebalancer has room to work
OVERSAMPLE_FACTOR = 3

SCORING_SYSTEM_PROMPT = """You are a professional career advisor scoring job postings for one candidate.

You must follow these rules:
- Every claim must be tied to the candidate profile or the posting text. No hype, no interview predictions.
- Refer to postings ONLY by their numeric index from the list. Never by title.
- Output MUST be valid JSON only (no markdown), matching the required schema.
"""


def _excerpt(text: str, limit: int) -> str:
    flattened = re.sub(r"\s+", " ", text).strip()
    if len(flattened) <= limit:
        return flattened
    return flattened[:limit].rstrip() + "..."


def _join(values: Sequence[str], default: str = "Not specified") -> str:
    return ", ".join(values) if values else default


class PromptBuilder:
    """Renders a `ScoringRequest` for any tier from a `TierPolicy`.

    The output depends only on its inputs, so identical requests render
    byte-identical prompts.
    """

    def __init__(self, *, prompt_version: str = PROMPT_VERSION) -> None:
        self.prompt_version = prompt_version

    def build(
        self,
        profile: UserProfile,
        candidates: Sequence[JobCandidate],
        policy: TierPolicy,
    ) -> ScoringRequest:
        window = tuple(candidates[: policy.max_candidates_for_ai])
        requested = min(len(window), policy.result_count * OVERSAMPLE_FACTOR)

        prompt = "\n".join(
            [
                *self._profile_section(profile),
                "",
                *self._candidate_section(window, policy),
                "",
                *self._scoring_section(profile, policy),
                "",
                *self._output_section(window, requested, policy),
            ]
        )

        return ScoringRequest(
            system_prompt=SCORING_SYSTEM_PROMPT,
            prompt=prompt,
            candidates=window,
            requested_matches=requested,
            include_score_breakdown=policy.include_score_breakdown,
            prompt_version=self.prompt_version,
            user_key=profile.user_id,
        )

    def _profile_section(self, profile: UserProfile) -> list[str]:
        lines = [
            "### CANDIDATE PROFILE",
            f"- Experience level: {profile.entry_level_preference}",
            f"- Career paths: {_join(profile.career_paths)}",
            f"- Target cities (in order of preference): {_join(profile.target_cities)}",
        ]
        if profile.roles:
            lines.append(f"- Target roles: {_join(profile.roles)}")
        if profile.skills:
            lines.append(f"- Skills: {_join(profile.skills)}")
        if profile.industries:
            lines.append(f"- Preferred industries: {_join(profile.industries)}")
        if profile.languages:
            lines.append(f"- Languages: {_join(profile.languages)}")
        if profile.work_environment:
            lines.append(f"- Work environment: {profile.work_environment}")
        if profile.needs_visa_sponsorship:
            lines.append("- Visa status: requires sponsorship")
        return lines

    def _candidate_section(
        self, window: Sequence[JobCandidate], policy: TierPolicy
    ) -> list[str]:
        limit = PREMIUM_EXCERPT_CHARS if policy.include_score_breakdown else FREE_EXCERPT_CHARS
        lines = [f"### JOBS ({len(window)} total, indexed from 0)"]
        for index, candidate in enumerate(window):
            city = candidate.city or candidate.location or "Unknown location"
            lines.append(
                f"[{index}] {candidate.title} @ {candidate.company or 'Unknown company'}"
                f" | {city} | source: {candidate.source}"
            )
            if candidate.is_early_career:
                lines.append("    early-career: yes")
            if candidate.visa_friendly is not None:
                lines.append(
                    f"    visa sponsorship: {'yes' if candidate.visa_friendly else 'no'}"
                )
            if candidate.description:
                lines.append(f"    {_excerpt(candidate.description, limit)}")
        return lines

    def _scoring_section(self, profile: UserProfile, policy: TierPolicy) -> list[str]:
        lines = [
            "### SCORING",
            "- matchScore 90-100: direct hit on career path, city and level.",
            "- matchScore 70-89: right city and role with minor gaps.",
            "- matchScore 50-69: acceptable but with notable gaps.",
            "- matchScore below 50: poor fit; only include if nothing better exists.",
            "- Senior-only roles are a poor fit for entry-level candidates.",
            "- confidenceScore reflects how certain you are, not how good the job is.",
        ]
        if profile.needs_visa_sponsorship:
            lines.append("- Penalise postings that clearly exclude visa sponsorship.")
        if policy.include_score_breakdown:
            lines.append(
                "- Give a scoreBreakdown with 0-100 scores for: "
                + ", ".join(BREAKDOWN_DIMENSIONS)
                + "."
            )
            lines.append("- matchReason: 2-3 sentences citing specific evidence.")
        else:
            lines.append("- matchReason: one concise sentence citing specific evidence.")
        return lines

    def _output_section(
        self,
        window: Sequence[JobCandidate],
        requested: int,
        policy: TierPolicy,
    ) -> list[str]:
        example: dict[str, object] = {
            "jobIndex": 0,
            "matchScore": 85,
            "confidenceScore": 70,
            "matchReason": "Evidence-based reason.",
        }
        if policy.include_score_breakdown:
            example["scoreBreakdown"] = {dim: 80 for dim in BREAKDOWN_DIMENSIONS}

        last_index = max(len(window) - 1, 0)
        lines = [
            "### OUTPUT FORMAT",
            f"Return ONLY a JSON array of up to {requested} objects, best match first:",
            json.dumps([example], ensure_ascii=True),
            "Requirements:",
            f"- jobIndex: integer from 0 to {last_index}, taken from the list above.",
            "- Each jobIndex may appear at most once.",
            "- matchScore and confidenceScore: integers from 0 to 100.",
        ]
        if not policy.include_score_breakdown:
            lines.append("- Do not include scoreBreakdown.")
        return lines
