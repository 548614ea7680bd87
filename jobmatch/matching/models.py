"""Data models for the matching engine."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MatchAlgorithm = Literal["ai", "rules", "hybrid"]
ScoreOrigin = Literal["ai", "rules"]

MIN_SCORE = 0
MAX_SCORE = 100

_ENTRY_LEVEL_TERMS = {
    "entry",
    "entry-level",
    "entry level",
    "graduate",
    "grad",
    "intern",
    "internship",
    "junior",
    "working student",
}

_SPONSORSHIP_TERMS = (
    "non-eu",
    "non-uk",
    "require sponsorship",
    "requires sponsorship",
    "need sponsorship",
    "needs sponsorship",
    "need_sponsorship",
    "visa-required",
    "visa required",
)
_NO_SPONSORSHIP_TERMS = ("citizen", "permanent", "settled status")


class Tier(str, Enum):
    """Subscription tier of the requesting user."""

    FREE = "free"
    PREMIUM = "premium"


def clamp_score(value: float) -> int:
    """Round and clamp a score into [0, 100]."""
    return int(max(MIN_SCORE, min(MAX_SCORE, round(float(value)))))


def _clean_string_list(value: object) -> tuple[str, ...]:
    """Strip, drop blanks and de-duplicate case-insensitively, keeping order."""
    if value is None:
        return ()
    if isinstance(value, str):
        items: list[object] = value.split(",")
    elif isinstance(value, (list, tuple, set, frozenset)):
        items = list(value)
    else:
        raise ValueError(f"Expected a list of strings, got {type(value).__name__}")

    seen: set[str] = set()
    cleaned: list[str] = []
    for item in items:
        text = str(item).strip()
        key = text.casefold()
        if not text or key in seen:
            continue
        seen.add(key)
        cleaned.append(text)
    return tuple(cleaned)


class JobCandidate(BaseModel):
    """A job posting supplied by the candidate pool provider."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(..., description="Opaque posting identifier, unique per posting")
    title: str = Field(..., description="Job title")
    company: str = Field(default="", description="Hiring company")
    city: str = Field(default="", description="Normalised city name")
    location: str | None = Field(
        default=None, description="Free-text location as published"
    )
    source: str = Field(default="unknown", description="Originating board or platform")
    description: str = Field(default="", description="Posting body")
    posted_at: datetime | None = Field(default=None, description="Publication time")
    is_early_career: bool = Field(
        default=False, description="Posting is flagged as graduate/entry level"
    )
    categories: tuple[str, ...] = Field(
        default=(), description="Category tags from the pool provider"
    )
    visa_friendly: bool | None = Field(
        default=None, description="Whether the posting offers visa sponsorship"
    )

    @field_validator("id", "title", mode="before")
    @classmethod
    def require_text(cls, v: object) -> str:
        """Reject missing or whitespace-only identifiers and titles."""
        if v is None:
            raise ValueError("value is required")
        text = str(v).strip()
        if not text:
            raise ValueError("value must not be blank")
        return text

    @field_validator("company", "city", "description", mode="before")
    @classmethod
    def default_blank(cls, v: object) -> str:
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("source", mode="before")
    @classmethod
    def default_source(cls, v: object) -> str:
        text = str(v).strip() if v is not None else ""
        return text or "unknown"

    @field_validator("categories", mode="before")
    @classmethod
    def clean_categories(cls, v: object) -> tuple[str, ...]:
        return _clean_string_list(v)


class UserProfile(BaseModel):
    """Matching preferences submitted by a user."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    user_id: str | None = Field(
        default=None, description="Stable user key (used for the AI call budget)"
    )
    target_cities: tuple[str, ...] = Field(
        default=(), description="Target cities in the user's declared order"
    )
    career_paths: tuple[str, ...] = Field(
        default=(), description="Career interests, e.g. 'Finance'"
    )
    tier: Tier = Field(default=Tier.FREE, description="Subscription tier")
    visa_status: str | None = Field(default=None, description="Free-text visa status")

    # Enrichment
    entry_level_preference: str = Field(
        default="entry", description="Seniority the user is looking for"
    )
    languages: tuple[str, ...] = Field(default=(), description="Languages spoken")
    roles: tuple[str, ...] = Field(default=(), description="Target role titles")
    skills: tuple[str, ...] = Field(default=(), description="Skills")
    industries: tuple[str, ...] = Field(default=(), description="Preferred industries")
    work_environment: str | None = Field(
        default=None, description="office, hybrid or remote"
    )

    @field_validator(
        "target_cities",
        "career_paths",
        "languages",
        "roles",
        "skills",
        "industries",
        mode="before",
    )
    @classmethod
    def clean_lists(cls, v: object) -> tuple[str, ...]:
        return _clean_string_list(v)

    @field_validator("tier", mode="before")
    @classmethod
    def parse_tier(cls, v: object) -> object:
        """Accept tier names case-insensitively."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @property
    def is_entry_level(self) -> bool:
        return self.entry_level_preference.strip().lower() in _ENTRY_LEVEL_TERMS

    @property
    def needs_visa_sponsorship(self) -> bool:
        """Best-effort reading of the free-text visa status."""
        status = (self.visa_status or "").strip().lower()
        if not status:
            return False
        if any(term in status for term in _SPONSORSHIP_TERMS):
            return True
        if any(term in status for term in _NO_SPONSORSHIP_TERMS):
            return False
        return True

    def problems_for_tier(self, tier: Tier) -> list[str]:
        """Return the fields this profile is missing for the given tier."""
        problems: list[str] = []
        if not self.target_cities:
            problems.append("target_cities must contain at least one city")
        if tier == Tier.PREMIUM and not self.career_paths:
            problems.append("career_paths is required for the premium tier")
        return problems


@dataclass(frozen=True)
class TierPolicy:
    """Sizing and feature switches for one subscription tier."""

    tier: Tier
    result_count: int
    use_ai: bool
    max_candidates_for_ai: int
    fallback_threshold: int
    include_score_breakdown: bool


@dataclass(frozen=True)
class ScoredCandidate:
    """A candidate with the score one of the scorers assigned to it.

    `match_score` is relevance; `confidence_score` is the scorer's
    certainty about that relevance. The two are independent.
    """

    candidate: JobCandidate
    match_score: int
    confidence_score: int
    reason: str
    score_breakdown: dict[str, int] | None = None
    origin: ScoreOrigin = "rules"

    def __post_init__(self) -> None:
        for name in ("match_score", "confidence_score"):
            value = getattr(self, name)
            if not (MIN_SCORE <= value <= MAX_SCORE):
                raise ValueError(f"{name} must be between 0 and 100 (got {value})")
        if self.origin not in {"ai", "rules"}:
            raise ValueError(f"origin must be 'ai' or 'rules' (got {self.origin})")

    @property
    def candidate_id(self) -> str:
        return self.candidate.id

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return {
            "candidate": self.candidate.model_dump(mode="json"),
            "match_score": self.match_score,
            "confidence_score": self.confidence_score,
            "reason": self.reason,
            "score_breakdown": dict(self.score_breakdown)
            if self.score_breakdown is not None
            else None,
            "origin": self.origin,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScoredCandidate:
        """Deserialize from a dictionary."""
        breakdown = data.get("score_breakdown")
        return cls(
            candidate=JobCandidate.model_validate(data["candidate"]),
            match_score=int(data["match_score"]),
            confidence_score=int(data["confidence_score"]),
            reason=str(data.get("reason", "")),
            score_breakdown={str(k): int(v) for k, v in breakdown.items()}
            if isinstance(breakdown, dict)
            else None,
            origin=data.get("origin", "rules"),
        )


@dataclass(frozen=True)
class DiversityAllocation:
    """How many results one target city should contribute."""

    city: str
    target_count: int


@dataclass(frozen=True)
class Provenance:
    """How a match result was produced."""

    algorithm: MatchAlgorithm
    cache_hit: bool = False
    latency_ms: float = 0.0
    cost_units: int = 0
    fallback_reason: str | None = None
    ai_model: str | None = None
    prompt_version: str | None = None
    substitutions: int = 0
    # Slots per target city the rebalancer aimed for; empty when balancing was off
    city_allocations: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.algorithm not in {"ai", "rules", "hybrid"}:
            raise ValueError(
                f"algorithm must be one of: ai, rules, hybrid (got {self.algorithm})"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "algorithm": self.algorithm,
            "cache_hit": self.cache_hit,
            "latency_ms": self.latency_ms,
            "cost_units": self.cost_units,
            "fallback_reason": self.fallback_reason,
            "ai_model": self.ai_model,
            "prompt_version": self.prompt_version,
            "substitutions": self.substitutions,
            "city_allocations": dict(self.city_allocations),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Provenance:
        return cls(
            algorithm=data["algorithm"],
            cache_hit=bool(data.get("cache_hit", False)),
            latency_ms=float(data.get("latency_ms", 0.0)),
            cost_units=int(data.get("cost_units", 0)),
            fallback_reason=data.get("fallback_reason"),
            ai_model=data.get("ai_model"),
            prompt_version=data.get("prompt_version"),
            substitutions=int(data.get("substitutions", 0)),
            city_allocations={
                str(city): int(count)
                for city, count in (data.get("city_allocations") or {}).items()
            },
        )


@dataclass(frozen=True)
class MatchResult:
    """Ranked matches for one request plus their provenance."""

    matches: tuple[ScoredCandidate, ...]
    provenance: Provenance

    def __post_init__(self) -> None:
        ids = [match.candidate_id for match in self.matches]
        if len(ids) != len(set(ids)):
            raise ValueError("MatchResult contains duplicate candidate ids")

    def __len__(self) -> int:
        return len(self.matches)

    @property
    def candidate_ids(self) -> list[str]:
        return [match.candidate_id for match in self.matches]

    def matches_to_json(self) -> str:
        """Canonical JSON for the ranked list (stable across cache round-trips)."""
        return json.dumps(
            [match.to_dict() for match in self.matches],
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=True,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": [match.to_dict() for match in self.matches],
            "provenance": self.provenance.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MatchResult:
        return cls(
            matches=tuple(ScoredCandidate.from_dict(m) for m in data["matches"]),
            provenance=Provenance.from_dict(data["provenance"]),
        )


@dataclass(frozen=True)
class ScoringRequest:
    """A fully rendered request for the external scoring service."""

    system_prompt: str
    prompt: str
    candidates: tuple[JobCandidate, ...]
    requested_matches: int
    include_score_breakdown: bool
    prompt_version: str
    user_key: str | None = None


class ScoringErrorKind(str, Enum):
    """Ways an AI scoring attempt can fail."""

    TIMEOUT = "timeout"
    SERVICE_UNAVAILABLE = "service_unavailable"
    MALFORMED_OUTPUT = "malformed_output"
    BUDGET_EXCEEDED = "budget_exceeded"


@dataclass(frozen=True)
class ScoringError:
    """A recoverable AI scoring failure, returned rather than raised."""

    kind: ScoringErrorKind
    message: str = ""

    @property
    def counts_as_failure(self) -> bool:
        """Budget refusals say nothing about service health."""
        return self.kind != ScoringErrorKind.BUDGET_EXCEEDED


@dataclass(frozen=True)
class ScoringOutcome:
    """Result of one AI scoring attempt: scored candidates or an error."""

    scored: tuple[ScoredCandidate, ...] = ()
    error: ScoringError | None = None
    tokens_used: int = 0
    model: str | None = None
    dropped_entries: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls,
        kind: ScoringErrorKind,
        message: str = "",
        *,
        tokens_used: int = 0,
        model: str | None = None,
    ) -> ScoringOutcome:
        return cls(
            error=ScoringError(kind=kind, message=message),
            tokens_used=tokens_used,
            model=model,
        )


class InputError(ValueError):
    """The request cannot be matched by any scorer."""


class EmptyCandidatePoolError(InputError):
    """The candidate pool contains no postings."""

    def __init__(self, message: str = "Candidate pool is empty") -> None:
        super().__init__(message)


class InvalidProfileError(InputError):
    """The profile is missing fields required for the requested tier."""

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Invalid profile: " + "; ".join(problems))
        self.problems = problems


class AIMatchEntry(BaseModel):
    """One entry of the scoring service's JSON array."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    job_index: int = Field(
        ..., validation_alias=AliasChoices("jobIndex", "job_index")
    )
    match_score: float = Field(
        ..., validation_alias=AliasChoices("matchScore", "match_score")
    )
    confidence_score: float = Field(
        default=50.0,
        validation_alias=AliasChoices("confidenceScore", "confidence_score"),
    )
    match_reason: str = Field(
        default="", validation_alias=AliasChoices("matchReason", "match_reason")
    )
    score_breakdown: dict[str, float] | None = Field(
        default=None,
        validation_alias=AliasChoices("scoreBreakdown", "score_breakdown"),
    )

    @field_validator("match_score", "confidence_score")
    @classmethod
    def require_finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("score must be a finite number")
        return v

    @field_validator("score_breakdown")
    @classmethod
    def drop_non_finite(cls, v: dict[str, float] | None) -> dict[str, float] | None:
        if v is None:
            return None
        return {key: value for key, value in v.items() if math.isfinite(value)}
