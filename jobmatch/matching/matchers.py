"""Keyword, seniority and city matching utilities."""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable
from functools import lru_cache

from jobmatch.matching.models import JobCandidate

_CAREER_PATH_ALIASES: dict[str, str] = {
    "finance investment": "finance",
    "investment banking": "finance",
    "banking": "finance",
    "accounting": "finance",
    "fintech": "finance",
    "tech": "technology",
    "tech transformation": "technology",
    "software": "technology",
    "software engineering": "technology",
    "engineering": "technology",
    "data analytics": "data",
    "data science": "data",
    "analytics": "data",
    "marketing growth": "marketing",
    "growth": "marketing",
    "sales client success": "sales",
    "business development": "sales",
    "strategy": "consulting",
    "strategy business design": "consulting",
    "operations supply chain": "operations",
    "supply chain": "operations",
    "logistics": "operations",
    "product innovation": "product",
    "product management": "product",
    "ux": "design",
    "ui": "design",
    "human resources": "hr",
    "people": "hr",
    "sustainability esg": "sustainability",
    "esg": "sustainability",
}

_CAREER_PATH_KEYWORDS: dict[str, set[str]] = {
    "finance": {
        "finance",
        "financial",
        "accounting",
        "accountant",
        "audit",
        "auditor",
        "banking",
        "investment",
        "treasury",
        "tax",
        "actuarial",
        "fintech",
    },
    "technology": {
        "software",
        "developer",
        "engineer",
        "engineering",
        "devops",
        "backend",
        "frontend",
        "full stack",
        "cloud",
        "it support",
    },
    "data": {
        "data",
        "analytics",
        "data analyst",
        "data scientist",
        "machine learning",
        "business intelligence",
        "sql",
    },
    "marketing": {
        "marketing",
        "brand",
        "seo",
        "social media",
        "communications",
    },
    "sales": {
        "sales",
        "account executive",
        "business development",
        "client success",
        "customer success",
    },
    "consulting": {"consulting", "consultant", "strategy", "advisory"},
    "operations": {
        "operations",
        "supply chain",
        "logistics",
        "procurement",
        "project coordinator",
    },
    "product": {"product", "product manager", "product owner"},
    "design": {"design", "designer", "ux", "ui", "user research"},
    "hr": {"hr", "human resources", "recruitment", "recruiter", "talent acquisition"},
    "legal": {"legal", "lawyer", "paralegal", "compliance"},
    "sustainability": {"sustainability", "esg", "climate", "environmental"},
}

_SENIOR_PATTERN = re.compile(
    r"\b(senior|sr\.?|lead|principal|head of|director|vice president|vp|chief|experienced)\b",
    re.IGNORECASE,
)
_EARLY_CAREER_PATTERN = re.compile(
    r"\b(graduate|grad|junior|jr\.?|intern|internship|entry[- ]level|trainee|apprentice|working student)\b",
    re.IGNORECASE,
)


def normalize_text(value: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = stripped.casefold()
    stripped = re.sub(r"\s+", " ", stripped)
    return stripped.strip()


def _canonicalize_career_path(path: str) -> str:
    normalized = normalize_text(re.sub(r"[-_&/,]+", " ", path))
    if normalized in _CAREER_PATH_KEYWORDS:
        return normalized
    alias = _CAREER_PATH_ALIASES.get(normalized)
    if alias is not None:
        return alias
    for token in normalized.split(" "):
        if token in _CAREER_PATH_KEYWORDS:
            return token
        if token in _CAREER_PATH_ALIASES:
            return _CAREER_PATH_ALIASES[token]
    return normalized


@lru_cache(maxsize=256)
def expand_career_keywords(path: str) -> tuple[str, ...]:
    """Return the sorted keyword set a career path is recognised by.

    Known paths (and their aliases) expand to a curated keyword list;
    unknown paths match on their own normalised text.
    """
    canonical = _canonicalize_career_path(path)
    if not canonical:
        return ()
    keywords = set(_CAREER_PATH_KEYWORDS.get(canonical, set()))
    keywords.add(canonical)
    own = normalize_text(path)
    if own:
        keywords.add(own)
    return tuple(sorted(keywords))


@lru_cache(maxsize=1024)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z0-9]){re.escape(keyword)}s?(?![a-z0-9])")


def contains_keyword(text: str, keyword: str) -> bool:
    """Word-bounded, case-insensitive keyword search (allows a plural 's')."""
    if not keyword:
        return False
    return _keyword_pattern(normalize_text(keyword)).search(normalize_text(text)) is not None


def candidate_text(candidate: JobCandidate) -> str:
    """Title, description and categories as one searchable string."""
    parts = [candidate.title, candidate.description, " ".join(candidate.categories)]
    return " ".join(part for part in parts if part)


def matching_career_paths(paths: Iterable[str], candidate: JobCandidate) -> list[str]:
    """Return the career paths whose keywords occur in the candidate text."""
    text = normalize_text(candidate_text(candidate))
    matched: list[str] = []
    for path in paths:
        if any(
            _keyword_pattern(keyword).search(text) is not None
            for keyword in expand_career_keywords(path)
        ):
            matched.append(path)
    return matched


def is_senior_only(candidate: JobCandidate) -> bool:
    """True when the title asks for seniority and nothing marks it early-career."""
    if candidate.is_early_career:
        return False
    if _EARLY_CAREER_PATTERN.search(candidate.title):
        return False
    return _SENIOR_PATTERN.search(candidate.title) is not None


def normalize_city(city: str | None) -> str:
    if not city:
        return ""
    return normalize_text(city)


def city_matches(candidate: JobCandidate, city: str) -> bool:
    """Exact match on the normalised city field, else substring of the location."""
    target = normalize_city(city)
    if not target:
        return False
    if normalize_city(candidate.city) == target:
        return True
    location = normalize_city(candidate.location)
    return bool(location) and target in location


def matching_city(candidate: JobCandidate, cities: Iterable[str]) -> str | None:
    """Return the first target city the candidate matches, if any."""
    for city in cities:
        if city_matches(candidate, city):
            return city
    return None
