"""Profile and candidate pool loading utilities."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from jobmatch.matching.models import JobCandidate, UserProfile


class ProfileService:
    """Service for loading user profiles and candidate pools from files."""

    def load_profile(self, path: Path | str) -> UserProfile:
        """Load and validate a profile from YAML or JSON."""
        profile_path = Path(path)
        data = self._load(profile_path)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Profile must be a mapping/dict: {profile_path}")
        return UserProfile.model_validate(data)

    def load_profiles(self, path: Path | str) -> list[UserProfile]:
        """Load a list of profiles (a bare list or a `profiles` key)."""
        profiles_path = Path(path)
        items = self._load_list(profiles_path, key="profiles")
        profiles: list[UserProfile] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"Profile #{index} must be a mapping/dict: {profiles_path}")
            profiles.append(UserProfile.model_validate(item))
        return profiles

    def load_candidates(self, path: Path | str) -> list[JobCandidate]:
        """Load a candidate pool (a bare list or a `jobs` key)."""
        pool_path = Path(path)
        items = self._load_list(pool_path, key="jobs")
        candidates: list[JobCandidate] = []
        for index, item in enumerate(items):
            if not isinstance(item, dict):
                raise ValueError(f"Job #{index} must be a mapping/dict: {pool_path}")
            candidates.append(JobCandidate.model_validate(item))
        return candidates

    def validate_profile(self, profile: UserProfile) -> list[str]:
        """Return warnings for profiles that will match poorly."""
        warnings: list[str] = []

        if not profile.career_paths:
            warnings.append("No career paths; career keyword scoring is disabled")
        if len(profile.target_cities) < 2:
            warnings.append("Fewer than two target cities; city diversity is not applied")
        if not profile.user_id:
            warnings.append("Missing user_id; AI call budget is not enforced")

        return warnings

    def _load_list(self, path: Path, *, key: str) -> list[Any]:
        data = self._load(path)
        if isinstance(data, dict) and isinstance(data.get(key), list):
            data = data[key]
        if not isinstance(data, list):
            raise ValueError(f"Expected a list or a '{key}' list: {path}")
        return data

    def _load(self, path: Path) -> Any:
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        suffix = path.suffix.lower()
        if suffix in {".yaml", ".yml"}:
            return self._load_yaml(path)
        if suffix == ".json":
            return self._load_json(path)
        return self._load_unknown(path)

    def _load_yaml(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML: {path}") from e

    def _load_json(self, path: Path) -> Any:
        try:
            with path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON: {path}") from e

    def _load_unknown(self, path: Path) -> Any:
        """Auto-detect the format when the file extension is unknown."""
        raw = path.read_text(encoding="utf-8")
        raw_stripped = raw.lstrip()

        # Try JSON first if it looks like JSON, otherwise fall back to YAML.
        if raw_stripped.startswith("{") or raw_stripped.startswith("["):
            try:
                return json.loads(raw)
            except json.JSONDecodeError:
                pass

        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid file format: {path}") from e
