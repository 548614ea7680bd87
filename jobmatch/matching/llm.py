"""AI scoring client.

Uses LiteLLM to call the external scoring service and turns its JSON
output into validated `ScoredCandidate`s. Failures are returned as
`ScoringError` values on the outcome; nothing here retries.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any

from pydantic import ValidationError

from jobmatch.matching.budget import CallBudget
from jobmatch.matching.config import MatchingConfig, get_matching_config
from jobmatch.matching.models import (
    AIMatchEntry,
    ScoredCandidate,
    ScoringErrorKind,
    ScoringOutcome,
    ScoringRequest,
    clamp_score,
)

logger = logging.getLogger(__name__)

MAX_REASON_CHARS = 500
DEFAULT_AI_REASON = "Matched by AI scoring"

# LiteLLM loads `.env` into the process environment in DEV mode.
os.environ.setdefault("LITELLM_MODE", "PRODUCTION")


class ScoringClient:
    """LLM client for match scoring."""

    def __init__(
        self,
        config: MatchingConfig | None = None,
        *,
        budget: CallBudget | None = None,
    ) -> None:
        self.config = config or get_matching_config()
        self.budget = budget

    @property
    def model_name(self) -> str:
        """Return provider-qualified model name for LiteLLM routing."""
        model = self.config.llm_model
        if "/" in model:
            return model
        if self.config.llm_provider == "openai" and not self.config.llm_base_url:
            return model
        if self.config.llm_provider == "openai":
            return f"openai/{model}"
        return f"{self.config.llm_provider}/{model}"

    async def score(
        self, request: ScoringRequest, timeout_seconds: float | None = None
    ) -> ScoringOutcome:
        """Run one scoring call under a hard timeout."""
        from litellm.exceptions import Timeout

        timeout = timeout_seconds or self.config.ai_timeout_seconds
        model = self.model_name

        if not request.candidates:
            return ScoringOutcome.failure(
                ScoringErrorKind.MALFORMED_OUTPUT, "No candidates to score", model=model
            )

        if self.budget is not None and not self.budget.try_acquire(request.user_key):
            logger.info("AI call budget exhausted for user %s", request.user_key)
            return ScoringOutcome.failure(
                ScoringErrorKind.BUDGET_EXCEEDED,
                f"AI call budget exhausted for user {request.user_key}",
                model=model,
            )

        messages = [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": request.prompt},
        ]

        try:
            response = await asyncio.wait_for(
                self._call_completion(messages=messages, timeout=timeout),
                timeout=timeout,
            )
        except (asyncio.TimeoutError, Timeout) as e:
            logger.warning("Scoring call timed out after %.1fs", timeout)
            return ScoringOutcome.failure(
                ScoringErrorKind.TIMEOUT,
                f"Scoring call timed out after {timeout:.1f}s: {e}",
                model=model,
            )
        except Exception as e:
            logger.warning("Scoring service unavailable: %s", e)
            return ScoringOutcome.failure(
                ScoringErrorKind.SERVICE_UNAVAILABLE, str(e), model=model
            )

        tokens = _usage_tokens(response)
        return self._parse_response(response, request, tokens_used=tokens, model=model)

    async def _call_completion(self, *, messages: list[dict[str, str]], timeout: float):
        from litellm import acompletion

        kwargs: dict[str, Any] = {
            "model": self.model_name,
            "messages": messages,
            "timeout": timeout,
            "temperature": self.config.llm_temperature,
            "max_tokens": self.config.llm_max_tokens,
        }
        if self.config.llm_api_key:
            kwargs["api_key"] = self.config.llm_api_key
        if self.config.llm_base_url:
            kwargs["base_url"] = self.config.llm_base_url

        return await acompletion(**kwargs)

    def _parse_response(
        self,
        response: Any,
        request: ScoringRequest,
        *,
        tokens_used: int,
        model: str,
    ) -> ScoringOutcome:
        content = _message_content(response)
        if content is None:
            return ScoringOutcome.failure(
                ScoringErrorKind.MALFORMED_OUTPUT,
                "Scoring service returned no content",
                tokens_used=tokens_used,
                model=model,
            )

        try:
            data = json.loads(extract_json(content))
        except json.JSONDecodeError as e:
            return ScoringOutcome.failure(
                ScoringErrorKind.MALFORMED_OUTPUT,
                f"Response is not valid JSON: {e}",
                tokens_used=tokens_used,
                model=model,
            )

        if isinstance(data, dict) and isinstance(data.get("matches"), list):
            data = data["matches"]
        if not isinstance(data, list):
            return ScoringOutcome.failure(
                ScoringErrorKind.MALFORMED_OUTPUT,
                f"Expected a JSON array of matches, got {type(data).__name__}",
                tokens_used=tokens_used,
                model=model,
            )

        scored, dropped = parse_entries(data, request)
        if dropped:
            logger.warning(
                "Dropped %d of %d scoring entries (invalid, out of range or duplicate)",
                dropped,
                len(data),
            )
        if not scored:
            return ScoringOutcome.failure(
                ScoringErrorKind.MALFORMED_OUTPUT,
                "Response contained no valid entries",
                tokens_used=tokens_used,
                model=model,
            )

        return ScoringOutcome(
            scored=tuple(scored),
            tokens_used=tokens_used,
            model=model,
            dropped_entries=dropped,
        )


def parse_entries(
    entries: list[Any], request: ScoringRequest
) -> tuple[list[ScoredCandidate], int]:
    """Validate raw entries against the request's candidate window.

    Returns the scored candidates in response order and the number of
    entries dropped. Invalid entries, out-of-range indices and repeated
    indices (after the first) are dropped; scores are clamped.
    """
    scored: list[ScoredCandidate] = []
    seen: set[int] = set()
    dropped = 0

    for raw in entries:
        if not isinstance(raw, dict):
            dropped += 1
            continue
        try:
            entry = AIMatchEntry.model_validate(raw)
        except ValidationError:
            dropped += 1
            continue

        index = entry.job_index
        if not (0 <= index < len(request.candidates)) or index in seen:
            dropped += 1
            continue
        seen.add(index)

        breakdown = None
        if request.include_score_breakdown and entry.score_breakdown:
            breakdown = {
                str(key): clamp_score(value)
                for key, value in sorted(entry.score_breakdown.items())
            }

        reason = entry.match_reason.strip()[:MAX_REASON_CHARS] or DEFAULT_AI_REASON
        scored.append(
            ScoredCandidate(
                candidate=request.candidates[index],
                match_score=clamp_score(entry.match_score),
                confidence_score=clamp_score(entry.confidence_score),
                reason=reason,
                score_breakdown=breakdown,
                origin="ai",
            )
        )

    return scored, dropped


def _message_content(response: Any) -> str | None:
    try:
        message = response.choices[0].message
    except (AttributeError, IndexError, TypeError):
        return None

    content = getattr(message, "content", None)
    if content is None:
        tool_calls = getattr(message, "tool_calls", None) or []
        if tool_calls:
            function = getattr(tool_calls[0], "function", None)
            arguments = getattr(function, "arguments", None)
            if isinstance(arguments, str) and arguments.strip():
                content = arguments

    if content is None:
        return None
    return str(content)


def _usage_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    total = getattr(usage, "total_tokens", None)
    if isinstance(total, int) and total >= 0:
        return total
    return 0


def extract_json(content: str) -> str:
    """Best-effort extraction of a JSON array/object from model output."""
    content = content.strip()

    if content.startswith("```"):
        first_newline = content.find("\n")
        if first_newline != -1:
            content = content[first_newline + 1 :]
        if content.endswith("```"):
            content = content[:-3]
        content = content.strip()

    if content.startswith("[") or content.startswith("{"):
        return content

    def extract_balanced(text: str, open_char: str, close_char: str) -> str | None:
        start = text.find(open_char)
        if start == -1:
            return None

        depth = 0
        for idx in range(start, len(text)):
            ch = text[idx]
            if ch == open_char:
                depth += 1
            elif ch == close_char:
                depth -= 1
                if depth == 0:
                    return text[start : idx + 1].strip()
        return None

    def first_index(char: str) -> int:
        index = content.find(char)
        return index if index != -1 else len(content)

    # Whichever structure opens first is the outermost one
    pairs = sorted([("[", "]"), ("{", "}")], key=lambda pair: first_index(pair[0]))
    for open_char, close_char in pairs:
        extracted = extract_balanced(content, open_char, close_char)
        if extracted is not None:
            return extracted

    return content
