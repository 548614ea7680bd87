"""Batch matching for many users."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from jobmatch.matching.config import MatchingConfig, get_matching_config
from jobmatch.matching.models import InputError, JobCandidate, MatchResult, Tier, UserProfile
from jobmatch.matching.service import MatchingService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BatchRequest:
    """One user's match request inside a batch."""

    request_id: str
    profile: UserProfile
    candidates: Sequence[JobCandidate | Mapping[str, Any]]
    tier: Tier | str | None = None


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one batch request: a result or an input error message."""

    request_id: str
    result: MatchResult | None
    error: str | None
    duration_seconds: float

    def __post_init__(self) -> None:
        if (self.result is None) == (self.error is None):
            raise ValueError("exactly one of result and error must be set")
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

    @property
    def ok(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "result": self.result.to_dict() if self.result is not None else None,
            "error": self.error,
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class BatchResult:
    """Summary of a batch run."""

    items: list[BatchItemResult]
    duration_seconds: float
    algorithms: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.duration_seconds < 0:
            raise ValueError("duration_seconds must be >= 0")

    @property
    def succeeded(self) -> int:
        return sum(1 for item in self.items if item.ok)

    @property
    def failed(self) -> int:
        return sum(1 for item in self.items if not item.ok)

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "failed": self.failed,
            "algorithms": dict(self.algorithms),
            "duration_seconds": self.duration_seconds,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class BatchProgressEvent:
    index: int
    total: int
    request_id: str
    ok: bool
    completed: int
    failed: int


class BatchMatcher:
    """Runs many match requests with bounded concurrency.

    Requests are processed in chunks of `batch_size`. Inside a chunk at
    most `max_concurrency` matches run at once, and chunks are separated
    by a fixed delay so the scoring service is not flooded.
    """

    def __init__(
        self,
        service: MatchingService | None = None,
        config: MatchingConfig | None = None,
        *,
        batch_size: int | None = None,
        max_concurrency: int | None = None,
        delay_seconds: float | None = None,
        progress_callback: Callable[[BatchProgressEvent], None] | None = None,
    ) -> None:
        self.config = config or get_matching_config()
        self.service = service or MatchingService(config=self.config)
        self.batch_size = batch_size or self.config.batch_size
        self.max_concurrency = max_concurrency or self.config.batch_max_concurrency
        self.delay_seconds = (
            self.config.batch_delay_seconds if delay_seconds is None else delay_seconds
        )
        self.progress_callback = progress_callback

    async def run(self, requests: Sequence[BatchRequest]) -> BatchResult:
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrency)
        items: list[BatchItemResult] = []
        failed = 0

        chunks = [
            requests[i : i + self.batch_size]
            for i in range(0, len(requests), self.batch_size)
        ]
        for chunk_index, chunk in enumerate(chunks):
            if chunk_index > 0 and self.delay_seconds > 0:
                await asyncio.sleep(self.delay_seconds)

            logger.info(
                "Matching batch %d/%d (%d requests)",
                chunk_index + 1,
                len(chunks),
                len(chunk),
            )
            chunk_results = await asyncio.gather(
                *(self._run_one(request, semaphore) for request in chunk)
            )
            for item in chunk_results:
                items.append(item)
                if not item.ok:
                    failed += 1
                self._emit_progress(
                    index=len(items),
                    total=len(requests),
                    request_id=item.request_id,
                    ok=item.ok,
                    completed=len(items),
                    failed=failed,
                )

        algorithms = Counter(
            item.result.provenance.algorithm for item in items if item.result is not None
        )
        return BatchResult(
            items=items,
            duration_seconds=time.monotonic() - start_time,
            algorithms=dict(algorithms),
        )

    async def _run_one(
        self, request: BatchRequest, semaphore: asyncio.Semaphore
    ) -> BatchItemResult:
        async with semaphore:
            started = time.monotonic()
            try:
                result = await self.service.match(
                    request.profile, request.candidates, request.tier
                )
            except InputError as exc:
                logger.warning("Request %s rejected: %s", request.request_id, exc)
                return BatchItemResult(
                    request_id=request.request_id,
                    result=None,
                    error=str(exc),
                    duration_seconds=time.monotonic() - started,
                )
            return BatchItemResult(
                request_id=request.request_id,
                result=result,
                error=None,
                duration_seconds=time.monotonic() - started,
            )

    def _emit_progress(
        self,
        *,
        index: int,
        total: int,
        request_id: str,
        ok: bool,
        completed: int,
        failed: int,
    ) -> None:
        if self.progress_callback is None:
            return
        event = BatchProgressEvent(
            index=index,
            total=total,
            request_id=request_id,
            ok=ok,
            completed=completed,
            failed=failed,
        )
        with contextlib.suppress(Exception):
            self.progress_callback(event)
