"""Main entry point for jobmatch."""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from jobmatch import __version__
from jobmatch.config.settings import CacheBackend, Settings, get_settings
from jobmatch.utils.logging import configure_logging


def _write_json(path: Path, payload: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _emit(payload: object, output: Path | None) -> None:
    if output is None:
        print(json.dumps(payload, indent=2))
        return
    _write_json(output, payload)
    print(f"Wrote: {output}")


def _build_cache(settings: Settings, config):
    from jobmatch.cache import InMemoryCacheStore, SqliteCacheStore

    if settings.cache_backend == CacheBackend.SQLITE:
        return SqliteCacheStore(settings.cache_db_path, ttl_seconds=config.cache_ttl_seconds)
    return InMemoryCacheStore(
        ttl_seconds=config.cache_ttl_seconds, max_entries=config.cache_max_entries
    )


async def _with_cache(cache, work):
    initialize = getattr(cache, "initialize", None)
    if initialize is not None:
        await initialize()
    try:
        return await work()
    finally:
        close = getattr(cache, "close", None)
        if close is not None:
            await close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="jobmatch",
        description="jobmatch: rank and diversify job postings for a user profile",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m jobmatch match --profile profile.yaml --candidates jobs.json
  python -m jobmatch batch --profiles users.yaml --candidates jobs.json --output report.json
  python -m jobmatch cache-prune
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Set the log level (overrides settings)",
    )

    subparsers = parser.add_subparsers(
        dest="mode",
        title="modes",
        description="Available operating modes",
    )

    match_parser = subparsers.add_parser(
        "match",
        help="Match one profile against a candidate pool",
    )
    match_parser.add_argument(
        "--profile",
        type=Path,
        required=True,
        help="Path to profile (YAML or JSON)",
    )
    match_parser.add_argument(
        "--candidates",
        type=Path,
        required=True,
        help="Path to the candidate pool (JSON or YAML list, or {'jobs': [...]})",
    )
    match_parser.add_argument(
        "--tier",
        choices=["free", "premium"],
        default=None,
        help="Serve the request under this tier (defaults to the profile's tier)",
    )
    match_parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip AI scoring and use rule-based matching only",
    )
    match_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the result JSON here instead of printing it",
    )

    batch_parser = subparsers.add_parser(
        "batch",
        help="Match many profiles against one candidate pool",
    )
    batch_parser.add_argument(
        "--profiles",
        type=Path,
        required=True,
        help="Path to a list of profiles (YAML or JSON)",
    )
    batch_parser.add_argument(
        "--candidates",
        type=Path,
        required=True,
        help="Path to the candidate pool",
    )
    batch_parser.add_argument(
        "--no-ai",
        action="store_true",
        help="Skip AI scoring and use rule-based matching only",
    )
    batch_parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Write the batch report JSON here instead of printing it",
    )

    subparsers.add_parser(
        "cache-prune",
        help="Delete expired entries from the SQLite match cache",
    )

    return parser


def main(args: list[str] | None = None) -> int:
    """Main entry point for the application.

    Args:
        args: Command line arguments (defaults to sys.argv[1:]).

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = create_parser()
    parsed = parser.parse_args(args)

    # Load settings
    try:
        settings = get_settings()
    except Exception as e:
        print(f"Error loading settings: {e}", file=sys.stderr)
        return 1

    # Configure logging
    log_level = parsed.log_level or settings.log_level
    logger = configure_logging(level=log_level)

    # If no mode specified, show help
    if parsed.mode is None:
        parser.print_help()
        return 0

    logger.info("jobmatch v%s starting in %s mode", __version__, parsed.mode)

    from jobmatch.matching.config import get_matching_config
    from jobmatch.matching.models import InputError

    try:
        config = get_matching_config()
    except Exception as e:
        print(f"Error loading matching settings: {e}", file=sys.stderr)
        return 1

    if getattr(parsed, "no_ai", False):
        config = config.model_copy(update={"ai_enabled": False})

    if parsed.mode == "cache-prune":
        from jobmatch.cache import SqliteCacheStore

        if settings.cache_backend != CacheBackend.SQLITE:
            print("Cache backend is 'memory'; nothing to prune.")
            return 0

        store = SqliteCacheStore(settings.cache_db_path, ttl_seconds=config.cache_ttl_seconds)
        deleted = asyncio.run(_with_cache(store, store.prune_expired))
        print(f"Pruned {deleted} expired entries from {settings.cache_db_path}")
        return 0

    from jobmatch.matching.profile import ProfileService
    from jobmatch.matching.service import MatchingService

    profile_service = ProfileService()
    cache = _build_cache(settings, config)

    if parsed.mode == "match":
        try:
            profile = profile_service.load_profile(parsed.profile)
            candidates = profile_service.load_candidates(parsed.candidates)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        for warning in profile_service.validate_profile(profile):
            logger.warning("Profile: %s", warning)

        service = MatchingService(config=config, cache=cache)

        async def _match():
            return await service.match(profile, candidates, parsed.tier)

        try:
            result = asyncio.run(_with_cache(cache, _match))
        except InputError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        _emit(result.to_dict(), parsed.output)
        return 0

    if parsed.mode == "batch":
        from jobmatch.matching.batch import BatchMatcher, BatchRequest

        try:
            profiles = profile_service.load_profiles(parsed.profiles)
            candidates = profile_service.load_candidates(parsed.candidates)
        except (FileNotFoundError, ValueError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        requests = [
            BatchRequest(
                request_id=profile.user_id or f"profile-{index}",
                profile=profile,
                candidates=candidates,
            )
            for index, profile in enumerate(profiles)
        ]
        matcher = BatchMatcher(
            service=MatchingService(config=config, cache=cache),
            config=config,
        )

        async def _batch():
            return await matcher.run(requests)

        batch_result = asyncio.run(_with_cache(cache, _batch))
        _emit(batch_result.to_dict(), parsed.output)
        print(
            f"Matched {batch_result.succeeded} of {len(requests)} profiles "
            f"({batch_result.failed} failed)",
            file=sys.stderr,
        )
        return 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
