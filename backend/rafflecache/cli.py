from __future__ import annotations

import argparse
import asyncio
import json

from rafflecache.core.config import get_settings
from rafflecache.core.logging import setup_logging
from rafflecache.core.resources import AppResources, open_resources


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Raffle cache operational CLI")
    subparsers = parser.add_subparsers(dest="command")

    check_parser = subparsers.add_parser("check-cache", help="List fast-tier keys with their remaining TTL")
    check_parser.add_argument("--pattern", default="*", help="Glob pattern, e.g. 'leaderboard:*'")
    check_parser.add_argument("--limit", type=int, default=200, help="Maximum keys to list")

    clear_parser = subparsers.add_parser("clear-cache", help="Flush the fast tier or clear keys by pattern")
    clear_parser.add_argument("--pattern", default=None, help="Only clear keys matching this glob pattern")
    clear_parser.add_argument(
        "--include-slow-tier",
        action="store_true",
        help="Also delete matching slow-tier rows (requires --pattern)",
    )

    subparsers.add_parser("poll-once", help="Run a single polling cycle")

    return parser


async def _check_cache(resources: AppResources, pattern: str, limit: int) -> dict:
    if not resources.cache_store.enabled:
        return {"redis": "unavailable", "keys": []}
    keys = await resources.cache_store.list_keys(pattern, limit=max(1, limit))
    entries = [{"key": key, "ttl_seconds": await resources.cache_store.ttl(key)} for key in keys]
    return {"redis": "connected", "pattern": pattern, "count": len(entries), "keys": entries}


async def _clear_cache(resources: AppResources, pattern: str | None, include_slow_tier: bool) -> dict:
    if not pattern:
        return {"flushed": await resources.tiered_cache.flush_fast()}
    cleared = await resources.tiered_cache.invalidate_pattern(pattern, include_slow=include_slow_tier)
    return {"pattern": pattern, "keys_cleared": cleared, "include_slow_tier": include_slow_tier}


async def _run(args: argparse.Namespace) -> int:
    resources = await open_resources(get_settings())
    try:
        if args.command == "check-cache":
            summary = await _check_cache(resources, args.pattern, args.limit)
        elif args.command == "clear-cache":
            summary = await _clear_cache(resources, args.pattern, args.include_slow_tier)
        else:
            from rafflecache.tasks.poller import run_polling_cycle

            summary = await run_polling_cycle(resources)
    finally:
        await resources.close()
    print(json.dumps(summary, indent=2, sort_keys=True, default=str))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    if args.command in {"check-cache", "clear-cache", "poll-once"}:
        setup_logging()
        return asyncio.run(_run(args))

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
