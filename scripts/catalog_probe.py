#!/usr/bin/env python3
"""Probe every configured catalog source and write a JSON health report."""
import argparse
import asyncio
import json
import os
import sys
import time
from typing import Any, Dict

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from gismis_app.catalog import DataAggregator, build_default_aggregator  # noqa: E402
from gismis_app.config import Settings  # noqa: E402


async def probe(aggregator: DataAggregator, query: str, day: int) -> Dict[str, Any]:
    """Run list, search and schedule once and report every source's branch outcome."""
    report: Dict[str, Any] = {
        "generated_at": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
        "query": query,
        "day": day,
        "platforms": aggregator.platforms(),
        "operations": {},
    }

    operations = {
        "list": lambda: aggregator.list(1, 5, force_refresh=True),
        "search": lambda: aggregator.search(query, limit=5, force_refresh=True),
        "schedule": lambda: aggregator.schedule(day, force_refresh=True),
    }
    for name, run in operations.items():
        merged = await run()
        report["operations"][name] = {
            "merged_count": len(merged),
            "sources": [
                {
                    "platform": branch.platform,
                    "state": branch.state.value,
                    "count": len(branch.data or []),
                    "elapsed_ms": int(branch.elapsed * 1000),
                    "error": str(branch.error) if branch.error else None,
                }
                for branch in aggregator.last_results
            ],
        }

    report["failures"] = sum(
        1
        for op in report["operations"].values()
        for source in op["sources"]
        if source["state"] != "succeeded"
    )
    return report


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Probe anime catalog sources for basic health.")
    parser.add_argument("--query", default="进击的巨人", help="Search keyword to test.")
    parser.add_argument("--day", type=int, default=1, help="Schedule weekday to test (1-7).")
    parser.add_argument("--output", default="catalog_probe.json", help="Output JSON report path.")
    return parser.parse_args()


async def run(args: argparse.Namespace) -> Dict[str, Any]:
    async with build_default_aggregator(Settings.from_env()) as aggregator:
        return await probe(aggregator, args.query, args.day)


def main() -> int:
    args = parse_args()
    report = asyncio.run(run(args))

    output_dir = os.path.dirname(args.output)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    with open(args.output, "w", encoding="utf-8") as handle:
        json.dump(report, handle, indent=2, ensure_ascii=False, sort_keys=True)

    print(f"Wrote report to {args.output} ({report['failures']} failed branches)")
    return 1 if report["failures"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
