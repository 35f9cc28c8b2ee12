import importlib.util
from pathlib import Path

import pytest

from gismis_app.catalog import DataAggregator
from gismis_app.config import AggregatorConfig
from gismis_app.errors import SourceFetchError

from conftest import StubAdapter, make_record


def load_probe():
    path = Path(__file__).resolve().parent.parent / "scripts" / "catalog_probe.py"
    module_spec = importlib.util.spec_from_file_location("catalog_probe", path)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.mark.asyncio
async def test_report_covers_each_branch():
    probe = load_probe().probe
    aggregator = DataAggregator([
        StubAdapter("bilibili", [make_record("bilibili", "进击的巨人")]),
        StubAdapter("tmdb", error=SourceFetchError("tmdb", "HTTP 401", status_code=401)),
    ], config=AggregatorConfig(per_source_timeout=0.2))

    # Warm the cache so every reported operation would otherwise be a hit
    await aggregator.search("巨人", limit=5)
    await aggregator.schedule(3)

    report = await probe(aggregator, "巨人", 3)

    assert report["platforms"] == ["bilibili", "tmdb"]
    assert set(report["operations"]) == {"list", "search", "schedule"}
    listing = report["operations"]["list"]
    assert listing["merged_count"] == 1
    assert [s["state"] for s in listing["sources"]] == ["succeeded", "failed"]
    assert "HTTP 401" in listing["sources"][1]["error"]
    for operation in report["operations"].values():
        assert [s["platform"] for s in operation["sources"]] == ["bilibili", "tmdb"]
    assert report["failures"] == 3
