import json

import pytest

from gismis_app.catalog.models import (
    AnimeStatus,
    MergedRecord,
    SourceRecord,
    decode_records,
    encode_records,
)

from conftest import make_record


def test_source_record_requires_id():
    with pytest.raises(ValueError):
        SourceRecord(id="", source_platform="bilibili", title="x", play_url="u")
    with pytest.raises(ValueError):
        SourceRecord(id="   ", source_platform="bilibili", title="x", play_url="u")


def test_source_record_rejects_negative_play_count():
    with pytest.raises(ValueError):
        make_record("bilibili", "x", play_count=-1)


def test_source_record_normalizes_fields():
    record = SourceRecord(
        id="7",
        source_platform="tmdb",
        title=None,
        play_url="u",
        status="completed",
        title_aliases=["a", "b"],
        rating=12.5,
        update_day=9,
        cover_url=None,
    )

    assert record.title == ""
    assert record.cover_url == ""
    assert record.status is AnimeStatus.COMPLETED
    assert record.title_aliases == ("a", "b")
    assert record.rating == 10.0
    assert record.update_day is None


def test_source_record_is_immutable():
    record = make_record("bilibili", "进击的巨人")
    with pytest.raises(Exception):
        record.title = "other"


def test_to_dict_uses_camel_case_keys():
    data = make_record("bilibili", "进击的巨人", play_count=10, update_day=3).to_dict()

    assert data['platform'] == "bilibili"
    assert data['playCount'] == 10
    assert data['updateDay'] == 3
    assert data['status'] == "ongoing"
    assert data['titleAliases'] == []


def test_merged_record_seeds_platform_links():
    record = make_record("tmdb", "Attack on Titan", record_id="1429", genres=["Animation"])
    merged = MergedRecord.from_source(record)

    assert merged.platform_links == {"tmdb": record.play_url}
    assert merged.platforms == ["tmdb"]
    assert merged.genres == ["Animation"]


def test_records_survive_json_codec():
    merged = MergedRecord.from_source(make_record("bilibili", "葬送的芙莉莲", rating=9.8))
    merged.platform_links["mal"] = "https://myanimelist.net/anime/52991"

    raw = encode_records([merged])
    assert "葬送的芙莉莲" in raw
    assert json.loads(raw)[0]['platformLinks']['mal'].endswith("52991")

    restored = decode_records(raw)
    assert restored == [merged]
    assert restored[0].status is AnimeStatus.ONGOING
