import pytest
from hypothesis import given, strategies as st

from gismis_app.catalog.merger import DataMerger, levenshtein, normalize_title, similarity

from conftest import make_record


# =============================================================================
# STRING METRICS
# =============================================================================

def test_normalize_title_strips_case_and_punctuation():
    assert normalize_title("Attack on Titan!!!") == "attackontitan"
    assert normalize_title("ATTACK ON TITAN") == "attackontitan"
    assert normalize_title("进击的巨人 第二季") == "进击的巨人第二季"
    assert normalize_title(None) == ""
    assert normalize_title("!!! ...") == ""


def test_levenshtein_examples():
    assert levenshtein("", "abc") == 3
    assert levenshtein("abc", "abc") == 0
    assert levenshtein("abc", "") == 3
    assert levenshtein("kitten", "sitting") == 3


def test_similarity_edges():
    assert similarity("", "") == 1.0
    assert similarity(None, "") == 1.0
    assert similarity("abc", "") == 0.0
    assert similarity("Attack on Titan", "attack-on-titan") == 1.0
    assert similarity("abcd", "abce") == pytest.approx(0.75)


@given(st.text(), st.text())
def test_similarity_is_symmetric_and_bounded(a, b):
    score = similarity(a, b)
    assert score == similarity(b, a)
    assert 0.0 <= score <= 1.0


@given(st.text())
def test_similarity_is_reflexive(a):
    assert similarity(a, a) == 1.0


@given(st.text(), st.text())
def test_levenshtein_is_symmetric(a, b):
    assert levenshtein(a, b) == levenshtein(b, a)
    assert levenshtein(a, "") == len(a)


# =============================================================================
# MERGE
# =============================================================================

def test_same_title_from_two_platforms_merges():
    bilibili = make_record("bilibili", "进击的巨人", play_url="urlA")
    tmdb = make_record("tmdb", "进击的巨人", record_id="1429", play_url="urlB")

    merged = DataMerger().merge([bilibili, tmdb])

    assert len(merged) == 1
    assert merged[0].platform_links == {"bilibili": "urlA", "tmdb": "urlB"}


@given(st.integers(min_value=1, max_value=8))
def test_merge_fan_in(n):
    records = [make_record(f"p{i}", "Frieren", play_url=f"url{i}") for i in range(n)]

    merged = DataMerger().merge(records)

    assert len(merged) == 1
    assert merged[0].platform_links == {f"p{i}": f"url{i}" for i in range(n)}


def test_dissimilar_titles_stay_separate():
    records = [
        make_record("bilibili", "进击的巨人"),
        make_record("bilibili", "鬼灭之刃", record_id="2"),
        make_record("tmdb", "One Piece", record_id="3"),
    ]

    merged = DataMerger().merge(records)

    assert [m.title for m in merged] == ["进击的巨人", "鬼灭之刃", "One Piece"]


def test_near_match_joins_first_similar_cluster():
    records = [
        make_record("bilibili", "Attack on Titan"),
        make_record("mal", "Attack on Titan.", record_id="16498"),
        make_record("tmdb", "Attack on Titans", record_id="1429"),
    ]

    merged = DataMerger().merge(records)

    assert len(merged) == 1
    assert merged[0].platforms == ["bilibili", "mal", "tmdb"]


def test_fold_fills_only_empty_fields():
    first = make_record("tmdb", "Frieren", rating=8.9, synopsis=None)
    second = make_record("mal", "Frieren", rating=9.3, synopsis="An elf mage.", episode_count=28)

    merged = DataMerger().merge([first, second])[0]

    assert merged.rating == 8.9
    assert merged.synopsis == "An elf mage."
    assert merged.episode_count == 28


def test_bilibili_cover_always_wins():
    tmdb = make_record("tmdb", "Frieren", cover_url="https://image.tmdb.org/poster.jpg")
    bilibili = make_record("bilibili", "Frieren", cover_url="https://i0.hdslb.com/cover.jpg")
    bare = make_record("bilibili", "Frieren", record_id="2", cover_url="")

    merged = DataMerger().merge([tmdb, bilibili, bare])[0]

    assert merged.cover_url == "https://i0.hdslb.com/cover.jpg"


def test_same_platform_link_is_overwritten():
    merged = DataMerger().merge([
        make_record("bilibili", "Frieren", play_url="old"),
        make_record("bilibili", "Frieren", record_id="2", play_url="new"),
    ])[0]

    assert merged.platform_links == {"bilibili": "new"}


def test_aliases_and_genres_are_unioned():
    merged = DataMerger().merge([
        make_record("bilibili", "Frieren", title_aliases=["葬送的芙莉莲"], genres=["奇幻"]),
        make_record("mal", "Frieren", title_aliases=["Sousou no Frieren", "葬送的芙莉莲"],
                    genres=["Fantasy", "奇幻"]),
    ])[0]

    assert merged.title_aliases == ["葬送的芙莉莲", "Sousou no Frieren"]
    assert merged.genres == ["奇幻", "Fantasy"]


def test_missing_titles_cluster_together():
    merged = DataMerger().merge([
        make_record("bilibili", None),
        make_record("tmdb", "", record_id="2"),
    ])

    assert len(merged) == 1


def test_merge_does_not_mutate_inputs():
    record = make_record("bilibili", "Frieren", genres=["奇幻"])
    DataMerger().merge([record, make_record("mal", "Frieren", genres=["Fantasy"])])

    assert record.genres == ("奇幻",)


def test_invalid_threshold_rejected():
    with pytest.raises(ValueError):
        DataMerger(threshold=0)
    with pytest.raises(ValueError):
        DataMerger(threshold=1.5)
