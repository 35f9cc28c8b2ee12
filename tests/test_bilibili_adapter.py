import httpx
import pytest

from gismis_app.catalog.adapters.bilibili import BilibiliAdapter
from gismis_app.catalog.models import AnimeStatus
from gismis_app.errors import SourceFetchError

from conftest import mock_client, unthrottled


RANKING = {
    "code": 0,
    "result": {
        "list": [
            {
                "season_id": 28220978,
                "title": "进击的巨人 最终季",
                "cover": "https://i0.hdslb.com/bfs/bangumi/aot.jpg",
                "rating": "9.8",
                "stat": {"view": 123456789},
                "new_ep": {"index_show": "全28话"},
                "is_finish": 1,
                "styles": ["热血", "奇幻"],
                "url": "https://www.bilibili.com/bangumi/play/ss28220978",
            },
            {"title": "no id at all"},
            {
                "season_id": 41410,
                "title": "葬送的芙莉莲",
                "rating": {"score": 9.9},
                "is_finish": 0,
            },
        ]
    },
}


def adapter_for(handler):
    return unthrottled(BilibiliAdapter(client=mock_client(handler)))


@pytest.mark.asyncio
async def test_fetch_list_translates_and_pages_locally():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=RANKING)

    adapter = adapter_for(handler)

    first = await adapter.fetch_list(1, 1)
    second = await adapter.fetch_list(1, 3)

    assert seen[0].url.path == "/pgc/web/rank/list"
    assert seen[0].url.params["season_type"] == "1"
    assert seen[0].headers["Referer"] == "https://www.bilibili.com/"

    record = first[0]
    assert record.id == "28220978"
    assert record.source_platform == "bilibili"
    assert record.rating == 9.8
    assert record.play_count == 123456789
    assert record.latest_episode == 28
    assert record.status is AnimeStatus.COMPLETED
    assert record.genres == ("热血", "奇幻")

    # The id-less item is skipped, not emitted
    assert [r.id for r in second] == ["28220978", "41410"]
    assert second[1].rating == 9.9
    assert second[1].status is AnimeStatus.ONGOING
    assert second[1].play_url == "https://www.bilibili.com/bangumi/play/ss41410"


@pytest.mark.asyncio
async def test_search_strips_highlight_markup():
    payload = {
        "code": 0,
        "data": {
            "result": [
                {
                    "media_id": 28220978,
                    "season_id": 25739,
                    "title": "<em class=\"keyword\">进击</em>的巨人",
                    "org_title": "",
                    "media_score": {"score": 9.7, "user_count": 100},
                    "cover": "https://i0.hdslb.com/cover.jpg",
                    "styles": "奇幻/战斗/ ",
                },
            ]
        },
    }

    def handler(request):
        assert request.url.params["search_type"] == "media_bangumi"
        assert request.url.params["keyword"] == "进击"
        return httpx.Response(200, json=payload)

    records = await adapter_for(handler).search("进击", limit=5)

    assert len(records) == 1
    assert records[0].title == "进击的巨人"
    assert records[0].id == "25739"
    assert records[0].rating == 9.7
    assert records[0].genres == ("奇幻", "战斗")


@pytest.mark.asyncio
async def test_missing_container_returns_empty():
    adapter = adapter_for(lambda request: httpx.Response(200, json={"code": -404, "message": "啥都木有"}))

    assert await adapter.fetch_list(1, 20) == []
    assert await adapter.search("x") == []
    assert await adapter.fetch_schedule() == []


@pytest.mark.asyncio
async def test_fetch_detail():
    def handler(request):
        if request.url.params["season_id"] == "404":
            return httpx.Response(404)
        return httpx.Response(200, json={"code": 0, "result": {"season_id": 41410, "title": "葬送的芙莉莲"}})

    adapter = adapter_for(handler)

    assert (await adapter.fetch_detail("41410")).title == "葬送的芙莉莲"
    assert await adapter.fetch_detail("404") is None


@pytest.mark.asyncio
async def test_fetch_schedule_filters_by_day():
    timeline = {
        "code": 0,
        "result": [
            {"day_of_week": 1, "episodes": [{"season_id": 1, "title": "Monday Show", "pub_time": "22:00"}]},
            {
                "day_of_week": 6,
                "episodes": [
                    {"season_id": 41410, "title": "葬送的芙莉莲", "pub_time": "23:00", "pub_index": "第12话"},
                    {"season_id": 0, "title": "placeholder"},
                ],
            },
        ],
    }
    adapter = adapter_for(lambda request: httpx.Response(200, json=timeline))

    saturday = await adapter.fetch_schedule(6)
    week = await adapter.fetch_schedule()

    assert [r.id for r in saturday] == ["41410"]
    assert saturday[0].update_day == 6
    assert saturday[0].update_time == "23:00"
    assert saturday[0].latest_episode == 12
    assert len(week) == 2


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_raised():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503)

    with pytest.raises(SourceFetchError) as exc_info:
        await adapter_for(handler).fetch_list(1, 20)

    assert len(calls) == 3
    assert exc_info.value.status_code == 503
    assert exc_info.value.platform == "bilibili"


@pytest.mark.asyncio
async def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403)

    with pytest.raises(SourceFetchError):
        await adapter_for(handler).search("x")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_transport_errors_become_fetch_errors():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(SourceFetchError):
        await adapter_for(handler).fetch_list(1, 20)


@pytest.mark.asyncio
async def test_invalid_json_is_a_fetch_error():
    adapter = adapter_for(lambda request: httpx.Response(200, content=b"<html>blocked</html>"))

    with pytest.raises(SourceFetchError):
        await adapter.fetch_list(1, 20)


@pytest.mark.asyncio
async def test_rating_with_unit_suffix_keeps_number():
    payload = {"code": 0, "result": {"list": [{"season_id": 1, "title": "x", "rating": "9.8分"}]}}
    adapter = adapter_for(lambda request: httpx.Response(200, json=payload))

    records = await adapter.fetch_list(1, 20)

    assert records[0].rating == 9.8
