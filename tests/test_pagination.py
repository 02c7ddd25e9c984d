from typing import Optional

import pytest

from search_engine_lib.base import BaseSearchEngine
from search_engine_lib.engines.google_api_search import GoogleApiSearch
from search_engine_lib.exceptions import RequestFailed
from search_engine_lib.models import SearchQuery, SearchResponse, SearchResultItem


def google_page(start, count, next_start=None, total=1000):
    data = {
        "searchInformation": {"totalResults": str(total)},
        "items": [
            {"title": f"t{i}", "link": f"https://example.com/{i}", "snippet": f"s{i}"}
            for i in range(start, start + count)
        ],
    }
    if next_start is not None:
        data["queries"] = {"nextPage": [{"startIndex": next_start}]}
    return data


class ListEngine(BaseSearchEngine):
    """Serves pages from a fixed list of results."""

    MAX_PAGE_HITS = 4
    DEFAULT_MAX_HITS = 6

    def __init__(self, items):
        super().__init__()
        self.items = items
        self.requests = []

    @property
    def name(self):
        return "list_engine"

    @property
    def description(self):
        return "test"

    async def check_config(self):
        return True

    async def fetch_page(self, query, page_size, start: Optional[int] = None):
        start = start or 0
        self.requests.append((start, page_size))
        chunk = self.items[start : start + page_size]
        return SearchResponse(
            query=SearchQuery(query=query, count=max(page_size, 1), start=start),
            engine_name=self.name,
            results=[SearchResultItem(snippet=s) for s in chunk],
            search_time_seconds=0,
            next_cursor=start + len(chunk),
        )


@pytest.mark.asyncio
async def test_google_accumulates_pages_up_to_cap(settings, fake_transport):
    engine = GoogleApiSearch(settings)
    transport = fake_transport(
        engine,
        [
            google_page(1, 10, next_start=11),
            google_page(11, 10, next_start=21),
            google_page(21, 5, next_start=26),
        ],
    )

    results = await engine.search_all("java", 25)

    assert len(results) == 25
    assert [r.title for r in results[:2]] == ["t1", "t2"]
    assert results[-1].title == "t25"
    assert [c["params"]["num"] for c in transport.calls] == [10, 10, 5]
    assert [c["params"]["start"] for c in transport.calls] == [1, 11, 21]


@pytest.mark.asyncio
async def test_stops_on_empty_page(settings, fake_transport):
    engine = GoogleApiSearch(settings)
    transport = fake_transport(
        engine,
        [
            google_page(1, 10, next_start=11),
            {"searchInformation": {"totalResults": "10"}, "items": []},
        ],
    )

    results = await engine.search_all("java", 50)

    assert len(results) == 10
    assert len(transport.calls) == 2


@pytest.mark.asyncio
async def test_stops_when_provider_has_no_next_page(settings, fake_transport):
    engine = GoogleApiSearch(settings)
    transport = fake_transport(engine, [google_page(1, 7)])

    results = await engine.search_all("java", 50)

    assert len(results) == 7
    assert len(transport.calls) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("max_hits", [0, -3])
async def test_non_positive_cap_makes_no_request(settings, fake_transport, max_hits):
    engine = GoogleApiSearch(settings)
    transport = fake_transport(engine, [])

    assert await engine.search_all("java", max_hits) == []
    assert transport.calls == []


@pytest.mark.asyncio
async def test_cap_is_clamped_to_provider_maximum(settings, fake_transport):
    engine = GoogleApiSearch(settings)
    pages = [google_page(s, 10, next_start=s + 10) for s in range(1, 101, 10)]
    transport = fake_transport(engine, pages)

    results = await engine.search_all("java", 500)

    assert len(results) == 100
    assert len(transport.calls) == 10


@pytest.mark.asyncio
async def test_request_failure_propagates(settings, fake_transport):
    engine = GoogleApiSearch(settings)
    fake_transport(engine, [google_page(1, 10, next_start=11), RequestFailed("down")])

    with pytest.raises(RequestFailed):
        await engine.search_all("java", 20)


@pytest.mark.asyncio
async def test_default_cap_and_page_size():
    engine = ListEngine([f"s{i}" for i in range(20)])

    results = await engine.search_all("q")

    assert [r.snippet for r in results] == [f"s{i}" for i in range(6)]
    assert engine.requests == [(0, 4), (4, 2)]


@pytest.mark.asyncio
async def test_short_result_set_returns_what_exists():
    engine = ListEngine(["a", "b", "c"])

    results = await engine.search_all("q", 10)

    assert [r.snippet for r in results] == ["a", "b", "c"]
    assert engine.requests == [(0, 4), (3, 4)]


@pytest.mark.asyncio
async def test_snippets_preserve_order():
    engine = ListEngine(["a", "b", "c", "d", "e"])

    assert await engine.snippets("q", 5) == ["a", "b", "c", "d", "e"]
