"""Round trips through a local aiohttp server: status mapping and the live stream."""

import json

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from search_engine_lib.engines.google_api_search import GoogleApiSearch
from search_engine_lib.exceptions import (
    AuthError,
    ParseError,
    RateLimited,
    RequestFailed,
)
from search_engine_lib.streaming import StreamState, TwitterStreamer

TWEETS = [
    {
        "data": {"id": "1", "text": "first tweet", "author_id": "42"},
        "includes": {"users": [{"id": "42", "username": "jack"}]},
    },
    {
        "data": {"id": "2", "text": "second tweet", "author_id": "7"},
        "includes": {"users": [{"id": "7", "username": "jill"}]},
    },
]


async def json_ok(request):
    return web.json_response({"echo": dict(request.query)})


async def status(request):
    return web.Response(status=int(request.match_info["code"]), text="nope")


async def not_json(request):
    return web.Response(text="<html>oops</html>")


async def stream_lines(request, lines):
    request.app["stream_headers"].append(dict(request.headers))
    response = web.StreamResponse()
    await response.prepare(request)
    for line in lines:
        await response.write(line)
    return response


async def sample_stream(request):
    lines = [b"\r\n"]
    lines += [json.dumps(tweet).encode() + b"\r\n" for tweet in TWEETS]
    return await stream_lines(request, lines)


async def filter_stream(request):
    return await stream_lines(request, [json.dumps(TWEETS[0]).encode() + b"\r\n"])


async def broken_stream(request):
    return await stream_lines(request, [b"{broken\r\n"])


async def unauthorized_stream(request):
    return web.Response(status=401, text="Unauthorized")


async def get_rules(request):
    return web.json_response({"data": [{"id": "9", "value": "old"}]})


async def post_rules(request):
    body = await request.json()
    request.app["rule_requests"].append(body)
    if "add" in body:
        return web.json_response({"data": [{"id": "10", "value": body["add"][0]["value"]}]})
    return web.json_response({"meta": {"summary": {"deleted": 1}}})


@pytest_asyncio.fixture
async def server():
    app = web.Application()
    app["stream_headers"] = []
    app["rule_requests"] = []
    app.router.add_get("/json", json_ok)
    app.router.add_get("/status/{code}", status)
    app.router.add_get("/not-json", not_json)
    app.router.add_get("/2/tweets/sample/stream", sample_stream)
    app.router.add_get("/2/tweets/search/stream", filter_stream)
    app.router.add_get("/2/tweets/search/stream/rules", get_rules)
    app.router.add_post("/2/tweets/search/stream/rules", post_rules)
    app.router.add_get("/broken/2/tweets/sample/stream", broken_stream)
    app.router.add_get("/unauthorized/2/tweets/sample/stream", unauthorized_stream)

    test_server = TestServer(app)
    await test_server.start_server()
    yield test_server
    await test_server.close()


@pytest.mark.asyncio
async def test_json_response_is_parsed(server, settings):
    engine = GoogleApiSearch(settings)

    data = await engine._request_json("GET", str(server.make_url("/json")), params={"q": "x"})

    assert data == {"echo": {"q": "x"}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code, error",
    [(401, AuthError), (403, AuthError), (429, RateLimited), (500, RequestFailed)],
)
async def test_status_mapping(server, settings, code, error):
    engine = GoogleApiSearch(settings)

    with pytest.raises(error) as exc_info:
        await engine._get_json(str(server.make_url(f"/status/{code}")))

    assert exc_info.value.status == code


@pytest.mark.asyncio
async def test_rate_limited_is_a_request_failure(server, settings):
    engine = GoogleApiSearch(settings)

    with pytest.raises(RequestFailed):
        await engine._get_json(str(server.make_url("/status/429")))


@pytest.mark.asyncio
async def test_non_json_body_raises_parse_error(server, settings):
    engine = GoogleApiSearch(settings)

    with pytest.raises(ParseError):
        await engine._get_json(str(server.make_url("/not-json")))


@pytest.mark.asyncio
async def test_connection_error_raises_request_failed(settings):
    app = web.Application()
    closed = TestServer(app)
    await closed.start_server()
    url = str(closed.make_url("/json"))
    await closed.close()

    with pytest.raises(RequestFailed):
        await GoogleApiSearch(settings)._get_json(url)


@pytest.mark.asyncio
async def test_sample_stream_writes_each_tweet(server, settings, tmp_path):
    out_file = tmp_path / "tweets.txt"
    streamer = TwitterStreamer(
        settings, out_file=out_file, api_url=str(server.make_url("/"))
    )

    task = await streamer.start()
    await task

    assert streamer.error is None
    assert streamer.state == StreamState.STOPPED
    assert streamer.delivered == 2
    assert out_file.read_text(encoding="utf-8").splitlines() == [
        "@jack: first tweet",
        "@jill: second tweet",
    ]
    headers = server.app["stream_headers"][0]
    assert headers["Authorization"] == "Bearer t-token"


@pytest.mark.asyncio
async def test_filter_stream_replaces_rules(server, settings, tmp_path):
    out_file = tmp_path / "tweets.txt"
    streamer = TwitterStreamer(
        settings, out_file=out_file, api_url=str(server.make_url("/"))
    )

    task = await streamer.start(["twitter", "search api"])
    await task

    assert server.app["rule_requests"] == [
        {"delete": {"ids": ["9"]}},
        {"add": [{"value": 'twitter OR "search api"', "tag": "search_engine_lib"}]},
    ]
    assert out_file.read_text(encoding="utf-8") == "@jack: first tweet\n"


@pytest.mark.asyncio
async def test_stream_auth_failure_stops_streamer(server, settings):
    streamer = TwitterStreamer(settings, api_url=str(server.make_url("/unauthorized")))
    task = await streamer.start()
    await task

    assert isinstance(streamer.error, AuthError)
    assert streamer.state == StreamState.STOPPED


@pytest.mark.asyncio
async def test_undecodable_stream_message_stops_streamer(server, settings, tmp_path):
    streamer = TwitterStreamer(
        settings,
        out_file=tmp_path / "tweets.txt",
        api_url=str(server.make_url("/broken")),
    )

    task = await streamer.start()
    await task

    assert isinstance(streamer.error, ParseError)
    assert streamer.state == StreamState.STOPPED
    assert streamer._file is None
