import asyncio

import pytest

from search_engine_lib.exceptions import ParseError
from search_engine_lib.models import StreamEvent
from search_engine_lib.streaming import StreamState, TwitterStreamer


def stream_payload(text, username="jack", tweet_id="1"):
    return {
        "data": {
            "id": tweet_id,
            "text": text,
            "author_id": "42",
            "created_at": "2013-04-01T10:00:00.000Z",
        },
        "includes": {"users": [{"id": "42", "username": username}]},
    }


def test_parse_event():
    event = TwitterStreamer.parse_event(stream_payload("hello world"))

    assert event.author == "jack"
    assert event.text == "hello world"
    assert event.tweet_id == "1"
    assert event.format() == "@jack: hello world"


def test_parse_event_without_tweet():
    assert TwitterStreamer.parse_event({"errors": [{"title": "operational-disconnect"}]}) is None


@pytest.mark.asyncio
async def test_deliver_appends_one_line_per_event(settings, tmp_path):
    out_file = tmp_path / "streams" / "tweets.txt"
    streamer = TwitterStreamer(settings, out_file=out_file)

    await streamer.deliver(StreamEvent(text="first", author="jack"))
    await streamer.deliver(StreamEvent(text="second", author="jill"))
    await streamer.stop()

    assert out_file.read_text(encoding="utf-8") == "@jack: first\n@jill: second\n"
    assert streamer.delivered == 2


@pytest.mark.asyncio
async def test_deliver_appends_to_existing_file(settings, tmp_path):
    out_file = tmp_path / "tweets.txt"
    out_file.write_text("@old: line\n", encoding="utf-8")
    streamer = TwitterStreamer(settings, out_file=out_file)

    await streamer.deliver(StreamEvent(text="new", author="jack"))
    await streamer.stop()

    assert out_file.read_text(encoding="utf-8").splitlines() == ["@old: line", "@jack: new"]


@pytest.mark.asyncio
async def test_deliver_without_file_prints(settings, capsys):
    seen = []
    streamer = TwitterStreamer(settings, on_event=seen.append)

    await streamer.deliver(StreamEvent(text="hi", author="jack"))

    assert capsys.readouterr().out == "@jack: hi\n"
    assert [e.text for e in seen] == ["hi"]


@pytest.mark.asyncio
async def test_handle_line_rejects_invalid_json(settings):
    streamer = TwitterStreamer(settings)

    with pytest.raises(ParseError):
        await streamer._handle_line(b"{not json")


@pytest.mark.asyncio
async def test_handle_line_skips_messages_without_tweet(settings, capsys):
    streamer = TwitterStreamer(settings)

    await streamer._handle_line(b'{"errors": [{"title": "operational-disconnect"}]}')

    assert streamer.delivered == 0
    assert capsys.readouterr().out == ""


@pytest.mark.asyncio
async def test_stop_cancels_task_and_is_idempotent(settings, tmp_path, monkeypatch):
    streamer = TwitterStreamer(settings, out_file=tmp_path / "tweets.txt")
    started = asyncio.Event()

    async def run_forever(url, token):
        streamer.state = StreamState.STREAMING
        started.set()
        await asyncio.Event().wait()

    monkeypatch.setattr(streamer, "_run", run_forever)

    task = await streamer.start()
    await started.wait()
    assert streamer.state == StreamState.STREAMING

    await streamer.stop()
    await streamer.stop()

    assert task.cancelled()
    assert streamer.state == StreamState.STOPPED
    assert streamer._file is None


@pytest.mark.asyncio
async def test_start_twice_raises(settings, monkeypatch):
    streamer = TwitterStreamer(settings)

    async def run(url, token):
        return None

    monkeypatch.setattr(streamer, "_run", run)

    await streamer.start()
    with pytest.raises(RuntimeError):
        await streamer.start()
    await streamer.stop()


@pytest.mark.asyncio
async def test_start_failure_leaves_streamer_stopped(settings, fake_transport):
    streamer = TwitterStreamer(settings)
    fake_transport(streamer.api, [ParseError("bad rules response")])

    with pytest.raises(ParseError):
        await streamer.start(["java"])

    assert streamer.state == StreamState.STOPPED
    assert streamer.task is None


class FailingSink:
    def __init__(self):
        self.closed = False

    async def write(self, data):
        raise OSError("disk full")

    async def flush(self):
        pass

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_write_errors_are_logged_and_streaming_continues(settings, tmp_path):
    streamer = TwitterStreamer(settings, out_file=tmp_path / "tweets.txt")
    sink = FailingSink()
    streamer._file = sink

    await streamer.deliver(StreamEvent(text="first", author="jack"))
    await streamer.deliver(StreamEvent(text="second", author="jack"))

    assert streamer.delivered == 2
    await streamer.stop()
    assert sink.closed


@pytest.mark.asyncio
async def test_deliver_after_stop_does_not_reopen_file(settings, tmp_path):
    out_file = tmp_path / "tweets.txt"
    streamer = TwitterStreamer(settings, out_file=out_file)

    await streamer.deliver(StreamEvent(text="before", author="jack"))
    await streamer.stop()
    await streamer.deliver(StreamEvent(text="after", author="jack"))

    assert streamer._file is None
    assert streamer.delivered == 1
    assert out_file.read_text(encoding="utf-8") == "@jack: before\n"
