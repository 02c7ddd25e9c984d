"""
Shared fixtures: credentials for every engine and a fake transport that
replaces the HTTP layer of an engine with canned JSON responses.
"""

import pytest

from search_engine_lib.core.config import (
    BingSettings,
    FarooSettings,
    GoogleSettings,
    Settings,
    TwitterSettings,
)
from search_engine_lib.rate_limit import RateLimiter


@pytest.fixture
def settings():
    return Settings(
        google=GoogleSettings(api_key="g-key", cse_id="g-cse"),
        bing=BingSettings(account_key="b-key"),
        faroo=FarooSettings(api_key="f-key"),
        twitter=TwitterSettings(
            consumer_key="ck",
            consumer_secret="cs",
            bearer_token="t-token",
        ),
    )


class FakeTransport:
    """Stands in for BaseSearchEngine._request_json and records every call."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    async def __call__(
        self, method, url, params=None, headers=None, auth=None, data=None, json_body=None
    ):
        self.calls.append(
            {
                "method": method,
                "url": url,
                "params": dict(params or {}),
                "headers": dict(headers or {}),
                "auth": auth,
                "data": data,
                "json_body": json_body,
            }
        )
        assert self.responses, f"unexpected request to {url}"
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_transport(monkeypatch):
    def install(engine, responses):
        transport = FakeTransport(responses)
        monkeypatch.setattr(engine, "_request_json", transport)
        return transport

    return install


class FakeClock:
    """Manual clock; sleeping advances it instead of waiting."""

    def __init__(self, now=1000.0):
        self.now = now
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return RateLimiter(1.0, clock=clock, sleep=clock.sleep, name="test")
