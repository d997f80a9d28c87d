"""Shared fixtures: a fake network and a counting rule extractor."""

import httpx
import pytest

from deobfuscator.core.http_client import HTTPClient
from deobfuscator.core.streaming import StreamingUrlDeobfuscator

TV_PLAYER_URL = "https://www.youtube.com/s/player/0004de42/tv-player-ias.vflset/tv-player-ias.js"
MWEB_PLAYER_URL = (
    "https://m.youtube.com/s/player/0004de42/player-plasma-ias-phone-en_US.vflset/base.js"
)
PLAYER_JS = 'var yt={};yt.config={signatureTimestamp:20131};'


class FakeRuleExtractor:
    """Rule extractor test double backed by lookup tables."""

    def __init__(self, sig: dict[str, str] | None = None, nsig: dict[str, str] | None = None):
        self.sig = dict(sig or {})
        self.nsig = dict(nsig or {})
        self.sig_calls: list[str] = []
        self.nsig_calls: list[str] = []

    def extract_sig(self, value: str) -> str | None:
        self.sig_calls.append(value)
        return self.sig.get(value)

    def extract_nsig(self, value: str) -> str | None:
        self.nsig_calls.append(value)
        return self.nsig.get(value)


class FakeWeb:
    """Serves canned bodies by url; anything else is a 404."""

    def __init__(self, routes: dict[str, str | httpx.Response] | None = None):
        self.routes = dict(routes or {})
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        body = self.routes.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, text=body)

    def client(self, **kwargs) -> HTTPClient:
        kwargs.setdefault("max_retries", 0)
        return HTTPClient(transport=httpx.MockTransport(self.handler), **kwargs)

    def count(self, url: str) -> int:
        return sum(1 for r in self.requests if str(r.url) == url)


@pytest.fixture()
def fake_web():
    return FakeWeb({TV_PLAYER_URL: PLAYER_JS, MWEB_PLAYER_URL: PLAYER_JS})


@pytest.fixture()
def fake_extractor():
    return FakeRuleExtractor(sig={"ABC": "sig1"}, nsig={"obf123": "deobf1"})


@pytest.fixture()
def make_service(fake_web, fake_extractor):
    """Build a service wired to the fake network and the fake extractor."""

    def factory(**kwargs) -> StreamingUrlDeobfuscator:
        kwargs.setdefault("use_ejs", False)
        kwargs.setdefault("use_mobile_web", True)
        kwargs.setdefault("use_hardcoded_player_path", True)
        kwargs.setdefault("extractor_factory", lambda script, use_ejs: fake_extractor)
        return StreamingUrlDeobfuscator(fake_web.client(), **kwargs)

    return factory
