from typing import Callable, Dict, List, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

from rewriting_proxy.rewrite.context import RewriteContext
from rewriting_proxy.upstream.fetcher import UpstreamFetcher
from rewriting_proxy.vars import ProxySettings

# TestClient talks to the app as http://testserver
TEST_PROXY_BASE = "http://testserver"


class FakeUpstream:
    """Canned upstream replies keyed by absolute URL, served through httpx.MockTransport."""

    def __init__(self):
        self.replies: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def reply(
        self,
        url: str,
        status_code: int = 200,
        headers: Optional[Dict[str, str]] = None,
        content: bytes = b"",
    ) -> None:
        self.replies[url] = lambda request: httpx.Response(
            status_code, headers=headers or {}, content=content, request=request
        )

    def fail(self, url: str, error: Exception) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise error

        self.replies[url] = _raise

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        reply = self.replies.get(str(request.url))
        if reply is None:
            return httpx.Response(404, text="no canned reply", request=request)
        return reply(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]

    def fetcher(self, timeout: float = 5.0) -> UpstreamFetcher:
        return UpstreamFetcher(timeout=timeout, transport=httpx.MockTransport(self.handler))


@pytest.fixture
def settings():
    return ProxySettings(timeout=5.0)


@pytest.fixture
def rewrite_context():
    return RewriteContext(
        proxy_base="https://proxy.local",
        base_url="https://example.com/dir/page.html",
    )


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def client(settings, upstream):
    from rewriting_proxy.server import create_app

    app = create_app(settings, fetcher=upstream.fetcher(), instrument=False)
    with TestClient(app) as test_client:
        yield test_client
