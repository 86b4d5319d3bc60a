from unittest.mock import Mock

from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export import SpanExportResult

from rewriting_proxy.server import FilteringSpanExporter, create_app
from rewriting_proxy.vars import ProxySettings


def _span(attributes):
    span = Mock()
    span.attributes = attributes
    return span


def test_filtering_exporter_drops_body_spans():
    inner = Mock()
    inner.export.return_value = SpanExportResult.SUCCESS
    keep = _span({"http.route": "/q"})
    drop = _span({"asgi.event.type": "http.response.body"})

    result = FilteringSpanExporter(inner).export([keep, drop])

    assert result == SpanExportResult.SUCCESS
    inner.export.assert_called_once_with([keep])


def test_filtering_exporter_skips_empty_batches():
    inner = Mock()

    result = FilteringSpanExporter(inner).export(
        [_span({"asgi.event.type": "http.response.body"})]
    )

    assert result == SpanExportResult.SUCCESS
    inner.export.assert_not_called()


def test_filtering_exporter_custom_events():
    inner = Mock()
    start = _span({"asgi.event.type": "http.response.start"})
    body = _span({"asgi.event.type": "http.response.body"})
    plain = _span(None)

    FilteringSpanExporter(inner, frozenset({"http.response.start"})).export(
        [start, body, plain]
    )

    inner.export.assert_called_once_with([body, plain])


def test_custom_endpoints(upstream):
    settings = ProxySettings(
        proxy_endpoint="/fetch", svg_endpoint="/svg", css_endpoint="/style"
    )
    upstream.reply(
        "https://example.com/",
        headers={"content-type": "text/html"},
        content=b'<img src="/i.svg"><link rel="stylesheet" href="/s.css">',
    )
    app = create_app(settings, fetcher=upstream.fetcher(), instrument=False)

    with TestClient(app) as client:
        response = client.get("/fetch", params={"url": "https://example.com/"})
        missing = client.get("/svg")

    assert "http://testserver/svg?url=https%3A%2F%2Fexample.com%2Fi.svg" in response.text
    assert "http://testserver/style?url=https%3A%2F%2Fexample.com%2Fs.css" in response.text
    assert missing.status_code == 400


def test_docs_are_not_exposed(client, upstream):
    response = client.get("/docs")

    # Falls through to the universal route, which has no origin to work with
    assert response.status_code == 400
    assert upstream.requests == []
