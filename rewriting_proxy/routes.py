import logging
from typing import Iterable, Optional, Tuple
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from opentelemetry import trace
from starlette.background import BackgroundTask

from rewriting_proxy.errors import (
    InvalidParameterError,
    InvalidURLError,
    MissingParameterError,
    UpstreamError,
)
from rewriting_proxy.rewrite import (
    MARKUP_CONTENT_TYPE,
    RewriteContext,
    classify,
    proxy_base_origin,
    rewrite_css,
    rewrite_markup,
)
from rewriting_proxy.rewrite.url_codec import FETCHABLE_SCHEMES, resolve
from rewriting_proxy.upstream import (
    UpstreamFetcher,
    UpstreamResponse,
    build_universal_target,
    css_headers,
    navigation_headers,
    post_headers,
    resolve_origin,
    resource_headers,
    sanitize_response_headers,
    serialize_json_body,
    svg_headers,
)
from rewriting_proxy.utils.exception_logging import log_exception_with_details
from rewriting_proxy.utils.traced_requests import traced_request
from rewriting_proxy.vars import ProxySettings

logger = logging.getLogger("uvicorn.error")
tracer = trace.get_tracer(__name__)

# SVG and CSS route responses may be cached by the browser
STATIC_CACHE_CONTROL = "public, max-age=3600"


def get_settings(request: Request) -> ProxySettings:
    return request.app.state.settings


def get_fetcher(request: Request) -> UpstreamFetcher:
    return request.app.state.fetcher


def request_proxy_base(request: Request) -> str:
    return proxy_base_origin(request.headers, request.url.scheme, request.url.netloc)


def require_target(url: Optional[str]) -> str:
    """Validate the ``url`` query parameter as an absolute http(s) URL."""
    if not url:
        raise MissingParameterError("url")
    try:
        target = resolve(url, url).url
    except InvalidURLError as e:
        raise InvalidParameterError("url", url) from e
    # resolve() also accepts ws(s), which only the rewrite engines may produce
    if urlsplit(target).scheme.lower() not in FETCHABLE_SCHEMES:
        raise InvalidParameterError("url", url)
    return target


def with_headers(response: Response, headers: Iterable[Tuple[str, str]]) -> Response:
    for name, value in headers:
        response.headers.append(name, value)
    return response


def stream_upstream(
    upstream: UpstreamResponse, headers: Iterable[Tuple[str, str]]
) -> StreamingResponse:
    response = StreamingResponse(
        upstream.iter_bytes(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    return with_headers(response, headers)


def transport_failure(span, prefix: str, error: UpstreamError, label: str) -> Response:
    log_exception_with_details(logger, prefix, error)
    span.set_attribute("proxy.error", error.message)
    return PlainTextResponse(f"{label}: {error.message}", status_code=500)


async def proxy_get(
    request: Request,
    url: Optional[str] = Query(None),
    settings: ProxySettings = Depends(get_settings),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    """Main proxy: rewrite HTML documents, stream everything else through."""
    target = require_target(url)
    with traced_request(
        tracer,
        operation="proxy_get",
        target_url=target,
        route="main",
        start_message=f"[Proxy] Main proxy request: {target}",
    ) as span:
        try:
            upstream = await fetcher.fetch(
                target, "GET", navigation_headers(target, settings.user_agent)
            )
        except UpstreamError as e:
            return transport_failure(span, "[Proxy]", e, "Error fetching target")

        span.set_attribute("proxy.status_code", upstream.status_code)
        logger.info(
            f"[Proxy] Fetched {target}: {upstream.status_code} "
            f"{upstream.reason_phrase}, Content-Type: {upstream.content_type}"
        )
        classification = classify(upstream.content_type, target)

        if not classification.rewrites_body:
            override = classification.content_type_override
            if override:
                logger.info(
                    f"[Proxy] Fixed content-type from '{upstream.content_type}' to '{override}'"
                )
            headers = sanitize_response_headers(
                upstream.headers, binary=True, content_type=override
            )
            return stream_upstream(upstream, headers)

        try:
            html = await upstream.read_text()
        except UpstreamError as e:
            return transport_failure(span, "[Proxy]", e, "Error fetching target")

        ctx = RewriteContext.build(
            settings, request_proxy_base(request), upstream.url, upstream.content_type
        )
        body = rewrite_markup(html, ctx, target_url=target)
        headers = sanitize_response_headers(
            upstream.headers, content_type=MARKUP_CONTENT_TYPE
        )
        return with_headers(
            Response(content=body.encode("utf-8"), status_code=upstream.status_code),
            headers,
        )


async def proxy_post(
    request: Request,
    url: Optional[str] = Query(None),
    settings: ProxySettings = Depends(get_settings),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    """Relay a JSON API call; the reply is returned as-is, never rewritten."""
    target = require_target(url)
    with traced_request(
        tracer,
        operation="proxy_post",
        target_url=target,
        route="main",
        start_message=f"[Proxy] POST proxy request: {target}",
        extra_attrs={"proxy.method": "POST"},
    ) as span:
        body = await request.body()
        headers = post_headers(target, request.headers, settings.user_agent)
        try:
            upstream = await fetcher.fetch(
                target, "POST", headers, serialize_json_body(body)
            )
            content = await upstream.read_bytes()
        except UpstreamError as e:
            log_exception_with_details(logger, "[Proxy] POST", e)
            span.set_attribute("proxy.error", e.message)
            return JSONResponse(
                {"error": "Proxy error", "message": e.message}, status_code=500
            )

        span.set_attribute("proxy.status_code", upstream.status_code)
        return with_headers(
            Response(content=content, status_code=upstream.status_code),
            sanitize_response_headers(upstream.headers),
        )


async def svg_proxy(
    url: Optional[str] = Query(None),
    settings: ProxySettings = Depends(get_settings),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    target = require_target(url)
    with traced_request(
        tracer,
        operation="svg_proxy",
        target_url=target,
        route="svg",
        start_message=f"[SVG-Proxy] {target}",
    ) as span:
        try:
            upstream = await fetcher.fetch(target, "GET", svg_headers(settings.user_agent))
        except UpstreamError as e:
            return transport_failure(span, "[SVG-Proxy]", e, "Error fetching SVG")

        span.set_attribute("proxy.status_code", upstream.status_code)
        if not upstream.is_success:
            await upstream.aclose()
            logger.info(
                f"[SVG-Proxy] SVG fetch failed: {upstream.status_code} {upstream.reason_phrase}"
            )
            return PlainTextResponse(
                "Failed to fetch SVG", status_code=upstream.status_code
            )

        try:
            svg = await upstream.read_bytes()
        except UpstreamError as e:
            return transport_failure(span, "[SVG-Proxy]", e, "Error fetching SVG")
        return Response(
            content=svg,
            media_type="image/svg+xml",
            headers={"Cache-Control": STATIC_CACHE_CONTROL},
        )


async def css_proxy(
    request: Request,
    url: Optional[str] = Query(None),
    settings: ProxySettings = Depends(get_settings),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    target = require_target(url)
    with traced_request(
        tracer,
        operation="css_proxy",
        target_url=target,
        route="css",
        start_message=f"[CSS-Proxy] {target}",
    ) as span:
        try:
            upstream = await fetcher.fetch(target, "GET", css_headers(settings.user_agent))
        except UpstreamError as e:
            return transport_failure(span, "[CSS-Proxy]", e, "Error fetching CSS")

        span.set_attribute("proxy.status_code", upstream.status_code)
        if not upstream.is_success:
            await upstream.aclose()
            logger.info(
                f"[CSS-Proxy] CSS fetch failed: {upstream.status_code} {upstream.reason_phrase}"
            )
            return PlainTextResponse(
                "Failed to fetch CSS", status_code=upstream.status_code
            )

        try:
            css = await upstream.read_text()
        except UpstreamError as e:
            return transport_failure(span, "[CSS-Proxy]", e, "Error fetching CSS")
        ctx = RewriteContext.build(
            settings, request_proxy_base(request), upstream.url, "text/css"
        )
        return Response(
            content=rewrite_css(css, ctx),
            media_type="text/css",
            headers={"Cache-Control": STATIC_CACHE_CONTROL},
        )


async def universal_proxy(
    path: str,
    request: Request,
    settings: ProxySettings = Depends(get_settings),
    fetcher: UpstreamFetcher = Depends(get_fetcher),
):
    """Bare-path fallback for requests the page issued relative to our origin."""
    origin = resolve_origin(
        request.query_params.get("origin"), request.headers.get("referer"), path
    )
    target = build_universal_target(origin, path, request.query_params.multi_items())
    with traced_request(
        tracer,
        operation="universal_proxy",
        target_url=target,
        route="universal",
        start_message=f"[Universal] Fetching resource: {target}",
    ) as span:
        try:
            upstream = await fetcher.fetch(
                target,
                "GET",
                resource_headers(
                    origin, settings.user_agent, request.headers.get("accept")
                ),
            )
        except UpstreamError as e:
            return transport_failure(span, "[Universal]", e, "Error fetching resource")

        span.set_attribute("proxy.status_code", upstream.status_code)
        if not upstream.is_success:
            logger.info(
                f"[Universal] Resource fetch failed: {upstream.status_code} "
                f"{upstream.reason_phrase}"
            )
        headers = sanitize_response_headers(upstream.headers, strip_embedding=False)
        return stream_upstream(upstream, headers)


def build_router(settings: ProxySettings) -> APIRouter:
    """Register the entry points; the catch-all must stay last."""
    router = APIRouter()
    router.add_api_route(settings.proxy_endpoint, proxy_get, methods=["GET"])
    router.add_api_route(settings.proxy_endpoint, proxy_post, methods=["POST"])
    router.add_api_route(settings.svg_endpoint, svg_proxy, methods=["GET"])
    router.add_api_route(settings.css_endpoint, css_proxy, methods=["GET"])
    router.add_api_route("/{path:path}", universal_proxy, methods=["GET"])
    return router
