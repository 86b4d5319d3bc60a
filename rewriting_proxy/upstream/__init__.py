from .fetcher import (
    UpstreamFetcher,
    UpstreamResponse,
    css_headers,
    navigation_headers,
    post_headers,
    resource_headers,
    serialize_json_body,
    svg_headers,
)
from .headers import CORS_RESPONSE_HEADERS, sanitize_response_headers
from .origin import build_universal_target, resolve_origin

__all__ = [
    "CORS_RESPONSE_HEADERS",
    "UpstreamFetcher",
    "UpstreamResponse",
    "build_universal_target",
    "css_headers",
    "navigation_headers",
    "post_headers",
    "resolve_origin",
    "resource_headers",
    "sanitize_response_headers",
    "serialize_json_body",
    "svg_headers",
]
