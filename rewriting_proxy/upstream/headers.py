from typing import Iterable, List, Optional, Tuple, Union

import httpx

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
}

# The body is re-served decoded (and possibly rewritten), so the upstream
# framing no longer applies
BODY_FRAMING_HEADERS = {"content-encoding", "content-length"}

# Headers that stop the proxied page from rendering inside our origin
EMBEDDING_BLOCKING_HEADERS = {
    "content-security-policy",
    "content-security-policy-report-only",
    "x-frame-options",
}

PASSTHROUGH_BLOCKING_HEADERS = EMBEDDING_BLOCKING_HEADERS | {
    "x-content-type-options",
    "strict-transport-security",
}

CORS_RESPONSE_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS,PATCH",
    "Access-Control-Allow-Headers": (
        "Content-Type, Authorization, X-Requested-With, "
        "X-YouTube-Client-Name, X-YouTube-Client-Version"
    ),
    "Access-Control-Allow-Credentials": "true",
}

HeaderPairs = List[Tuple[str, str]]


def sanitize_response_headers(
    headers: Union[httpx.Headers, Iterable[Tuple[str, str]]],
    *,
    strip_embedding: bool = True,
    binary: bool = False,
    content_type: Optional[str] = None,
) -> HeaderPairs:
    """
    Build the outbound header list for an upstream response.

    Args:
        headers: Upstream response headers; duplicates (e.g. Set-Cookie) are kept
        strip_embedding: Drop CSP and frame-options headers
        binary: Binary passthrough, also drop nosniff and HSTS
        content_type: Replacement Content-Type, if any

    Returns:
        List of (name, value) pairs
    """
    pairs = headers.multi_items() if isinstance(headers, httpx.Headers) else headers

    dropped = HOP_BY_HOP_HEADERS | BODY_FRAMING_HEADERS | {"access-control-allow-origin"}
    if strip_embedding:
        dropped = dropped | EMBEDDING_BLOCKING_HEADERS
    if binary:
        dropped = dropped | PASSTHROUGH_BLOCKING_HEADERS
    if content_type:
        dropped = dropped | {"content-type"}

    result: HeaderPairs = [
        (name, value) for name, value in pairs if name.lower() not in dropped
    ]
    if content_type:
        result.append(("content-type", content_type))
    result.append(("access-control-allow-origin", "*"))
    return result
