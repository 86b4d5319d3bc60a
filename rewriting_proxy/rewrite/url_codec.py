"""
Canonical mapping between upstream URLs and proxy links.

A proxy link is ``{proxy_base}{endpoint}?url=<percent-encoded target>``. The
target is encoded with no safe characters so the link never contains quotes,
parentheses or ampersands that would break the CSS, script or attribute
context it is written into.
"""

import logging
import re
from enum import Enum
from typing import Mapping, Optional
from urllib.parse import parse_qsl, quote, urljoin, urlsplit

from rewriting_proxy.errors import InvalidURLError
from rewriting_proxy.rewrite.context import RewriteContext, TargetReference

logger = logging.getLogger("uvicorn.error")

SKIPPABLE_RE = re.compile(r"^(data:|javascript:|mailto:|tel:|#)", re.IGNORECASE)
WEBSOCKET_RE = re.compile(r"^wss?://", re.IGNORECASE)
SVG_EXTENSION_RE = re.compile(r"\.svg(\?|$)", re.IGNORECASE)

FETCHABLE_SCHEMES = {"http", "https"}
RESOLVABLE_SCHEMES = FETCHABLE_SCHEMES | {"ws", "wss"}


class ProxyLinkKind(str, Enum):
    MAIN = "main"
    SVG = "svg"
    CSS = "css"


def proxy_base_origin(headers: Mapping[str, str], scheme: str, host: str) -> str:
    """Scheme and host the browser used to reach us, honouring X-Forwarded-*."""
    forwarded_proto = headers.get("x-forwarded-proto", "")
    forwarded_host = headers.get("x-forwarded-host", "")
    proto = forwarded_proto.split(",")[0].strip() or scheme
    netloc = forwarded_host.split(",")[0].strip() or headers.get("host", "") or host
    return f"{proto}://{netloc}"


def _endpoint_for(kind: ProxyLinkKind, ctx: RewriteContext) -> str:
    if kind is ProxyLinkKind.SVG:
        return ctx.svg_endpoint
    if kind is ProxyLinkKind.CSS:
        return ctx.css_endpoint
    return ctx.proxy_endpoint


def encode(
    target: TargetReference, kind: ProxyLinkKind, ctx: RewriteContext
) -> str:
    endpoint = _endpoint_for(kind, ctx)
    return f"{ctx.proxy_base}{endpoint}?url={quote(target.url, safe='')}"


def decode(link: str) -> Optional[str]:
    """Return the target carried by a proxy link's ``url`` query value."""
    try:
        query = urlsplit(link).query
    except ValueError:
        return None
    target = None
    for key, value in parse_qsl(query, keep_blank_values=True):
        if key == "url":
            target = value
    return target or None


def resolve(raw: str, base: str) -> TargetReference:
    candidate = (raw or "").strip()
    if not candidate:
        raise InvalidURLError(raw, "empty reference")
    try:
        absolute = urljoin(base, candidate)
        parts = urlsplit(absolute)
        # Accessing .port validates it
        parts.port
    except ValueError as e:
        raise InvalidURLError(raw, str(e)) from e
    if parts.scheme.lower() not in RESOLVABLE_SCHEMES or not parts.hostname:
        raise InvalidURLError(raw, "not an absolute http(s) URL")
    return TargetReference(url=absolute, base=base)


def is_proxy_link(raw: str, proxy_base: str) -> bool:
    candidate = (raw or "").strip()
    if not candidate:
        return False
    if candidate.startswith("//"):
        candidate = f"http:{candidate}"
    try:
        netloc = urlsplit(candidate).netloc
    except ValueError:
        return False
    return bool(netloc) and netloc.lower() == urlsplit(proxy_base).netloc.lower()


def is_skippable(raw: str) -> bool:
    return bool(SKIPPABLE_RE.match((raw or "").lstrip()))


def is_svg(url: str) -> bool:
    return bool(SVG_EXTENSION_RE.search(url))


def rewrite_websocket(raw: str, ctx: RewriteContext) -> str:
    """Point a ws(s):// URL at the proxy host, keeping its path and query."""
    scheme = "wss" if ctx.proxy_scheme == "https" else "ws"
    rest = WEBSOCKET_RE.sub("", raw.strip(), count=1)
    slash = rest.find("/")
    path = rest[slash:] if slash >= 0 else ""
    return f"{scheme}://{ctx.proxy_host}{path}"


def main_proxy_link(raw: str, ctx: RewriteContext) -> str:
    """Resolve ``raw`` against the document base and encode it for ``/q``."""
    return encode(resolve(raw, ctx.base_url), ProxyLinkKind.MAIN, ctx)


def rewrite_reference(raw: str, ctx: RewriteContext) -> str:
    """Shared reference rewriter used for markup attributes and srcset entries.

    Skippable references and existing proxy links come back unchanged, as does
    anything that cannot be resolved to an absolute URL.
    """
    if not raw or is_skippable(raw) or is_proxy_link(raw, ctx.proxy_base):
        return raw
    if WEBSOCKET_RE.match(raw.strip()):
        return rewrite_websocket(raw, ctx)
    try:
        target = resolve(raw, ctx.base_url)
    except InvalidURLError as e:
        logger.debug(f"[Rewrite] Leaving reference unchanged: {e}")
        return raw
    kind = ProxyLinkKind.SVG if is_svg(target.url) else ProxyLinkKind.MAIN
    return encode(target, kind, ctx)
