import logging
import re
from typing import Iterable, Optional, Tuple
from urllib.parse import unquote, urlencode, urlsplit

from rewriting_proxy.errors import InvalidParameterError, NoOriginError
from rewriting_proxy.rewrite.url_codec import FETCHABLE_SCHEMES

logger = logging.getLogger("uvicorn.error")

# Only the first url= value of the referer is considered
REFERER_URL_RE = re.compile(r"[?&]url=([^&]+)")


def http_origin(url: str) -> Optional[str]:
    """``scheme://host[:port]`` of an absolute http(s) URL, else None."""
    try:
        parts = urlsplit(url.strip())
        parts.port
    except ValueError as e:
        logger.info(f"[Universal] Unusable origin {url!r}: {e}")
        return None
    if parts.scheme.lower() not in FETCHABLE_SCHEMES or not parts.hostname:
        return None
    return f"{parts.scheme}://{parts.netloc}"


def origin_from_referer(referer: Optional[str]) -> Optional[str]:
    if not referer:
        return None
    match = REFERER_URL_RE.search(referer)
    if not match:
        return None
    return http_origin(unquote(match.group(1)))


def resolve_origin(
    explicit_origin: Optional[str],
    referer: Optional[str],
    requested_path: str = "",
) -> str:
    """
    Work out which upstream site a bare-path request belongs to.

    Prefers an explicit ``origin`` query parameter, then the ``url=`` value of
    the referer (a page we proxied earlier). Raises ``NoOriginError`` rather
    than guessing, and ``InvalidParameterError`` for an explicit origin that
    is not an absolute http(s) URL.
    """
    if explicit_origin:
        if http_origin(explicit_origin) is None:
            raise InvalidParameterError("origin", explicit_origin)
        return explicit_origin
    origin = origin_from_referer(referer)
    if origin:
        logger.info(f"[Universal] Extracted origin from referer: {origin}")
        return origin
    raise NoOriginError(requested_path)


def build_universal_target(
    origin: str, path: str, query_items: Iterable[Tuple[str, str]]
) -> str:
    target_path = path if path.startswith("/") else f"/{path}"
    target = origin.rstrip("/") + target_path
    query = urlencode([(k, v) for k, v in query_items if k != "origin"])
    if query:
        target = f"{target}?{query}"
    return target
