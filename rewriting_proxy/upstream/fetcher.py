import json
import logging
from typing import AsyncIterator, Dict, Mapping, Optional
from urllib.parse import urlsplit

import httpx

from rewriting_proxy.errors import UpstreamError
from rewriting_proxy.rewrite.classifier import (
    CSS_ACCEPT,
    SVG_ACCEPT,
    fetch_destination,
    negotiate_accept,
)
from rewriting_proxy.utils.exception_logging import format_exception_message

logger = logging.getLogger("uvicorn.error")

ACCEPT_LANGUAGE = "en-US,en;q=0.9"
DEFAULT_POST_ACCEPT = "application/json, text/plain, */*"
FORWARDED_HEADER_PREFIXES = ("x-youtube", "x-goog")
FORWARDED_HEADER_NAMES = {"authorization"}


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def navigation_headers(target_url: str, user_agent: str) -> Dict[str, str]:
    """Headers for the main GET route, approximating a browser navigation."""
    return {
        "User-Agent": user_agent,
        "Accept": negotiate_accept(target_url),
        "Accept-Language": ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Upgrade-Insecure-Requests": "1",
        "Sec-Fetch-Dest": fetch_destination(target_url),
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
        "X-YouTube-Client-Name": "1",
        "X-YouTube-Client-Version": "2.20231219.01.00",
    }


def svg_headers(user_agent: str) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": SVG_ACCEPT,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
        "Sec-Fetch-Dest": "image",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }


def css_headers(user_agent: str) -> Dict[str, str]:
    return {
        "User-Agent": user_agent,
        "Accept": CSS_ACCEPT,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Sec-Fetch-Dest": "style",
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }


def resource_headers(
    origin: str, user_agent: str, accept: Optional[str] = None
) -> Dict[str, str]:
    """Headers for the universal route: a subresource load referred by ``origin``."""
    return {
        "User-Agent": user_agent,
        "Accept": accept or "*/*",
        "Accept-Language": ACCEPT_LANGUAGE,
        "Cache-Control": "no-cache",
        "Pragma": "no-cache",
        "Referer": origin,
        "Sec-Fetch-Mode": "no-cors",
        "Sec-Fetch-Site": "cross-site",
    }


def post_headers(
    target_url: str, caller_headers: Mapping[str, str], user_agent: str
) -> Dict[str, str]:
    """
    Headers for the POST relay.

    The caller's content type and Accept are kept, along with any
    ``x-youtube*``/``x-goog*`` header and ``authorization``.
    """
    headers = {
        "User-Agent": user_agent,
        "Content-Type": caller_headers.get("content-type") or "application/json",
        "Accept": caller_headers.get("accept") or DEFAULT_POST_ACCEPT,
        "Accept-Language": ACCEPT_LANGUAGE,
        "Referer": _origin(target_url),
    }
    for name, value in caller_headers.items():
        name_lower = name.lower()
        if name_lower in FORWARDED_HEADER_NAMES or name_lower.startswith(
            FORWARDED_HEADER_PREFIXES
        ):
            headers[name_lower] = value
    return headers


def serialize_json_body(body: bytes) -> Optional[bytes]:
    """Re-serialize a JSON request body; non-JSON bodies are forwarded as-is."""
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except ValueError:
        return body
    return json.dumps(parsed, separators=(",", ":"), ensure_ascii=False).encode(
        "utf-8"
    )


class UpstreamResponse:
    """
    An upstream reply whose body has not been read yet.

    Markup and stylesheet callers buffer it with ``read_text``; passthrough
    callers stream it with ``iter_bytes`` and must ``aclose`` afterwards.
    """

    def __init__(self, response: httpx.Response, client: httpx.AsyncClient):
        self._response = response
        self._client = client

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def content_type(self) -> str:
        return self._response.headers.get("content-type", "")

    @property
    def url(self) -> str:
        return str(self._response.url)

    @property
    def is_success(self) -> bool:
        return self._response.is_success

    @property
    def reason_phrase(self) -> str:
        return self._response.reason_phrase

    async def read_bytes(self) -> bytes:
        try:
            return await self._response.aread()
        except httpx.TransportError as e:
            raise UpstreamError(self.url, format_exception_message(e)) from e
        finally:
            await self.aclose()

    async def read_text(self) -> str:
        await self.read_bytes()
        return self._response.text

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.TransportError as e:
            # Status and headers are already on the wire; all we can do is stop.
            logger.error(
                f"[Upstream] Stream from {self.url} interrupted: "
                f"{format_exception_message(e)}"
            )
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()
        await self._client.aclose()


class UpstreamFetcher:
    """Issues outbound requests. One short-lived ``httpx.AsyncClient`` per fetch."""

    def __init__(
        self,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            transport=self._transport,
        )

    async def fetch(
        self,
        target_url: str,
        method: str = "GET",
        headers: Optional[Mapping[str, str]] = None,
        content: Optional[bytes] = None,
    ) -> UpstreamResponse:
        """
        Send one request upstream and return once the response headers arrive.

        A non-2xx status is a normal response. Transport failures, timeouts
        included, raise ``UpstreamError``; nothing is retried.
        """
        client = self._client()
        try:
            request = client.build_request(
                method, target_url, headers=headers, content=content
            )
            response = await client.send(request, stream=True)
        except (httpx.TransportError, httpx.InvalidURL) as e:
            await client.aclose()
            raise UpstreamError(target_url, format_exception_message(e)) from e
        logger.debug(
            f"[Upstream] {method} {target_url} -> {response.status_code} "
            f"{response.headers.get('content-type', '')}"
        )
        return UpstreamResponse(response, client)
