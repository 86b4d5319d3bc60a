from dataclasses import dataclass
from urllib.parse import urlsplit

from rewriting_proxy.vars import ProxySettings


@dataclass(frozen=True)
class TargetReference:
    url: str
    base: str


@dataclass(frozen=True)
class RewriteContext:
    """Per-response, read-only inputs shared by the rewrite engines."""

    proxy_base: str  # scheme://host as seen by the browser
    base_url: str  # where the document came from, for relative resolution
    content_type: str = ""
    proxy_endpoint: str = "/q"
    svg_endpoint: str = "/svg-proxy"
    css_endpoint: str = "/css-proxy"

    @classmethod
    def build(
        cls,
        settings: ProxySettings,
        proxy_base: str,
        base_url: str,
        content_type: str = "",
    ) -> "RewriteContext":
        return cls(
            proxy_base=proxy_base.rstrip("/"),
            base_url=base_url,
            content_type=content_type,
            proxy_endpoint=settings.proxy_endpoint,
            svg_endpoint=settings.svg_endpoint,
            css_endpoint=settings.css_endpoint,
        )

    @property
    def proxy_host(self) -> str:
        return urlsplit(self.proxy_base).netloc

    @property
    def proxy_scheme(self) -> str:
        return urlsplit(self.proxy_base).scheme or "http"

    @property
    def target_origin(self) -> str:
        parts = urlsplit(self.base_url)
        return f"{parts.scheme}://{parts.netloc}"
