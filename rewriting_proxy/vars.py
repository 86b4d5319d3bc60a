import os
from dataclasses import dataclass

SERVICE_NAME = os.getenv("SERVICE_NAME", "rewriting-proxy")
HOST = os.environ.get("HOST", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "info").lower()

PROXY_ENDPOINT = os.environ.get("PROXY_ENDPOINT", "/q")
SVG_PROXY_ENDPOINT = os.environ.get("SVG_PROXY_ENDPOINT", "/svg-proxy")
CSS_PROXY_ENDPOINT = os.environ.get("CSS_PROXY_ENDPOINT", "/css-proxy")
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "30"))

USER_AGENT = os.environ.get(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")


def _endpoint_path(raw: str) -> str:
    return "/" + raw.strip().strip("/")


@dataclass(frozen=True)
class ProxySettings:
    """Listen and routing configuration, fixed for the lifetime of the process."""

    host: str = "0.0.0.0"
    port: int = 3000
    proxy_endpoint: str = "/q"
    svg_endpoint: str = "/svg-proxy"
    css_endpoint: str = "/css-proxy"
    timeout: float = 30.0
    user_agent: str = USER_AGENT
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> "ProxySettings":
        return cls(
            host=HOST,
            port=PORT,
            proxy_endpoint=_endpoint_path(PROXY_ENDPOINT),
            svg_endpoint=_endpoint_path(SVG_PROXY_ENDPOINT),
            css_endpoint=_endpoint_path(CSS_PROXY_ENDPOINT),
            timeout=PROXY_TIMEOUT,
            user_agent=USER_AGENT,
            log_level=LOG_LEVEL,
        )
