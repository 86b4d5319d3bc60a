import logging
from typing import Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import ReadableSpan, TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    SpanExporter,
    SpanExportResult,
)
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from rewriting_proxy.errors import ClientInputError
from rewriting_proxy.routes import build_router
from rewriting_proxy.upstream import CORS_RESPONSE_HEADERS, UpstreamFetcher
from rewriting_proxy.upstream.headers import EMBEDDING_BLOCKING_HEADERS
from rewriting_proxy.vars import OTLP_ENDPOINT, OTLP_HEADERS, SERVICE_NAME, ProxySettings

logger = logging.getLogger("uvicorn.error")


# Streamed passthrough bodies otherwise produce one span per chunk
NOISY_ASGI_EVENTS = frozenset({"http.response.body"})


class FilteringSpanExporter(SpanExporter):
    """Export everything except per-chunk ASGI spans of the given event types."""

    def __init__(
        self, exporter: SpanExporter, dropped_events: frozenset = NOISY_ASGI_EVENTS
    ):
        self.exporter = exporter
        self.dropped_events = dropped_events

    def _keep(self, span: ReadableSpan) -> bool:
        attributes = span.attributes or {}
        return attributes.get("asgi.event.type") not in self.dropped_events

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        kept = [span for span in spans if self._keep(span)]
        if not kept:
            return SpanExportResult.SUCCESS
        return self.exporter.export(kept)

    def shutdown(self):
        return self.exporter.shutdown()

    def force_flush(self, timeout_millis: int = 30000):
        return self.exporter.force_flush(timeout_millis)


def configure_tracing() -> TracerProvider:
    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    if OTLP_ENDPOINT:
        exporter = OTLPSpanExporter(
            endpoint=OTLP_ENDPOINT,
            headers=OTLP_HEADERS.split(",") if OTLP_HEADERS else None,
        )
        provider.add_span_processor(BatchSpanProcessor(FilteringSpanExporter(exporter)))
        logger.info(f"[Tracing] Exporting spans to {OTLP_ENDPOINT}")
    trace.set_tracer_provider(provider)
    return provider


async def cors_middleware(request: Request, call_next):
    """Permissive CORS on every response; preflight never reaches the routes."""
    if request.method == "OPTIONS":
        response = Response(status_code=200)
    else:
        response = await call_next(request)
    for name in EMBEDDING_BLOCKING_HEADERS:
        if name in response.headers:
            del response.headers[name]
    response.headers.update(CORS_RESPONSE_HEADERS)
    return response


async def client_input_error_handler(request: Request, exc: ClientInputError):
    logger.info(f"[Proxy] Rejected {request.method} {request.url.path}: {exc}")
    return PlainTextResponse(str(exc), status_code=400)


def create_app(
    settings: Optional[ProxySettings] = None,
    fetcher: Optional[UpstreamFetcher] = None,
    instrument: bool = True,
) -> FastAPI:
    settings = settings or ProxySettings.from_env()
    app = FastAPI(
        title=SERVICE_NAME,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.settings = settings
    app.state.fetcher = fetcher or UpstreamFetcher(timeout=settings.timeout)

    app.middleware("http")(cors_middleware)
    app.add_exception_handler(ClientInputError, client_input_error_handler)

    if instrument:
        # /metrics has to be registered ahead of the catch-all route
        Instrumentator().instrument(app).expose(app)
        FastAPIInstrumentor.instrument_app(app)

    app.include_router(build_router(settings))
    logger.info(
        f"Proxy endpoints: GET/POST {settings.proxy_endpoint}?url=..., "
        f"GET {settings.svg_endpoint}?url=..., GET {settings.css_endpoint}?url=..."
    )
    return app


configure_tracing()
app = create_app()

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})
