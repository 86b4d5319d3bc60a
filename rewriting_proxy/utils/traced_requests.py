import logging
from contextlib import contextmanager
from typing import Any, Iterator, Mapping, Optional

from opentelemetry.trace import Span, Tracer

from rewriting_proxy.utils import shorten

logger = logging.getLogger("uvicorn.error")


@contextmanager
def traced_request(
    tracer: Tracer,
    operation: str,
    target_url: Optional[str],
    route: str,
    start_message: str,
    extra_attrs: Optional[Mapping[str, Any]] = None,
) -> Iterator[Span]:
    """Open a span tagged with the proxied target and route, then log the request line."""
    attributes = {"proxy.route": route, **(extra_attrs or {})}
    if target_url:
        attributes["proxy.target_url"] = target_url
    with tracer.start_as_current_span(operation) as span:
        for name, value in attributes.items():
            span.set_attribute(name, value)
        logger.info(shorten(start_message))
        yield span
