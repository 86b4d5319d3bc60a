"""
Content rewrite engines for the proxy.

Markup, stylesheet and script text are rewritten so that every embedded
reference points back at the proxy. The engines share one URL codec and one
read-only ``RewriteContext`` per response.

Example:
    ctx = RewriteContext(
        proxy_base="https://proxy.local",
        base_url="https://example.com/page.html",
    )
    rewrite_css("body{background:url('/bg.png')}", ctx)
    # body{background:url('https://proxy.local/q?url=https%3A%2F%2Fexample.com%2Fbg.png')}
"""

from .classifier import (
    MARKUP_CONTENT_TYPE,
    Classification,
    ContentKind,
    classify,
    fetch_destination,
    negotiate_accept,
)
from .context import RewriteContext, TargetReference
from .css import rewrite_css
from .markup import rewrite_markup
from .script import rewrite_script
from .url_codec import ProxyLinkKind, proxy_base_origin

__all__ = [
    "MARKUP_CONTENT_TYPE",
    "Classification",
    "ContentKind",
    "ProxyLinkKind",
    "RewriteContext",
    "TargetReference",
    "classify",
    "fetch_destination",
    "negotiate_accept",
    "proxy_base_origin",
    "rewrite_css",
    "rewrite_markup",
    "rewrite_script",
]
