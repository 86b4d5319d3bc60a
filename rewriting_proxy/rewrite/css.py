import logging
import re

from rewriting_proxy.errors import InvalidURLError
from rewriting_proxy.rewrite.context import RewriteContext
from rewriting_proxy.rewrite.url_codec import (
    is_proxy_link,
    is_skippable,
    main_proxy_link,
)

logger = logging.getLogger("uvicorn.error")

CSS_URL_RE = re.compile(r"""url\s*\(\s*(['"]?)([^'"\)]+?)\1\s*\)""", re.IGNORECASE)


def rewrite_url_path(path: str, ctx: RewriteContext) -> str:
    """Rewrite the path of a single ``url(...)`` to a main-proxy link.

    Raises ``InvalidURLError`` when the path cannot be resolved; callers keep
    the original text in that case.
    """
    if is_skippable(path) or is_proxy_link(path, ctx.proxy_base):
        return path
    return main_proxy_link(path, ctx)


def rewrite_css_match(match: re.Match, ctx: RewriteContext) -> str:
    quote, path = match.group(1), match.group(2)
    try:
        rewritten = rewrite_url_path(path, ctx)
    except InvalidURLError as e:
        logger.debug(f"[Rewrite] CSS url() left unchanged: {e}")
        return match.group(0)
    if rewritten == path:
        return match.group(0)
    return f"url({quote}{rewritten}{quote})"


def rewrite_css(css: str, ctx: RewriteContext) -> str:
    if not css:
        return css
    return CSS_URL_RE.sub(lambda m: rewrite_css_match(m, ctx), css)
