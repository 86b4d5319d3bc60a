"""
Pattern-based rewriting of URL-shaped literals inside inline script text.

Each rule pairs a regular expression with a function that turns a match into
its replacement. Rules run in order over the progressively rewritten text; a
rule that cannot resolve a literal leaves that literal exactly as it was.
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Sequence

from rewriting_proxy.errors import InvalidURLError
from rewriting_proxy.rewrite.context import RewriteContext
from rewriting_proxy.rewrite.css import rewrite_url_path
from rewriting_proxy.rewrite.url_codec import (
    ProxyLinkKind,
    encode,
    is_proxy_link,
    main_proxy_link,
    resolve,
    rewrite_websocket,
)

logger = logging.getLogger("uvicorn.error")


@dataclass(frozen=True)
class ScriptRule:
    name: str
    pattern: re.Pattern
    replace: Callable[[re.Match, RewriteContext], str]

    def apply(self, script: str, ctx: RewriteContext) -> str:
        def substitute(match: re.Match) -> str:
            try:
                return self.replace(match, ctx)
            except InvalidURLError as e:
                logger.debug(f"[Rewrite] {self.name} literal left unchanged: {e}")
                return match.group(0)

        return self.pattern.sub(substitute, script)


def _quoted(match: re.Match, value: str) -> str:
    quote = match.group(1)
    return f"{quote}{value}{quote}"


def _websocket(match: re.Match, ctx: RewriteContext) -> str:
    url = match.group(2)
    if is_proxy_link(url, ctx.proxy_base):
        return match.group(0)
    return _quoted(match, rewrite_websocket(url, ctx))


def _absolute_http(match: re.Match, ctx: RewriteContext) -> str:
    url = match.group(2)
    if is_proxy_link(url, ctx.proxy_base):
        return match.group(0)
    return _quoted(match, main_proxy_link(url, ctx))


def _root_path(match: re.Match, ctx: RewriteContext) -> str:
    return _quoted(match, main_proxy_link(match.group(2), ctx))


def _fetch_call(match: re.Match, ctx: RewriteContext) -> str:
    quote, url = match.group(1), match.group(2)
    if url.startswith("data:") or is_proxy_link(url, ctx.proxy_base):
        return match.group(0)
    # urljoin keeps absolute literals as they are
    rewritten = encode(resolve(url, ctx.base_url), ProxyLinkKind.MAIN, ctx)
    return f"fetch({quote}{rewritten}{quote}"


def _css_in_string(match: re.Match, ctx: RewriteContext) -> str:
    outer, inner, path = match.group(1), match.group(2), match.group(3)
    rewritten = rewrite_url_path(path, ctx)
    if rewritten == path:
        return match.group(0)
    return f"{outer}url({inner}{rewritten}{inner}){outer}"


SCRIPT_RULES: Sequence[ScriptRule] = (
    ScriptRule(
        "websocket",
        re.compile(r"""(["'`])(wss?://[^"'`]+)\1""", re.IGNORECASE),
        _websocket,
    ),
    ScriptRule(
        "absolute-url",
        re.compile(r"""(["'`])(https?://[^"'`]+)\1""", re.IGNORECASE),
        _absolute_http,
    ),
    ScriptRule(
        "api-path",
        re.compile(r"""(["'`])(/api/[^"'`]+)\1""", re.IGNORECASE),
        _root_path,
    ),
    ScriptRule(
        "youtubei-path",
        re.compile(r"""(["'`])(/youtubei/[^"'`]+)\1""", re.IGNORECASE),
        _root_path,
    ),
    ScriptRule(
        "fetch-call",
        re.compile(r"""fetch\s*\(\s*(['"`])([^'"`]+)\1""", re.IGNORECASE),
        _fetch_call,
    ),
    ScriptRule(
        "image-path",
        re.compile(
            r"""(["'`])(/[^"'`\s]+\.(?:png|jpg|jpeg|gif|svg|webp|ico))\1""",
            re.IGNORECASE,
        ),
        _root_path,
    ),
    ScriptRule(
        "css-url",
        re.compile(
            r"""(['"`])url\s*\(\s*(['"]?)([^'"`\)]+?)\2\s*\)\1""", re.IGNORECASE
        ),
        _css_in_string,
    ),
)


def rewrite_script(
    script: str, ctx: RewriteContext, rules: Sequence[ScriptRule] = SCRIPT_RULES
) -> str:
    if not script:
        return script
    for rule in rules:
        script = rule.apply(script, ctx)
    return script
