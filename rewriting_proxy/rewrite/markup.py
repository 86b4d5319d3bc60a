import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from bs4 import BeautifulSoup
from bs4.element import Script, Stylesheet, Tag

from rewriting_proxy.errors import InvalidURLError
from rewriting_proxy.rewrite.context import RewriteContext
from rewriting_proxy.rewrite.css import rewrite_css
from rewriting_proxy.rewrite.script import rewrite_script
from rewriting_proxy.rewrite.url_codec import (
    ProxyLinkKind,
    encode,
    is_proxy_link,
    is_skippable,
    resolve,
    rewrite_reference,
)

logger = logging.getLogger("uvicorn.error")

META_REFRESH_RE = re.compile(r"^(\d+;\s*url=)(.*)$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class AttributeRule:
    """A URL-bearing attribute on a tag, optionally narrowed by other attributes."""

    tag: str
    attribute: str
    when: Mapping[str, str] = field(default_factory=dict)
    kind: ProxyLinkKind = ProxyLinkKind.MAIN

    def matches(self, element: Tag) -> bool:
        if not element.get(self.attribute):
            return False
        for name, expected in self.when.items():
            value = element.get(name)
            if not isinstance(value, str) or value.strip().lower() != expected:
                return False
        return True


URL_ATTRIBUTES: Sequence[AttributeRule] = (
    AttributeRule("a", "href"),
    AttributeRule("img", "src"),
    AttributeRule("script", "src"),
    AttributeRule("iframe", "src"),
    AttributeRule("frame", "src"),
    AttributeRule("embed", "src"),
    AttributeRule("object", "data"),
    AttributeRule("video", "src"),
    AttributeRule("video", "poster"),
    AttributeRule("audio", "src"),
    AttributeRule("source", "src"),
    AttributeRule("input", "src", {"type": "image"}),
    AttributeRule("form", "action"),
    AttributeRule("link", "href", {"rel": "icon"}),
    AttributeRule("link", "href", {"rel": "shortcut icon"}),
    AttributeRule("link", "href", {"rel": "apple-touch-icon"}),
    AttributeRule("area", "href"),
    AttributeRule("base", "href"),
    AttributeRule("link", "href", {"rel": "stylesheet"}, ProxyLinkKind.CSS),
)


def rewrite_stylesheet_link(href: str, ctx: RewriteContext) -> str:
    if is_skippable(href) or is_proxy_link(href, ctx.proxy_base):
        return href
    try:
        target = resolve(href, ctx.base_url)
    except InvalidURLError as e:
        logger.debug(f"[Rewrite] Stylesheet link left unchanged: {e}")
        return href
    return encode(target, ProxyLinkKind.CSS, ctx)


def rewrite_srcset(srcset: str, ctx: RewriteContext) -> str:
    candidates = []
    for candidate in srcset.split(","):
        parts = candidate.strip().split()
        if parts:
            parts[0] = rewrite_reference(parts[0], ctx)
        candidates.append(" ".join(parts))
    return ", ".join(candidates)


def rewrite_meta_refresh(content: str, ctx: RewriteContext) -> str:
    match = META_REFRESH_RE.match(content)
    if not match:
        return content
    return match.group(1) + rewrite_reference(match.group(2), ctx)


def _rewrite_attributes(soup: BeautifulSoup, ctx: RewriteContext) -> None:
    for rule in URL_ATTRIBUTES:
        for element in soup.find_all(rule.tag):
            if not rule.matches(element):
                continue
            value = element[rule.attribute]
            if rule.kind is ProxyLinkKind.CSS:
                element[rule.attribute] = rewrite_stylesheet_link(value, ctx)
            else:
                element[rule.attribute] = rewrite_reference(value, ctx)

    for element in soup.find_all(srcset=True):
        element["srcset"] = rewrite_srcset(element["srcset"], ctx)

    for element in soup.find_all("meta", content=True):
        if str(element.get("http-equiv", "")).strip().lower() == "refresh":
            element["content"] = rewrite_meta_refresh(element["content"], ctx)


def _rewrite_inline_content(soup: BeautifulSoup, ctx: RewriteContext) -> None:
    for style in soup.find_all("style"):
        text = style.string
        if text:
            style.string = Stylesheet(rewrite_css(str(text), ctx))

    for element in soup.find_all(style=True):
        element["style"] = rewrite_css(element["style"], ctx)

    for script in soup.find_all("script"):
        if script.has_attr("src"):
            continue
        text = script.string
        if text:
            rewritten = rewrite_script(str(text), ctx)
            if rewritten != text:
                script.string = Script(rewritten)


def _ensure_base(soup: BeautifulSoup, ctx: RewriteContext) -> None:
    if soup.find("base") is not None:
        return
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        (soup.html or soup).insert(0, head)
    head.insert(0, soup.new_tag("base", href=f"{ctx.target_origin}/"))


def diagnostic_comment(target_url: str, ctx: RewriteContext) -> str:
    return (
        "\n<!-- Rewriting proxy debug info:\n"
        f"Original URL: {target_url}\n"
        f"Base URL: {ctx.base_url}\n"
        f"Proxy Base: {ctx.proxy_base}\n"
        "-->"
    )


def rewrite_markup(
    html: str, ctx: RewriteContext, target_url: Optional[str] = None
) -> str:
    """Rewrite every embedded reference in an HTML document to go through the proxy.

    Args:
        html: The decoded upstream document
        ctx: Rewrite context for this response
        target_url: URL the client asked for, echoed in the diagnostic comment

    Returns:
        The serialized document, prefixed with a diagnostic comment
    """
    soup = BeautifulSoup(html, "html.parser", multi_valued_attributes=None)
    _rewrite_attributes(soup, ctx)
    _rewrite_inline_content(soup, ctx)
    _ensure_base(soup, ctx)
    return diagnostic_comment(target_url or ctx.base_url, ctx) + str(soup)

