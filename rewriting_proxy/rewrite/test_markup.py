from urllib.parse import quote

import pytest
from bs4 import BeautifulSoup

from rewriting_proxy.rewrite.context import RewriteContext
from rewriting_proxy.rewrite.markup import (
    diagnostic_comment,
    rewrite_markup,
    rewrite_meta_refresh,
    rewrite_srcset,
)

PROXY = "http://testserver"


def link(url: str, endpoint: str = "/q") -> str:
    return f"{PROXY}{endpoint}?url={quote(url, safe='')}"


@pytest.fixture
def page_context():
    return RewriteContext(proxy_base=PROXY, base_url="https://example.com/page.html")


def parse(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser", multi_valued_attributes=None)


class TestRewriteMarkup:
    def test_image_source(self, page_context):
        soup = parse(rewrite_markup('<img src="/a.png">', page_context))

        assert soup.find("img")["src"] == (
            "http://testserver/q?url=https%3A%2F%2Fexample.com%2Fa.png"
        )

    @pytest.mark.parametrize(
        "html,tag,attribute,expected",
        [
            ('<a href="about.html">x</a>', "a", "href", link("https://example.com/about.html")),
            ('<script src="/app.js"></script>', "script", "src", link("https://example.com/app.js")),
            ('<iframe src="//player.example.com/e/1"></iframe>', "iframe", "src", link("https://player.example.com/e/1")),
            ('<object data="movie.swf"></object>', "object", "data", link("https://example.com/movie.swf")),
            ('<video poster="/p.jpg"></video>', "video", "poster", link("https://example.com/p.jpg")),
            ('<audio src="/s.mp3"></audio>', "audio", "src", link("https://example.com/s.mp3")),
            ('<form action="/search"></form>', "form", "action", link("https://example.com/search")),
            ('<map><area href="/r"></map>', "area", "href", link("https://example.com/r")),
            ('<input type="image" src="/go.gif">', "input", "src", link("https://example.com/go.gif")),
            ('<img src="/logo.svg">', "img", "src", link("https://example.com/logo.svg", "/svg-proxy")),
        ],
    )
    def test_url_attributes(self, page_context, html, tag, attribute, expected):
        soup = parse(rewrite_markup(html, page_context))

        assert soup.find(tag)[attribute] == expected

    def test_stylesheet_link_goes_through_css_proxy(self, page_context):
        html = '<head><link rel="stylesheet" href="/s.css"></head>'

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("link")["href"] == link("https://example.com/s.css", "/css-proxy")

    @pytest.mark.parametrize("rel", ["icon", "shortcut icon", "apple-touch-icon"])
    def test_icon_links(self, page_context, rel):
        html = f'<head><link rel="{rel}" href="/favicon.ico"></head>'

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("link")["href"] == link("https://example.com/favicon.ico")

    def test_other_links_are_untouched(self, page_context):
        html = '<head><link rel="preload" href="/font.woff2"></head>'

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("link")["href"] == "/font.woff2"

    def test_text_input_src_is_untouched(self, page_context):
        soup = parse(rewrite_markup('<input type="text" src="/x.gif">', page_context))

        assert soup.find("input")["src"] == "/x.gif"

    @pytest.mark.parametrize(
        "href",
        [
            "#top",
            "javascript:void(0)",
            "mailto:someone@example.com",
            "tel:+15551234",
            "data:text/plain,hi",
            link("https://example.com/already"),
            "http://example.com:99999/",
        ],
    )
    def test_references_left_alone(self, page_context, href):
        soup = parse(rewrite_markup(f'<a href="{href}">x</a>', page_context))

        assert soup.find("a")["href"] == href

    def test_srcset(self, page_context):
        html = '<img srcset="a.png 1x, /b.png 2x">'

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("img")["srcset"] == (
            f"{link('https://example.com/a.png')} 1x, {link('https://example.com/b.png')} 2x"
        )

    def test_meta_refresh(self, page_context):
        html = '<head><meta http-equiv="refresh" content="5; url=/next"></head>'

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("meta")["content"] == f"5; url={link('https://example.com/next')}"

    def test_style_element(self, page_context):
        html = "<style>body{background:url(/bg.png)}</style>"

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("style").string == (
            f"body{{background:url({link('https://example.com/bg.png')})}}"
        )

    def test_style_attribute(self, page_context):
        html = "<div style=\"background-image:url('/bg.png')\"></div>"

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("div")["style"] == (
            f"background-image:url('{link('https://example.com/bg.png')}')"
        )

    def test_inline_script(self, page_context):
        html = "<script>fetch('/api/data')</script>"

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("script").string == (
            f"fetch('{link('https://example.com/api/data')}')"
        )

    def test_inline_script_is_not_html_escaped(self, page_context):
        html = "<script>if (a < b && c) { go('/img/x.png'); }</script>"

        result = rewrite_markup(html, page_context)

        assert "if (a < b && c)" in result

    def test_external_script_body_is_untouched(self, page_context):
        html = "<script src=\"/app.js\">var u = '/img/x.png';</script>"

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("script").string == "var u = '/img/x.png';"

    def test_base_is_inserted(self, page_context):
        html = "<html><head><title>t</title></head><body></body></html>"

        soup = parse(rewrite_markup(html, page_context))

        head = soup.find("head")
        assert head.contents[0].name == "base"
        assert head.contents[0]["href"] == "https://example.com/"

    def test_head_is_created_for_fragments(self, page_context):
        soup = parse(rewrite_markup("<p>hi</p>", page_context))

        assert soup.find("head").find("base")["href"] == "https://example.com/"

    def test_existing_base_is_kept(self, page_context):
        html = '<html><head><base href="/root/"></head><body></body></html>'

        soup = parse(rewrite_markup(html, page_context))

        bases = soup.find_all("base")
        assert len(bases) == 1
        assert bases[0]["href"] == link("https://example.com/root/")

    def test_malformed_markup(self, page_context):
        html = "<div><p>unclosed <img src='x.png'><span>"

        soup = parse(rewrite_markup(html, page_context))

        assert soup.find("img")["src"] == link("https://example.com/x.png")

    def test_diagnostic_comment_comes_first(self, page_context):
        result = rewrite_markup("<!DOCTYPE html><p>x</p>", page_context, "https://example.com/page.html")

        assert result.startswith("\n<!-- Rewriting proxy debug info:")
        assert "Original URL: https://example.com/page.html" in result
        assert "<!DOCTYPE html>" in result


class TestHelpers:
    def test_srcset_with_descriptors_and_whitespace(self, page_context):
        assert rewrite_srcset("  /a.png   480w ,/b.png 800w", page_context) == (
            f"{link('https://example.com/a.png')} 480w, {link('https://example.com/b.png')} 800w"
        )

    def test_meta_refresh_without_url(self, page_context):
        assert rewrite_meta_refresh("30", page_context) == "30"

    def test_diagnostic_comment(self, page_context):
        comment = diagnostic_comment("https://example.com/x", page_context)

        assert "Base URL: https://example.com/page.html" in comment
        assert "Proxy Base: http://testserver" in comment
        assert comment.rstrip().endswith("-->")
