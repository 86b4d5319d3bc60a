import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ContentKind(str, Enum):
    MARKUP = "markup"
    STYLESHEET = "stylesheet"
    BINARY = "binary"


@dataclass(frozen=True)
class Classification:
    kind: ContentKind
    content_type_override: Optional[str] = None

    @property
    def rewrites_body(self) -> bool:
        # Top-level stylesheets are only rewritten through the CSS route
        return self.kind is ContentKind.MARKUP


def _extension(*extensions: str) -> re.Pattern:
    return re.compile(r"\.(?:%s)(\?|$)" % "|".join(extensions), re.IGNORECASE)


IMAGE_EXTENSION_RE = _extension("png", "jpg", "jpeg", "gif", "webp", "ico")
SVG_EXTENSION_RE = _extension("svg")
CSS_EXTENSION_RE = _extension("css")
JS_EXTENSION_RE = _extension("js")
PNG_EXTENSION_RE = _extension("png")
JPEG_EXTENSION_RE = _extension("jpe?g")

IMAGE_ACCEPT = "image/webp,image/apng,image/*,*/*;q=0.8"
SVG_ACCEPT = "image/svg+xml,image/*,*/*;q=0.8"
CSS_ACCEPT = "text/css,*/*;q=0.1"
SCRIPT_ACCEPT = "application/javascript,text/javascript,*/*;q=0.1"
DOCUMENT_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,"
    "image/webp,image/apng,*/*;q=0.8"
)

# (extension pattern, required substring of the declared type, forced type)
CONTENT_TYPE_OVERRIDES = (
    (SVG_EXTENSION_RE, "svg", "image/svg+xml"),
    (PNG_EXTENSION_RE, "png", "image/png"),
    (JPEG_EXTENSION_RE, "jpeg", "image/jpeg"),
)

# Rewritten markup is decoded with the upstream charset and re-encoded as UTF-8
MARKUP_CONTENT_TYPE = "text/html; charset=utf-8"


def content_type_override(declared: str, target_url: str) -> Optional[str]:
    declared = (declared or "").lower()
    for pattern, expected, forced in CONTENT_TYPE_OVERRIDES:
        if pattern.search(target_url) and expected not in declared:
            return forced
    return None


def classify(declared: Optional[str], target_url: str) -> Classification:
    content_type = (declared or "").lower()
    if "text/html" in content_type:
        return Classification(ContentKind.MARKUP)
    override = content_type_override(content_type, target_url)
    if "text/css" in content_type or (
        not content_type and CSS_EXTENSION_RE.search(target_url)
    ):
        return Classification(ContentKind.STYLESHEET, override)
    return Classification(ContentKind.BINARY, override)


def negotiate_accept(target_url: str) -> str:
    if IMAGE_EXTENSION_RE.search(target_url):
        return IMAGE_ACCEPT
    if SVG_EXTENSION_RE.search(target_url):
        return SVG_ACCEPT
    if CSS_EXTENSION_RE.search(target_url):
        return CSS_ACCEPT
    if JS_EXTENSION_RE.search(target_url):
        return SCRIPT_ACCEPT
    return DOCUMENT_ACCEPT


def fetch_destination(target_url: str) -> str:
    if IMAGE_EXTENSION_RE.search(target_url) or SVG_EXTENSION_RE.search(target_url):
        return "image"
    return "document"

