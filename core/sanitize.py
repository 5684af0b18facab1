"""
sanitize.py -- Allow-list sanitization for CMS-rendered HTML.

CMS post bodies arrive as HTML and are rendered with |safe in templates, so
every rendered field passes through here first. nh3 drops any tag, attribute
or URL scheme not listed below.
"""

import html

import nh3

_ALLOWED_TAGS = {
    "p", "br", "strong", "em", "u",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "a", "blockquote", "code", "pre",
    "img", "figure", "figcaption", "div", "span", "hr",
}  # fmt: skip

_ALLOWED_ATTRIBUTES = {
    "a": {"href", "title", "target"},
    "img": {"src", "alt", "width", "height"},
    "div": {"class", "id"},
    "span": {"class", "id"},
}

_URL_SCHEMES = {"http", "https", "mailto", "tel"}


def sanitize_html(raw: str) -> str:
    """Return raw with everything outside the allow-list removed."""
    if not raw or not isinstance(raw, str):
        return ""
    return nh3.clean(
        raw,
        tags=_ALLOWED_TAGS,
        attributes=_ALLOWED_ATTRIBUTES,
        url_schemes=_URL_SCHEMES,
        link_rel="noopener noreferrer",
    )


def strip_tags(raw: str) -> str:
    """Plain text version of a rendered field (tags removed, entities decoded)."""
    if not raw or not isinstance(raw, str):
        return ""
    return html.unescape(nh3.clean(raw, tags=set())).strip()
