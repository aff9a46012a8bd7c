# Copyright (C) 2024 TOOF Foundation Contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""HTML sanitizing and slug helpers for admin-authored content."""

import re
import unicodedata

import nh3

ALLOWED_TAGS = {
    "p", "b", "i", "u", "em", "strong",
    "h1", "h2", "h3", "h4", "h5", "h6",
    "ul", "ol", "li", "a", "br", "hr",
    "blockquote", "pre", "code", "span", "div",
}
ALLOWED_ATTRIBUTES = {"*": {"title", "class", "id"}, "a": {"href", "title", "class", "id"}}

_SLUG_STRIP = re.compile(r"[^a-z0-9\s-]")
_SLUG_DASHES = re.compile(r"[\s_-]+")


def sanitize_html(content: str) -> str:
    """Keep an allow-list of formatting tags; drop scripts, handlers and comments."""
    return nh3.clean(
        content,
        tags=ALLOWED_TAGS,
        attributes=ALLOWED_ATTRIBUTES,
        strip_comments=True,
    )


def strip_html(content: str) -> str:
    """Plain text of an HTML fragment."""
    return nh3.clean(content, tags=set())


def make_slug(value: str) -> str:
    """URL slug: ascii, lowercase, words joined by single dashes."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    value = _SLUG_STRIP.sub("", value.lower())
    return _SLUG_DASHES.sub("-", value).strip("-")
