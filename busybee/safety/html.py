"""
HTML sanitization for user-authored task descriptions.

Descriptions are rendered into the DOM, so they are reduced to a small
formatting vocabulary with bleach. Newlines typed by the author become
``<br>`` elements. Running the sanitizer on its own output returns the
same string.
"""

import re
from urllib.parse import urlparse

import bleach

ALLOWED_TAGS = frozenset({"a", "img", "b", "strong", "i", "em", "u", "br"})

ALLOWED_ATTRIBUTES = {
    "a": frozenset({"href", "title"}),
    "img": frozenset({"src", "alt", "title"}),
}

# Per-attribute URL protocols; relative URLs carry no scheme and are kept
URL_PROTOCOLS = {
    ("a", "href"): frozenset({"http", "https", "mailto"}),
    ("img", "src"): frozenset({"http", "https"}),
}

ALL_PROTOCOLS = frozenset().union(*URL_PROTOCOLS.values())

# A tag in serialized bleach output; attribute values are always quoted
_MARKUP_TAG = re.compile(r"""(<(?:[^<>"']|"[^"]*"|'[^']*')*>)""")

# javascript: left in text or non-URL attributes; its colon is escaped as an entity
_SCRIPT_SCHEME = re.compile(r"(javascript):", re.IGNORECASE)

# Elements whose content is code, not text; removed together with their content
_EXECUTABLE_ELEMENT = re.compile(
    r"<(script|style|iframe|object|embed|template)\b[^>]*>.*?(?:</\1\s*>|\Z)",
    re.IGNORECASE | re.DOTALL,
)


def _allow_attribute(tag: str, name: str, value: str) -> bool:
    if name not in ALLOWED_ATTRIBUTES.get(tag, ()):
        return False
    protocols = URL_PROTOCOLS.get((tag, name))
    if protocols is None:
        return True
    scheme = urlparse(value.strip()).scheme.lower()
    return not scheme or scheme in protocols


_cleaner = bleach.Cleaner(
    tags=ALLOWED_TAGS,
    attributes=_allow_attribute,
    protocols=ALL_PROTOCOLS,
    strip=True,
    strip_comments=True,
)


def normalize_newlines(text: str) -> str:
    """Turn CRLF and lone CR into LF."""
    return text.replace("\r\n", "\n").replace("\r", "\n")


def clean_html(html: str) -> str:
    return _cleaner.clean(html)


def drop_executable_elements(html: str) -> str:
    return _EXECUTABLE_ELEMENT.sub("", html)


def mark_line_breaks(html: str) -> str:
    """
    Put a ``<br>`` in front of every newline in the text of cleaned HTML.

    Works on bleach output, where text never holds a raw ``<``, so the
    markup splits cleanly into tags and text. Newlines inside attribute
    values are left alone, as are newlines already preceded by a break.
    """
    parts = _MARKUP_TAG.split(html)
    # text sits at even indexes, tags at odd ones
    for index in range(0, len(parts), 2):
        text = parts[index].replace("\n", "<br>\n")
        if index and parts[index - 1] == "<br>" and text.startswith("<br>\n"):
            text = text[len("<br>"):]
        parts[index] = text
    return "".join(parts)


def neutralize_script_urls(html: str) -> str:
    return _SCRIPT_SCHEME.sub(r"\1&#58;", html)


def sanitize_description(text: str) -> str:
    html = clean_html(drop_executable_elements(normalize_newlines(text)))
    return neutralize_script_urls(mark_line_breaks(html))
