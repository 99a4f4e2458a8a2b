"""
Document module for structured_scraper.

Wraps raw HTML together with its lazily parsed lxml tree and visible text,
so a page is parsed once and shared read-only by every strategy.
"""

import logging
from functools import cached_property
from typing import Optional, Union

import lxml.html

logger = logging.getLogger(__name__)

_HIDDEN_TAGS = frozenset({"script", "style", "template"})

# elements that break words apart; text inside any other element runs on
_BLOCK_TAGS = frozenset({
    "address", "article", "aside", "blockquote", "body", "br", "caption", "dd", "details",
    "div", "dl", "dt", "fieldset", "figcaption", "figure", "footer", "form", "h1", "h2",
    "h3", "h4", "h5", "h6", "head", "header", "hr", "html", "li", "main", "nav", "ol",
    "option", "p", "pre", "section", "summary", "table", "tbody", "td", "tfoot", "th",
    "thead", "title", "tr", "ul",
})


def parse_html(html: Union[str, bytes]) -> lxml.html.HtmlElement:
    """
    Parse HTML into an lxml document tree.

    Args:
        html: Raw HTML markup

    Returns:
        Root <html> element (an empty document for blank input)
    """
    if isinstance(html, str):
        html = html.encode("utf-8")
    if not html or not html.strip():
        html = b"<html></html>"

    parser = lxml.html.HTMLParser(encoding="utf-8")
    return lxml.html.document_fromstring(html, parser=parser)


class Document:
    """A single page: raw HTML plus the derived tree and text."""

    def __init__(self, html: str, url: Optional[str] = None):
        self.html = html or ""
        self.url = url

    def __repr__(self) -> str:
        return f"Document(url={self.url!r}, size={len(self.html)})"

    @cached_property
    def tree(self) -> lxml.html.HtmlElement:
        return parse_html(self.html)

    @cached_property
    def text(self) -> str:
        """
        Visible text of the page.

        Script, style and template content is dropped. Text inside inline
        elements joins its neighbours directly, so "555-<b>123</b>-4567"
        reads as one token; block elements separate words. Whitespace runs
        collapse to single spaces.
        """
        return visible_text(self.tree)


def as_document(source: Union[str, Document]) -> Document:
    """Accept either raw HTML or an existing Document."""
    if isinstance(source, Document):
        return source
    if isinstance(source, str):
        return Document(source)
    raise TypeError(f"Expected HTML string or Document, got {type(source).__name__}")


def visible_text(root: lxml.html.HtmlElement) -> str:
    """Collect the rendered text under a node, see Document.text."""
    parts = []
    stack = [(root, False)]
    while stack:
        node, closing = stack.pop()
        # comments and processing instructions have a non-string tag
        tag = node.tag if isinstance(node.tag, str) else None

        if closing:
            if tag in _BLOCK_TAGS:
                parts.append(" ")
            if node.tail and node is not root:
                parts.append(node.tail)
            continue

        stack.append((node, True))
        if tag is None or tag in _HIDDEN_TAGS:
            continue
        if tag in _BLOCK_TAGS:
            parts.append(" ")
        if node.text:
            parts.append(node.text)
        stack.extend((child, False) for child in reversed(node))

    return " ".join("".join(parts).split())
