"""
Locator module for structured_scraper.

Compiles CSS and XPath selectors into XPath expressions and resolves single
named values from parsed document nodes (the field locator).
"""

import logging
from functools import lru_cache
from html import escape
from typing import Any, List, Optional, Union

import lxml.html
from cssselect import SelectorError
from lxml import etree
from lxml.cssselect import LxmlHTMLTranslator

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

SELECTOR_TYPES = ("css", "xpath")

_css_translator = LxmlHTMLTranslator()


@lru_cache(maxsize=2048)
def compile_selector(selector: str, selector_type: str = "css", relative: bool = True) -> str:
    """
    Compile a selector into an XPath expression.

    CSS selectors match descendant-or-self nodes. XPath selectors starting
    with "/" are anchored to the context node when ``relative`` is set.

    Args:
        selector: CSS or XPath selector
        selector_type: "css" or "xpath"
        relative: Whether an XPath should be evaluated relative to the context node

    Returns:
        XPath expression string

    Raises:
        ConfigurationError: If the selector is empty or malformed
    """
    if not selector or not selector.strip():
        raise ConfigurationError("Selector must not be empty")

    if selector_type == "css":
        try:
            expression = _css_translator.css_to_xpath(selector.strip())
        except SelectorError as e:
            raise ConfigurationError(f"Invalid CSS selector {selector!r}: {e}") from e
    elif selector_type == "xpath":
        expression = selector.strip()
        if relative and expression.startswith("/"):
            expression = "." + expression
    else:
        raise ConfigurationError(f"Unsupported selector type: {selector_type}")

    try:
        # undefined prefixes and unknown functions only fail on evaluation
        etree.XPath(expression)(etree.Element("html"))
    except etree.XPathError as e:
        raise ConfigurationError(f"Invalid XPath expression {expression!r}: {e}") from e

    return expression


def select(node: etree._Element, selector: str, selector_type: str = "css", relative: bool = True) -> List[Any]:
    """
    Evaluate a selector against a node.

    Returns:
        Matches in document order. Scalar XPath results are wrapped in a list.
    """
    result = node.xpath(compile_selector(selector, selector_type, relative))
    if isinstance(result, list):
        return result
    return [result]


def select_elements(node: etree._Element, selector: str, selector_type: str = "css", relative: bool = True) -> List[etree._Element]:
    """Like select(), keeping element matches only."""
    return [match for match in select(node, selector, selector_type, relative) if _is_element(match)]


def _is_element(value: Any) -> bool:
    return isinstance(value, etree._Element) and isinstance(value.tag, str)


def text_of(node: etree._Element) -> str:
    """Return the stripped concatenated text content of a node."""
    return "".join(node.itertext()).strip()


def inner_html(node: etree._Element) -> str:
    """Return the serialized markup inside a node, excluding the node's own tag."""
    parts = [escape(node.text, quote=False)] if node.text else []
    for child in node:
        parts.append(lxml.html.tostring(child, encoding="unicode", with_tail=True))
    return "".join(parts)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def value_of(match: Any, mode: str, attribute: Optional[str] = None) -> Optional[str]:
    """
    Read a value from a single selector match according to the extraction mode.

    Args:
        match: Element or scalar XPath result
        mode: "text", "attribute" or "html"
        attribute: Attribute name, required for attribute mode

    Returns:
        The value, or None when an attribute is missing
    """
    if not _is_element(match):
        return _scalar(match)
    if mode == "attribute":
        return match.get(attribute)
    if mode == "html":
        return inner_html(match)
    return text_of(match)


def locate(node: etree._Element, field: Any, selector_type: str = "css") -> Union[str, List[str], None]:
    """
    Resolve a leaf field against a node.

    Args:
        node: Context node (container or document root)
        field: Leaf field definition
        selector_type: "css" or "xpath"

    Returns:
        A list of values for multiple fields (possibly empty), otherwise the
        first match's value or None when nothing matched
    """
    matches = select(node, field.selector, selector_type)

    if field.multiple:
        values = []
        for match in matches:
            value = value_of(match, field.type, field.attribute)
            if value is not None:
                values.append(value)
        return values

    if not matches:
        return None
    return value_of(matches[0], field.type, field.attribute)
