"""OPML subscription list parsing for Patina."""

import xml.etree.ElementTree as ET

from .models import OpmlFeed


class OpmlParseError(Exception):
    """Raised when OPML content cannot be parsed."""

    pass


def parse_opml(content: str) -> list[OpmlFeed]:
    """Extract feed subscriptions from an OPML document.

    Outlines with an xmlUrl are feeds; any outline may contain nested
    outlines (folders), which are searched recursively.

    Args:
        content: OPML XML text

    Returns:
        List of OpmlFeed entries in document order

    Raises:
        OpmlParseError: If the XML is invalid or not an OPML document
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise OpmlParseError(f"Invalid XML: {e}") from e

    if root.tag.lower() != "opml":
        raise OpmlParseError(f"Not an OPML document (root element: {root.tag})")

    body = root.find("body")
    if body is None:
        raise OpmlParseError("OPML document missing <body> element")

    feeds: list[OpmlFeed] = []
    _collect_outlines(body, feeds)
    return feeds


def _collect_outlines(element: ET.Element, feeds: list[OpmlFeed]) -> None:
    for outline in element.findall("outline"):
        xml_url = (outline.get("xmlUrl") or outline.get("xmlurl") or "").strip()
        if xml_url:
            title = outline.get("text") or outline.get("title") or None
            feeds.append(OpmlFeed(url=xml_url, title=title))

        _collect_outlines(outline, feeds)
