"""Title, text and outlink extraction from a parsed :class:`DocumentFragment`.

The pipeline only depends on the :class:`ContentExtractor` interface; site
specific extractors can be plugged in the same way as the two defined here.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List
from urllib.parse import urldefrag, urljoin, urlsplit

import trafilatura

from crawlparse.config import ExtractorKind, Settings
from crawlparse.parse.models import DocumentFragment, Node, NodeType, Outlink

logger = logging.getLogger(__name__)

_SKIP_TEXT = frozenset({"script", "style", "noscript", "template", "title"})
_BLOCK_ELEMENTS = frozenset(
    """
    address article aside blockquote br caption dd div dl dt fieldset
    figcaption figure footer form h1 h2 h3 h4 h5 h6 header hr li main nav ol
    option p pre section table tbody td tfoot th thead tr ul
    """.split()
)
# (element, attribute) pairs that point at other documents.
_LINK_ATTRS = (
    ("a", "href"),
    ("area", "href"),
    ("frame", "src"),
    ("iframe", "src"),
    ("link", "href"),
    ("form", "action"),
)
_FOLLOW_SCHEMES = frozenset({"http", "https"})
_WS_RE = re.compile(r"\s+")


@dataclass
class Extraction:
    title: str = ""
    text: str = ""
    outlinks: List[Outlink] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _collapse(text: str) -> str:
    return _WS_RE.sub(" ", text).strip()


def _extract_title(fragment: DocumentFragment) -> str:
    """Return the text of the first ``<title>`` element, or empty string."""
    title = fragment.find("title")
    if title is None:
        return ""
    return _collapse(title.text_content())


def _extract_text(fragment: DocumentFragment) -> str:
    """Concatenate visible text, treating block element edges as spaces."""
    parts: list[str] = []
    stack: list[Node | None] = list(reversed(fragment.children))
    while stack:
        node = stack.pop()
        if node is None:
            parts.append(" ")
            continue
        if node.node_type is NodeType.TEXT:
            parts.append(node.data)
        elif node.is_element and node.name not in _SKIP_TEXT:
            block = node.name in _BLOCK_ELEMENTS
            if block:
                parts.append(" ")
                stack.append(None)
            stack.extend(reversed(node.children))
    return _collapse("".join(parts))


def _extract_links(fragment: DocumentFragment, base_url: str) -> List[Outlink]:
    """Return deduplicated absolute outlinks in document order.

    Fragment-only links, non-HTTP schemes and POST forms are excluded.  The
    first anchor text seen for a URL is kept.
    """
    wanted = dict(_LINK_ATTRS)
    seen: set[str] = set()
    links: List[Outlink] = []
    for node in fragment.iter():
        if not node.is_element or node.name not in wanted:
            continue
        if node.name == "form" and (node.get("method") or "get").lower() != "get":
            continue
        raw = (node.get(wanted[node.name]) or "").strip()
        if not raw or raw.startswith("#"):
            continue
        try:
            url, _ = urldefrag(urljoin(base_url, raw))
            scheme = urlsplit(url).scheme.lower()
        except ValueError as exc:
            logger.debug(f"[extractor] Skipping malformed link {raw!r}: {exc}")
            continue
        if scheme not in _FOLLOW_SCHEMES:
            continue
        if url in seen:
            continue
        seen.add(url)
        anchor = _collapse(node.text_content()) if node.name == "a" else ""
        links.append(Outlink(url=url, anchor=anchor))
    return links


def strip_non_char_codepoints(text: str) -> str:
    """Drop Unicode non-characters and control characters except TAB, LF and CR."""
    kept = []
    for ch in text:
        cp = ord(ch)
        if (cp & 0xFFFE) == 0xFFFE:
            continue
        if 0xFDD0 <= cp <= 0xFDEF:
            continue
        if cp < 0x20 and ch not in "\t\n\r":
            continue
        kept.append(ch)
    return "".join(kept)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class ContentExtractor(ABC):
    """Turns a parsed fragment into title, text and outlinks."""

    @abstractmethod
    def extract(self, fragment: DocumentFragment, base_url: str) -> Extraction:
        """Extract from *fragment*; relative links resolve against *base_url*."""


class DomExtractor(ContentExtractor):
    def extract(self, fragment: DocumentFragment, base_url: str) -> Extraction:
        return Extraction(
            title=_extract_title(fragment),
            text=_extract_text(fragment),
            outlinks=_extract_links(fragment, base_url),
        )


class ReadableExtractor(ContentExtractor):
    """Main-content text via ``trafilatura``, falling back to all visible text.

    trafilatura drops navigation and boilerplate; for minimal pages it may
    return nothing, in which case the plain DOM text is used.
    """

    def __init__(self) -> None:
        self._dom = DomExtractor()

    def extract(self, fragment: DocumentFragment, base_url: str) -> Extraction:
        result = self._dom.extract(fragment, base_url)
        if not fragment:
            return result

        text: str | None = trafilatura.extract(
            fragment.to_html(),
            include_links=False,
            include_images=False,
            include_tables=True,
            url=base_url,
        )
        if text:
            result.text = _collapse(text)
        else:
            logger.debug(f"[extractor] trafilatura found no main content in {base_url}")
        return result


def create_extractor(settings: Settings) -> ContentExtractor:
    if settings.extractor is ExtractorKind.READABLE:
        return ReadableExtractor()
    return DomExtractor()
