"""Tag-soup tolerant HTML parser backends.

Two interchangeable strategies share one interface,
``parse(stream, context) -> list[Node]``:

  * :class:`LenientSaxBackend`: lxml's event-driven HTML parser (libxml2 in
    recover mode) feeding a small tree-builder target.  It consumes the whole
    remaining stream in a single call.
  * :class:`DomFragmentBackend`: BeautifulSoup with the ``html.parser``
    builder in fragment mode.  It returns a bounded batch of top-level nodes
    per call and leaves the rest of the stream for the next call.

Both repair unmatched tags, missing end tags and bad nesting instead of
rejecting the input.  An empty list is a normal result, not an error.
The backend is chosen once, from :class:`~crawlparse.config.Settings`, by
:func:`create_backend`.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from enum import Enum

from bs4 import BeautifulSoup
from bs4.builder import ParserRejectedMarkup
from bs4.element import (
    CData,
    Comment,
    Declaration,
    Doctype,
    NavigableString,
    ProcessingInstruction,
    Tag,
)
from lxml import etree

from crawlparse.config import BackendKind, Settings
from crawlparse.logging_utils import TRACE
from crawlparse.parse.models import RAW_TEXT_ELEMENTS, VOID_ELEMENTS, Node, NodeType

logger = logging.getLogger(__name__)

KNOWN_ELEMENTS = frozenset(
    """
    a abbr acronym address applet area article aside audio b base basefont bdi
    bdo bgsound big blink blockquote body br button canvas caption center cite
    code col colgroup data datalist dd del details dfn dialog dir div dl dt em
    embed fieldset figcaption figure font footer form frame frameset h1 h2 h3
    h4 h5 h6 head header hgroup hr html i iframe img input ins isindex kbd
    keygen label legend li link listing main map mark marquee menu menuitem
    meta meter nav nobr noembed noframes noscript object ol optgroup option
    output p param picture plaintext pre progress q rb rp rt rtc ruby s samp
    script search section select slot small source spacer span strike strong
    style sub summary sup svg math table tbody td template textarea tfoot th
    thead time title tr track tt u ul var video wbr xmp
    """.split()
)

# Document wrappers libxml2 adds on its own; dropped in fragment context.
_WRAPPER_ELEMENTS = frozenset({"html", "head", "body"})

# Leftover of a tag the parser could not close, e.g. ``<div class="x`` at EOF.
_MALFORMED_TAG_RE = re.compile(r"^\s*<[a-zA-Z/!][^>]*$")


class ParseContext(str, Enum):
    FRAGMENT = "fragment"
    DOCUMENT = "document"


class BackendError(Exception):
    """A backend gave up on the markup; nodes produced so far remain usable."""


# ---------------------------------------------------------------------------
# Character stream
# ---------------------------------------------------------------------------

class CharStream:
    """Read cursor over decoded markup, shared by successive backend calls."""

    def __init__(self, text: str) -> None:
        self._text = text
        self.position = 0
        self._lookahead: tuple[int, object] | None = None

    def __len__(self) -> int:
        return len(self._text)

    @property
    def exhausted(self) -> bool:
        return self.position >= len(self._text)

    def remaining(self) -> str:
        """Return the unread text without consuming it."""
        return self._text[self.position:]

    def read(self, size: int = -1) -> str:
        if size is None or size < 0:
            size = len(self._text) - self.position
        chunk = self._text[self.position:self.position + size]
        self.position += len(chunk)
        return chunk

    def advance(self, count: int) -> None:
        self.position = min(len(self._text), self.position + max(count, 0))

    def remember(self, payload: object) -> None:
        """Keep already-parsed lookahead for the text at the current position."""
        self._lookahead = (self.position, payload)

    def recall(self) -> object | None:
        """Return the lookahead stored for the current position, if any."""
        if self._lookahead is None or self._lookahead[0] != self.position:
            return None
        return self._lookahead[1]


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class ParserBackend(ABC):
    """One tolerant HTML parser strategy."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend identifier used in logs."""

    @abstractmethod
    def parse(self, stream: CharStream, context: ParseContext) -> list[Node]:
        """Consume some or all of *stream* and return the top-level nodes built.

        Raises:
            BackendError: If the underlying parser rejects the markup.
        """


# ---------------------------------------------------------------------------
# lxml event-driven backend
# ---------------------------------------------------------------------------

class _TreeBuilderTarget:
    """lxml parser target that turns start/end/data/comment events into Nodes."""

    def __init__(self) -> None:
        self.roots: list[Node] = []
        self._open: list[Node] = []

    def _siblings(self) -> list[Node]:
        return self._open[-1].children if self._open else self.roots

    def start(self, tag, attrib) -> None:
        node = Node.element(str(tag), dict(attrib))
        self._siblings().append(node)
        if node.name not in VOID_ELEMENTS:
            self._open.append(node)

    def end(self, tag) -> None:
        name = str(tag).lower()
        for index in range(len(self._open) - 1, -1, -1):
            if self._open[index].name == name:
                del self._open[index:]
                return
        # Stray end tag: nothing to close.

    def data(self, data: str) -> None:
        siblings = self._siblings()
        if siblings and siblings[-1].node_type is NodeType.TEXT:
            siblings[-1].data += data
        else:
            siblings.append(Node.text(data))

    def comment(self, text: str) -> None:
        self._siblings().append(Node.comment(text))

    def close(self) -> list[Node]:
        return self.roots


def _unwrap_wrappers(nodes: list[Node]) -> list[Node]:
    result: list[Node] = []
    for node in nodes:
        if node.is_element and node.name in _WRAPPER_ELEMENTS:
            result.extend(_unwrap_wrappers(node.children))
        else:
            result.append(node)
    return result


class LenientSaxBackend(ParserBackend):
    """Single-pass event-driven parse through libxml2's HTML recover mode."""

    @property
    def name(self) -> str:
        return BackendKind.LENIENT_SAX.value

    def parse(self, stream: CharStream, context: ParseContext) -> list[Node]:
        markup = stream.read()
        if not markup.strip():
            return []

        target = _TreeBuilderTarget()
        # The stream is already decoded; the explicit encoding makes libxml2
        # ignore any charset the document declares about itself.
        parser = etree.HTMLParser(
            target=target,
            encoding="utf-8",
            recover=True,
            no_network=True,
            remove_pis=True,
        )
        try:
            parser.feed(markup.encode("utf-8", "replace"))
            roots = parser.close()
        except etree.LxmlError as exc:
            raise BackendError(f"lxml rejected markup: {exc}") from exc

        if context is ParseContext.FRAGMENT:
            roots = _unwrap_wrappers(roots)
        return roots


# ---------------------------------------------------------------------------
# BeautifulSoup fragment backend
# ---------------------------------------------------------------------------

def _line_starts(text: str) -> list[int]:
    starts = [0]
    index = text.find("\n")
    while index != -1:
        starts.append(index + 1)
        index = text.find("\n", index + 1)
    return starts


class _SoupCursor:
    """Top-level items of one BeautifulSoup parse and how far they were handed out."""

    def __init__(self, items: list, markup: str, origin: int) -> None:
        self.items = list(items)
        self.index = 0
        self.origin = origin
        self._markup = markup
        self._line_starts: list[int] | None = None

    def offset_of(self, item) -> int | None:
        """Offset of a top-level Tag within the parsed markup; None for strings."""
        if not isinstance(item, Tag) or item.sourceline is None:
            return None
        if self._line_starts is None:
            self._line_starts = _line_starts(self._markup)
        return self._line_starts[item.sourceline - 1] + item.sourcepos


class DomFragmentBackend(ParserBackend):
    """Fragment-mode parse returning at most *max_nodes* top-level nodes per call.

    Feature switches:
      * ``ignore_unknown_elements``: tags that are not HTML elements are
        dropped and their children kept in place.
      * ``malformed_tags_as_text``: when false, unterminated tag remnants
        that the parser handed back as text are discarded.
      * ``report_errors``: log each repair at TRACE level.
    """

    def __init__(
        self,
        max_nodes: int = 64,
        ignore_unknown_elements: bool = True,
        malformed_tags_as_text: bool = False,
        report_errors: bool = False,
    ) -> None:
        self.max_nodes = max_nodes
        self.ignore_unknown_elements = ignore_unknown_elements
        self.malformed_tags_as_text = malformed_tags_as_text
        self.report_errors = report_errors

    @property
    def name(self) -> str:
        return BackendKind.DOM_FRAGMENT.value

    def parse(self, stream: CharStream, context: ParseContext) -> list[Node]:
        cursor = stream.recall()
        if not isinstance(cursor, _SoupCursor):
            markup = stream.remaining()
            if not markup:
                return []
            try:
                soup = BeautifulSoup(markup, "html.parser")
            except (ParserRejectedMarkup, AssertionError) as exc:
                stream.advance(len(markup))
                raise BackendError(f"html.parser rejected markup: {exc}") from exc
            cursor = _SoupCursor(soup.contents, markup, stream.position)

        batch_limit = self.max_nodes if context is ParseContext.FRAGMENT else None
        nodes: list[Node] = []
        while cursor.index < len(cursor.items):
            item = cursor.items[cursor.index]
            if batch_limit is not None and len(nodes) >= batch_limit:
                offset = cursor.offset_of(item)
                if offset is not None and offset > 0:
                    # Hand the rest out on the next call without re-parsing.
                    stream.advance(cursor.origin + offset - stream.position)
                    stream.remember(cursor)
                    return nodes
            nodes.extend(self._convert(item))
            cursor.index += 1

        stream.advance(len(stream))
        return nodes

    def _convert(self, item) -> list[Node]:
        """Convert one bs4 node (and its subtree) into crawlparse Nodes."""
        out: list[Node] = []
        # (bs4 node, list to append to, inside a raw-text element)
        pending = [(item, out, False)]
        while pending:
            source, siblings, raw = pending.pop()

            if isinstance(source, Tag):
                name = (source.name or "").lower()
                if self.ignore_unknown_elements and name not in KNOWN_ELEMENTS:
                    self._report(f"dropped unknown element <{name}>")
                    target = siblings
                else:
                    node = Node.element(name, source.attrs)
                    siblings.append(node)
                    target = node.children
                    raw = name in RAW_TEXT_ELEMENTS
                for child in reversed(source.contents):
                    pending.append((child, target, raw))
                continue

            if isinstance(source, Comment):
                siblings.append(Node.comment(str(source)))
            elif isinstance(source, (Doctype, Declaration, ProcessingInstruction)):
                continue
            elif isinstance(source, CData):
                siblings.append(Node.text(str(source)))
            elif isinstance(source, NavigableString):
                data = str(source)
                if (
                    not raw
                    and not self.malformed_tags_as_text
                    and _MALFORMED_TAG_RE.match(data)
                ):
                    self._report(f"dropped malformed tag text {data[:40]!r}")
                    continue
                if siblings and siblings[-1].node_type is NodeType.TEXT:
                    siblings[-1].data += data
                else:
                    siblings.append(Node.text(data))
        return out

    def _report(self, message: str) -> None:
        if self.report_errors:
            logger.log(TRACE, f"[{self.name}] {message}")


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_backend(settings: Settings) -> ParserBackend:
    """Build the backend named by ``settings.backend``."""
    if settings.backend is BackendKind.LENIENT_SAX:
        return LenientSaxBackend()
    if settings.backend is BackendKind.DOM_FRAGMENT:
        return DomFragmentBackend(
            max_nodes=settings.max_nodes_per_call,
            ignore_unknown_elements=settings.ignore_unknown_elements,
            malformed_tags_as_text=settings.malformed_tags_as_text,
            report_errors=settings.trace and logger.isEnabledFor(TRACE),
        )
    raise ValueError(f"Unknown parser backend: {settings.backend!r}")
