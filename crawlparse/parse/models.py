"""Data models for the parse pipeline.

Plain dataclasses: the raw fetched content, the encoding decision, the node
tree produced by the parser backends and the tagged parse outcome.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Mapping, Union

import httpx

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})

_WS_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Input
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RawContent:
    """One fetched document: body bytes, base URL and transport metadata.

    ``metadata`` is stored as :class:`httpx.Headers`, so lookups such as
    ``raw.metadata["content-type"]`` are case-insensitive.
    """

    base_url: str
    content: bytes
    metadata: Mapping[str, str] = field(default_factory=httpx.Headers)
    url: str | None = None
    content_type: str = "text/html"

    def __post_init__(self) -> None:
        if isinstance(self.content, (bytearray, memoryview)):
            object.__setattr__(self, "content", bytes(self.content))
        if not isinstance(self.metadata, httpx.Headers):
            object.__setattr__(self, "metadata", httpx.Headers(dict(self.metadata or {})))
        if self.url is None:
            object.__setattr__(self, "url", self.base_url)


# ---------------------------------------------------------------------------
# Encoding
# ---------------------------------------------------------------------------

class ClueSource(str, Enum):
    BOM = "bom"
    DECLARED = "declared"
    SNIFFED = "sniffed"
    DEFAULT = "default"


@dataclass(frozen=True)
class EncodingClue:
    source: ClueSource
    value: str | None


@dataclass(frozen=True)
class ResolvedEncoding:
    """The chosen encoding and the clue it came from.

    ``fallback_from`` is set by the pipeline when the originally resolved
    name could not be decoded and the configured default was used instead.
    """

    name: str
    source: ClueSource
    fallback_from: str | None = None


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------

class NodeType(str, Enum):
    ELEMENT = "element"
    TEXT = "text"
    COMMENT = "comment"


@dataclass
class Node:
    node_type: NodeType
    name: str = ""
    attrs: dict[str, str] = field(default_factory=dict)
    data: str = ""
    children: list[Node] = field(default_factory=list)

    @classmethod
    def element(cls, name: str, attrs: Mapping[str, Any] | None = None) -> Node:
        clean = {}
        for key, value in (attrs or {}).items():
            if isinstance(value, (list, tuple)):
                value = " ".join(value)
            clean[str(key).lower()] = "" if value is None else str(value)
        return cls(NodeType.ELEMENT, name=name.lower(), attrs=clean)

    @classmethod
    def text(cls, data: str) -> Node:
        return cls(NodeType.TEXT, data=data)

    @classmethod
    def comment(cls, data: str) -> Node:
        return cls(NodeType.COMMENT, data=data)

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def is_element(self) -> bool:
        return self.node_type is NodeType.ELEMENT

    def get(self, attr: str, default: str | None = None) -> str | None:
        return self.attrs.get(attr.lower(), default)

    def iter(self) -> Iterator[Node]:
        """Yield this node and all descendants in document order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find_all(self, name: str) -> list[Node]:
        name = name.lower()
        return [n for n in self.iter() if n.is_element and n.name == name]

    def find(self, name: str) -> Node | None:
        name = name.lower()
        for n in self.iter():
            if n.is_element and n.name == name:
                return n
        return None

    def text_content(self) -> str:
        return "".join(n.data for n in self.iter() if n.node_type is NodeType.TEXT)

    def to_html(self) -> str:
        return _serialise([self])

    def signature(self) -> tuple:
        """Structural identity: node kinds, names, attributes and normalised text."""
        if self.node_type is NodeType.ELEMENT:
            return (
                "element",
                self.name,
                tuple(sorted(self.attrs.items())),
                _signature_of(self.children),
            )
        return (self.node_type.value, _WS_RE.sub(" ", self.data).strip())


@dataclass
class DocumentFragment:
    """An ordered list of top-level nodes; no single root element is required."""

    children: list[Node] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.children)

    def __bool__(self) -> bool:
        return bool(self.children)

    def extended(self, nodes: list[Node]) -> DocumentFragment:
        """Return a new fragment with *nodes* appended as siblings."""
        return DocumentFragment(children=[*self.children, *nodes])

    def iter(self) -> Iterator[Node]:
        for child in self.children:
            yield from child.iter()

    def find_all(self, name: str) -> list[Node]:
        name = name.lower()
        return [n for n in self.iter() if n.is_element and n.name == name]

    def find(self, name: str) -> Node | None:
        name = name.lower()
        for n in self.iter():
            if n.is_element and n.name == name:
                return n
        return None

    def text_content(self) -> str:
        return "".join(n.data for n in self.iter() if n.node_type is NodeType.TEXT)

    def to_html(self) -> str:
        return _serialise(self.children)

    def signature(self) -> tuple:
        return _signature_of(self.children)


def _signature_of(nodes: list[Node]) -> tuple:
    # Whitespace-only text is layout, not structure.
    return tuple(
        n.signature()
        for n in nodes
        if not (n.node_type is NodeType.TEXT and not n.data.strip())
    )


def _serialise(nodes: list[Node]) -> str:
    out: list[str] = []
    # Entries are either a node to open or a closing-tag string.
    stack: list[Node | str] = list(reversed(nodes))
    raw_depth: list[bool] = []
    while stack:
        item = stack.pop()
        if isinstance(item, str):
            out.append(item)
            raw_depth.pop()
            continue
        if item.node_type is NodeType.TEXT:
            in_raw = bool(raw_depth) and raw_depth[-1]
            out.append(item.data if in_raw else html.escape(item.data, quote=False))
        elif item.node_type is NodeType.COMMENT:
            out.append(f"<!--{item.data}-->")
        else:
            attrs = "".join(
                f' {k}="{html.escape(v, quote=True)}"' for k, v in item.attrs.items()
            )
            out.append(f"<{item.name}{attrs}>")
            if item.name in VOID_ELEMENTS:
                continue
            raw_depth.append(item.name in RAW_TEXT_ELEMENTS)
            stack.append(f"</{item.name}>")
            stack.extend(reversed(item.children))
    return "".join(out)


# ---------------------------------------------------------------------------
# Extraction results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Outlink:
    url: str
    anchor: str = ""


@dataclass
class MetaTags:
    """Robots, caching and refresh directives found in ``<meta>``/``<base>`` tags."""

    no_index: bool = False
    no_follow: bool = False
    no_cache: bool = False
    refresh: bool = False
    refresh_time: int = 0
    refresh_href: str | None = None
    base_href: str | None = None
    general: dict[str, str] = field(default_factory=dict)
    http_equiv: dict[str, str] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

class ParseStatus(str, Enum):
    SUCCESS = "success"
    SUCCESS_REDIRECT = "success_redirect"
    SUCCESS_EMPTY = "success_empty"


class FailureKind(str, Enum):
    INVALID_URL = "invalid_url"
    UNREADABLE_CONTENT = "unreadable_content"
    UNSUPPORTED_ENCODING = "unsupported_encoding"
    PARSE_BACKEND_FAILURE = "parse_backend_failure"


@dataclass
class ParseSuccess:
    fragment: DocumentFragment
    text: str
    title: str
    outlinks: list[Outlink] = field(default_factory=list)
    metadata: dict[str, str] = field(default_factory=dict)
    encoding: ResolvedEncoding | None = None
    status: ParseStatus = ParseStatus.SUCCESS
    meta_tags: MetaTags = field(default_factory=MetaTags)
    iterations: int = 0
    partial: bool = False

    ok = True

    @property
    def encoding_fallback(self) -> bool:
        return self.encoding is not None and self.encoding.fallback_from is not None


@dataclass
class ParseFailure:
    kind: FailureKind
    message: str
    stage: str = ""

    ok = False


ParseOutcome = Union[ParseSuccess, ParseFailure]
