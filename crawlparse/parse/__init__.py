"""Parse package: encoding detection, tolerant parsing and result packaging."""

from crawlparse.parse.backends import (
    BackendError,
    CharStream,
    DomFragmentBackend,
    LenientSaxBackend,
    ParseContext,
    ParserBackend,
    create_backend,
)
from crawlparse.parse.encoding import resolve_encoding, sniff_charset
from crawlparse.parse.models import (
    DocumentFragment,
    FailureKind,
    Node,
    ParseFailure,
    ParseOutcome,
    ParseStatus,
    ParseSuccess,
    RawContent,
    ResolvedEncoding,
)
from crawlparse.parse.pipeline import ParsePipeline, parse_content

__all__ = [
    "BackendError",
    "CharStream",
    "DocumentFragment",
    "DomFragmentBackend",
    "FailureKind",
    "LenientSaxBackend",
    "Node",
    "ParseContext",
    "ParseFailure",
    "ParseOutcome",
    "ParsePipeline",
    "ParseStatus",
    "ParseSuccess",
    "ParserBackend",
    "RawContent",
    "ResolvedEncoding",
    "create_backend",
    "parse_content",
    "resolve_encoding",
    "sniff_charset",
]
