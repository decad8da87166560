"""Decode-and-parse pipeline: raw bytes in, :data:`ParseOutcome` out.

Stages run strictly forward::

    start -> encoding_sniffed -> encoding_resolved -> decoded -> parsed -> packaged

and any stage may end in ``failed``.  Expected failures are returned as
:class:`ParseFailure` values and logged with the stage and base URL; they are
never raised.  The pipeline holds only read-only configuration, so one
instance can serve concurrent callers.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable
from urllib.parse import urlsplit

from crawlparse.config import Settings
from crawlparse.parse.accumulator import AccumulationState, accumulate
from crawlparse.parse.backends import CharStream, ParseContext, ParserBackend, create_backend
from crawlparse.parse.encoding import (
    collect_clues,
    decode_content,
    normalise_encoding_name,
    resolve_encoding,
    sniff_charset,
)
from crawlparse.parse.extractor import (
    ContentExtractor,
    create_extractor,
    strip_non_char_codepoints,
)
from crawlparse.parse.filters import ParseFilter, ParseFilterChain
from crawlparse.parse.meta_tags import collect_meta_tags
from crawlparse.parse.models import (
    ClueSource,
    FailureKind,
    ParseFailure,
    ParseOutcome,
    ParseStatus,
    ParseSuccess,
    RawContent,
    ResolvedEncoding,
)

logger = logging.getLogger(__name__)


class PipelineStage(str, Enum):
    START = "start"
    ENCODING_SNIFFED = "encoding_sniffed"
    ENCODING_RESOLVED = "encoding_resolved"
    DECODED = "decoded"
    PARSED = "parsed"
    PACKAGED = "packaged"
    FAILED = "failed"


def is_valid_base_url(url: str) -> bool:
    """Return ``True`` if *url* is absolute with a host (or is a ``file:`` URL)."""
    if not isinstance(url, str) or not url or url != url.strip():
        return False
    if any(ch.isspace() for ch in url):
        return False
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.scheme:
        return False
    if parts.scheme.lower() == "file":
        return bool(parts.path)
    return bool(parts.hostname)


class ParsePipeline:
    """Sniff, resolve, decode, accumulate-parse and package one document per call.

    Args:
        settings: Read-only configuration; a fresh :class:`Settings` when omitted.
        backend: Parser backend; built from ``settings.backend`` when omitted.
        extractor: Title/text/outlink extractor; built from ``settings.extractor``
            when omitted.
        filters: Parse filters applied, in order, to successful outcomes.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        backend: ParserBackend | None = None,
        extractor: ContentExtractor | None = None,
        filters: Iterable[ParseFilter] | ParseFilterChain | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.backend = backend or create_backend(self.settings)
        self.extractor = extractor or create_extractor(self.settings)
        if isinstance(filters, ParseFilterChain):
            self.filters = filters
        else:
            self.filters = ParseFilterChain(filters or ())

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def parse(self, raw: RawContent) -> ParseOutcome:
        stage = PipelineStage.START
        if not is_valid_base_url(raw.base_url):
            return self._fail(
                raw, stage, FailureKind.INVALID_URL, f"Malformed base URL: {raw.base_url!r}"
            )
        if not isinstance(raw.content, (bytes, bytearray, memoryview)):
            return self._fail(
                raw,
                stage,
                FailureKind.UNREADABLE_CONTENT,
                f"Content is {type(raw.content).__name__}, not bytes",
            )
        try:
            body = bytes(raw.content)
        except ValueError as exc:
            return self._fail(raw, stage, FailureKind.UNREADABLE_CONTENT, str(exc))

        sniffed = sniff_charset(body, self.settings.sniff_limit)
        stage = PipelineStage.ENCODING_SNIFFED

        clues = collect_clues(
            body,
            raw.metadata,
            sniffed,
            self.settings.default_encoding,
            detect_bom=self.settings.detect_bom,
        )
        encoding = resolve_encoding(clues, self.settings.default_encoding)
        stage = PipelineStage.ENCODING_RESOLVED

        try:
            text, encoding = self._decode(raw, body, encoding)
        except LookupError as exc:
            return self._fail(
                raw,
                stage,
                FailureKind.UNSUPPORTED_ENCODING,
                f"Cannot decode with {encoding.name!r} or the default "
                f"{self.settings.default_encoding!r}: {exc}",
            )
        stage = PipelineStage.DECODED

        try:
            state = accumulate(
                self.backend,
                CharStream(text),
                ParseContext.FRAGMENT,
                self.settings.max_iterations,
            )
            stage = PipelineStage.PARSED
            outcome = self._package(raw, body, state, encoding)
        except (MemoryError, RecursionError) as exc:
            return self._fail(
                raw,
                stage,
                FailureKind.PARSE_BACKEND_FAILURE,
                f"{type(exc).__name__} in {self.backend.name}: {exc}",
            )

        logger.debug(
            f"[pipeline] {raw.base_url} packaged: encoding={encoding.name} "
            f"calls={state.iterations} nodes={len(state.root)}"
        )
        return outcome

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------
    def _decode(
        self, raw: RawContent, body: bytes, encoding: ResolvedEncoding
    ) -> tuple[str, ResolvedEncoding]:
        """Decode *body*, retrying once with the configured default.

        Raises:
            LookupError: If the default encoding cannot decode either.
        """
        try:
            return decode_content(body, encoding.name), encoding
        except LookupError:
            default = (
                normalise_encoding_name(self.settings.default_encoding)
                or self.settings.default_encoding
            )
            logger.warning(
                f"[pipeline] Unsupported encoding {encoding.name!r} for "
                f"{raw.base_url}; retrying with default {default!r}"
            )
            text = decode_content(body, default)
            return text, ResolvedEncoding(
                name=default, source=ClueSource.DEFAULT, fallback_from=encoding.name
            )

    def _package(
        self,
        raw: RawContent,
        body: bytes,
        state: AccumulationState,
        encoding: ResolvedEncoding,
    ) -> ParseSuccess:
        fragment = state.root
        meta_tags = collect_meta_tags(fragment, raw.base_url)
        extraction = self.extractor.extract(fragment, meta_tags.base_href or raw.base_url)

        title, text, outlinks = extraction.title, extraction.text, extraction.outlinks
        if meta_tags.no_index:
            title, text = "", ""
        if meta_tags.no_follow:
            outlinks = []
        if not text and body:
            logger.warning(f"[pipeline] Empty content from {raw.base_url}")

        metadata = {
            "original_char_encoding": encoding.name,
            "char_encoding_for_conversion": encoding.name,
            "encoding_source": encoding.source.value,
        }
        if encoding.fallback_from is not None:
            metadata["encoding_fallback_from"] = encoding.fallback_from
        if state.partial:
            metadata["parse_partial"] = state.error or "iteration limit reached"
            logger.warning(
                f"[pipeline] Partial parse of {raw.base_url} after "
                f"{state.iterations} calls: {metadata['parse_partial']}"
            )

        if not body:
            status = ParseStatus.SUCCESS_EMPTY
        elif meta_tags.refresh:
            status = ParseStatus.SUCCESS_REDIRECT
        else:
            status = ParseStatus.SUCCESS

        outcome = ParseSuccess(
            fragment=fragment,
            text=strip_non_char_codepoints(text),
            title=strip_non_char_codepoints(title),
            outlinks=list(outlinks),
            metadata=metadata,
            encoding=encoding,
            status=status,
            meta_tags=meta_tags,
            iterations=state.iterations,
            partial=state.partial,
        )

        outcome = self.filters.run(raw, outcome, meta_tags, fragment)
        if meta_tags.no_cache:
            outcome.metadata["caching.forbidden"] = self.settings.caching_forbidden_policy
        return outcome

    def _fail(
        self,
        raw: RawContent,
        stage: PipelineStage,
        kind: FailureKind,
        message: str,
    ) -> ParseFailure:
        logger.error(f"[pipeline] {stage.value} -> failed ({kind.value}) for {raw.base_url}: {message}")
        return ParseFailure(kind=kind, message=message, stage=stage.value)


def parse_content(raw: RawContent, settings: Settings | None = None) -> ParseOutcome:
    """One-shot convenience wrapper around :class:`ParsePipeline`."""
    return ParsePipeline(settings).parse(raw)
