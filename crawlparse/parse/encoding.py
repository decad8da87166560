"""Character encoding detection for fetched byte content.

Three kinds of evidence are combined:

* the ``charset`` declared by the transport (``Content-Type`` header),
* a ``<meta http-equiv="Content-Type">`` declaration sniffed from the first
  couple of thousand bytes of the body,
* the configured default.

A byte-order mark, when present, is treated as an additional clue that
outranks the others.  :func:`resolve_encoding` picks the first usable clue;
whether the winning name actually decodes is only discovered by
:func:`decode_content`.
"""

from __future__ import annotations

import codecs
import logging
import re
from typing import Iterable, Mapping

from crawlparse.parse.models import ClueSource, EncodingClue, ResolvedEncoding

logger = logging.getLogger(__name__)

# Some documents carry their meta tag well past the first 1000 bytes.
DEFAULT_SNIFF_LIMIT = 2000

# Quotes around the http-equiv value are optional, single or double.
_META_RE = re.compile(
    r"<meta\s+([^>]*http-equiv=(\"|')?content-type(\"|')?[^>]*)>",
    re.IGNORECASE,
)
_CHARSET_RE = re.compile(r"charset=\s*([a-z][_\-0-9a-z]*)", re.IGNORECASE)
_CONTENT_TYPE_CHARSET_RE = re.compile(
    r"charset\s*=\s*[\"']?([^\"';,\s]+)", re.IGNORECASE
)
_VALID_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9._:\-]*$")

# Longest marks first: the UTF-32 LE mark starts with the UTF-16 LE one.
_BOMS = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)


# ---------------------------------------------------------------------------
# Clue sources
# ---------------------------------------------------------------------------

def sniff_charset(content: bytes, limit: int = DEFAULT_SNIFF_LIMIT) -> str | None:
    """Return the ``charset`` of the first Content-Type ``<meta>`` tag, or ``None``.

    Only the first *limit* bytes are inspected.  Each byte is mapped to one
    code point (latin-1), which is enough to find ASCII markup without
    knowing the real encoding.  Multi-byte encodings such as UTF-16 are not
    handled here; see :func:`sniff_bom`.
    """
    if not isinstance(content, (bytes, bytearray, memoryview)) or limit <= 0:
        return None
    prefix = bytes(content[:limit]).decode("latin-1")

    meta = _META_RE.search(prefix)
    if meta is None:
        return None
    charset = _CHARSET_RE.search(meta.group(1))
    if charset is None:
        return None
    return charset.group(1)


def sniff_bom(content: bytes) -> str | None:
    """Return the encoding announced by a leading byte-order mark, if any."""
    if not isinstance(content, (bytes, bytearray, memoryview)):
        return None
    head = bytes(content[:4])
    for bom, name in _BOMS:
        if head.startswith(bom):
            return name
    return None


def charset_from_content_type(value: str | None) -> str | None:
    """Extract the ``charset`` parameter from a Content-Type header value."""
    if not value:
        return None
    match = _CONTENT_TYPE_CHARSET_RE.search(value)
    if match is None:
        return None
    return match.group(1)


def declared_charset(metadata: Mapping[str, str]) -> str | None:
    """Return the charset the transport declared in its Content-Type metadata.

    *metadata* is expected to be case-insensitive (``httpx.Headers``); plain
    dicts are searched key by key.
    """
    value = metadata.get("Content-Type")
    if value is None:
        for key, candidate in metadata.items():
            if key.lower() == "content-type":
                value = candidate
                break
    return charset_from_content_type(value)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def normalise_encoding_name(name: str | None) -> str | None:
    """Case-fold and trim *name*; ``None`` if it is not a plausible charset label."""
    if name is None:
        return None
    cleaned = name.strip().strip("\"'").strip().lower()
    if not cleaned or not _VALID_NAME_RE.match(cleaned):
        return None
    return cleaned


def resolve_encoding(clues: Iterable[EncodingClue], default: str) -> ResolvedEncoding:
    """Pick the first clue with a usable name, falling back to *default*.

    Clues are taken in the order given; callers put the most authoritative
    source first.  The codec registry is not consulted.
    """
    for clue in clues:
        name = normalise_encoding_name(clue.value)
        if name is not None:
            logger.debug(f"[encoding] {clue.source.value} clue wins: {name}")
            return ResolvedEncoding(name=name, source=clue.source)
        if clue.value:
            logger.debug(
                f"[encoding] Ignoring unusable {clue.source.value} clue {clue.value!r}"
            )

    fallback = normalise_encoding_name(default)
    if fallback is None:
        raise ValueError(f"Default encoding {default!r} is not a valid name")
    return ResolvedEncoding(name=fallback, source=ClueSource.DEFAULT)


def collect_clues(
    content: bytes,
    metadata: Mapping[str, str],
    sniffed: str | None,
    default: str,
    detect_bom: bool = True,
) -> list[EncodingClue]:
    """Build the clue list in priority order: BOM, declared, sniffed, default."""
    clues: list[EncodingClue] = []
    if detect_bom:
        clues.append(EncodingClue(ClueSource.BOM, sniff_bom(content)))
    clues.append(EncodingClue(ClueSource.DECLARED, declared_charset(metadata)))
    clues.append(EncodingClue(ClueSource.SNIFFED, sniffed))
    clues.append(EncodingClue(ClueSource.DEFAULT, default))
    return clues


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

def decode_content(content: bytes, name: str) -> str:
    """Decode *content* with the named codec.

    Undecodable byte sequences are replaced rather than rejected.

    Raises:
        LookupError: If *name* is not a known text encoding.  Bytes-to-bytes
            codecs such as ``base64`` or ``zip`` count as unknown.
    """
    text = bytes(content).decode(name, "replace")
    if text.startswith("\ufeff"):
        text = text[1:]
    return text
