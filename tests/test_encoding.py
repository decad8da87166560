"""Tests for charset sniffing, clue resolution and decoding."""

from __future__ import annotations

import codecs

import httpx
import pytest

from crawlparse.parse.encoding import (
    charset_from_content_type,
    collect_clues,
    decode_content,
    declared_charset,
    normalise_encoding_name,
    resolve_encoding,
    sniff_bom,
    sniff_charset,
)
from crawlparse.parse.models import ClueSource, EncodingClue


_LATIN1_PAGE = (
    b"<html><meta http-equiv='Content-Type' "
    b"content=\"text/html; charset=ISO-8859-1\"><body>Hi</body></html>"
)


# ---------------------------------------------------------------------------
# sniff_charset
# ---------------------------------------------------------------------------

class TestSniffCharset:
    def test_finds_charset_in_single_quoted_meta(self) -> None:
        assert sniff_charset(_LATIN1_PAGE) == "ISO-8859-1"

    def test_unquoted_upper_case_meta(self) -> None:
        page = b'<HTML><META HTTP-EQUIV=Content-Type CONTENT="text/html; CHARSET=euc-jp">'
        assert sniff_charset(page) == "euc-jp"

    def test_double_quoted_meta(self) -> None:
        page = b'<meta http-equiv="content-type" content="text/html;charset=windows-1251">'
        assert sniff_charset(page) == "windows-1251"

    def test_survives_non_ascii_bytes_and_broken_markup(self) -> None:
        page = (
            b"\x93\xfa\x96{<div <<>> \xe9\xe8 <p"
            b"<meta http-equiv=content-type content='text/html;charset=shift_jis'>"
        )
        assert sniff_charset(page) == "shift_jis"

    def test_first_meta_wins(self) -> None:
        page = (
            b'<meta http-equiv="Content-Type" content="text/html; charset=koi8-r">'
            b'<meta http-equiv="Content-Type" content="text/html; charset=utf-8">'
        )
        assert sniff_charset(page) == "koi8-r"

    def test_meta_past_the_scan_limit_is_ignored(self) -> None:
        page = b" " * 3000 + _LATIN1_PAGE
        assert sniff_charset(page) is None
        assert sniff_charset(page, limit=5000) == "ISO-8859-1"

    def test_meta_within_default_limit_after_padding(self) -> None:
        page = b"<!-- " + b"x" * 1500 + b" -->" + _LATIN1_PAGE
        assert sniff_charset(page) == "ISO-8859-1"

    def test_no_meta_returns_none(self) -> None:
        assert sniff_charset(b"<html><body>plain</body></html>") is None

    def test_meta_without_charset_returns_none(self) -> None:
        page = b'<meta http-equiv="Content-Type" content="text/html">'
        assert sniff_charset(page) is None

    def test_html5_charset_meta_is_not_a_content_type_declaration(self) -> None:
        assert sniff_charset(b'<meta charset="utf-8">') is None

    def test_empty_and_non_bytes_input(self) -> None:
        assert sniff_charset(b"") is None
        assert sniff_charset("<meta http-equiv=content-type content='charset=utf-8'>") is None  # type: ignore[arg-type]


class TestSniffBom:
    def test_utf8_bom(self) -> None:
        assert sniff_bom(codecs.BOM_UTF8 + b"<p>x</p>") == "utf-8"

    def test_utf16_le_bom(self) -> None:
        assert sniff_bom(b"\xff\xfe<\x00p\x00") == "utf-16-le"

    def test_utf16_be_bom(self) -> None:
        assert sniff_bom(b"\xfe\xff\x00<") == "utf-16-be"

    def test_utf32_le_bom_beats_utf16(self) -> None:
        assert sniff_bom(codecs.BOM_UTF32_LE + b"<\x00\x00\x00") == "utf-32-le"

    def test_no_bom(self) -> None:
        assert sniff_bom(b"<html>") is None
        assert sniff_bom(b"") is None


# ---------------------------------------------------------------------------
# Transport metadata
# ---------------------------------------------------------------------------

class TestDeclaredCharset:
    def test_quoted_parameter(self) -> None:
        assert charset_from_content_type('text/html; charset="UTF-8"') == "UTF-8"

    def test_no_parameter(self) -> None:
        assert charset_from_content_type("text/html") is None
        assert charset_from_content_type(None) is None

    def test_headers_are_case_insensitive(self) -> None:
        headers = httpx.Headers({"content-type": "text/html; charset=koi8-r"})
        assert declared_charset(headers) == "koi8-r"

    def test_plain_dict_with_odd_casing(self) -> None:
        assert declared_charset({"CONTENT-TYPE": "text/html;charset=gbk"}) == "gbk"

    def test_missing_header(self) -> None:
        assert declared_charset({}) is None


# ---------------------------------------------------------------------------
# resolve_encoding
# ---------------------------------------------------------------------------

class TestResolveEncoding:
    def test_first_usable_clue_wins(self) -> None:
        clues = [
            EncodingClue(ClueSource.DECLARED, "UTF-8"),
            EncodingClue(ClueSource.SNIFFED, "ISO-8859-1"),
        ]
        resolved = resolve_encoding(clues, "windows-1252")
        assert resolved.name == "utf-8"
        assert resolved.source is ClueSource.DECLARED

    def test_absent_clue_falls_through(self) -> None:
        clues = [
            EncodingClue(ClueSource.DECLARED, None),
            EncodingClue(ClueSource.SNIFFED, "ISO-8859-1"),
        ]
        resolved = resolve_encoding(clues, "windows-1252")
        assert resolved.name == "iso-8859-1"
        assert resolved.source is ClueSource.SNIFFED

    def test_structurally_invalid_names_are_skipped(self) -> None:
        clues = [
            EncodingClue(ClueSource.DECLARED, "   "),
            EncodingClue(ClueSource.SNIFFED, "utf 8??"),
        ]
        resolved = resolve_encoding(clues, "UTF-8")
        assert resolved.name == "utf-8"
        assert resolved.source is ClueSource.DEFAULT

    def test_unknown_but_well_formed_name_is_accepted(self) -> None:
        resolved = resolve_encoding([EncodingClue(ClueSource.DECLARED, "x-made-up")], "utf-8")
        assert resolved.name == "x-made-up"

    def test_no_clues_uses_default(self) -> None:
        resolved = resolve_encoding([], " Windows-1252 ")
        assert resolved.name == "windows-1252"
        assert resolved.source is ClueSource.DEFAULT
        assert resolved.fallback_from is None

    def test_deterministic(self) -> None:
        clues = [
            EncodingClue(ClueSource.DECLARED, None),
            EncodingClue(ClueSource.SNIFFED, "Shift_JIS"),
        ]
        assert resolve_encoding(clues, "utf-8") == resolve_encoding(clues, "utf-8")

    def test_invalid_default_raises(self) -> None:
        with pytest.raises(ValueError):
            resolve_encoding([], "")

    def test_normalise_encoding_name(self) -> None:
        assert normalise_encoding_name(' "UTF-8" ') == "utf-8"
        assert normalise_encoding_name(None) is None
        assert normalise_encoding_name("") is None


class TestCollectClues:
    def test_priority_order(self) -> None:
        clues = collect_clues(
            codecs.BOM_UTF8 + b"<p>",
            {"Content-Type": "text/html; charset=latin-1"},
            "koi8-r",
            "utf-8",
        )
        assert [c.source for c in clues] == [
            ClueSource.BOM,
            ClueSource.DECLARED,
            ClueSource.SNIFFED,
            ClueSource.DEFAULT,
        ]
        assert [c.value for c in clues] == ["utf-8", "latin-1", "koi8-r", "utf-8"]

    def test_bom_detection_can_be_disabled(self) -> None:
        clues = collect_clues(codecs.BOM_UTF8, {}, None, "utf-8", detect_bom=False)
        assert ClueSource.BOM not in [c.source for c in clues]


# ---------------------------------------------------------------------------
# decode_content
# ---------------------------------------------------------------------------

class TestDecodeContent:
    def test_decodes_with_named_codec(self) -> None:
        assert decode_content("café".encode("latin-1"), "iso-8859-1") == "café"

    def test_unknown_codec_raises_lookup_error(self) -> None:
        with pytest.raises(LookupError):
            decode_content(b"abc", "x-made-up")

    def test_bytes_to_bytes_codec_is_not_a_text_encoding(self) -> None:
        with pytest.raises(LookupError):
            decode_content(b"aGk=", "base64")

    def test_invalid_bytes_are_replaced(self) -> None:
        assert decode_content(b"a\xffb", "utf-8") == "a\ufffdb"

    def test_leading_bom_is_dropped(self) -> None:
        assert decode_content(codecs.BOM_UTF8 + b"<p>", "utf-8") == "<p>"
