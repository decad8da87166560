"""Tests for the HTTP fetcher.

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer so no real network calls
  are made.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from crawlparse.config import Settings
from crawlparse.fetcher import fetch_raw_content
from crawlparse.parse import ParsePipeline, ParseSuccess, RawContent

_PAGE = "<html><head><title>Careers</title></head><body><p>Join us</p></body></html>"


class TestFetchRawContent:
    def test_returns_undecoded_body_and_headers(self) -> None:
        body = "<p>café</p>".encode("latin-1")
        with respx.mock:
            respx.get("https://example.com/jobs").mock(
                return_value=httpx.Response(
                    200,
                    content=body,
                    headers={"Content-Type": "text/html; charset=ISO-8859-1"},
                )
            )
            raw = fetch_raw_content("https://example.com/jobs")

        assert isinstance(raw, RawContent)
        assert raw.content == body
        assert raw.base_url == "https://example.com/jobs"
        assert raw.url == "https://example.com/jobs"
        assert raw.metadata["content-type"] == "text/html; charset=ISO-8859-1"
        assert raw.content_type == "text/html; charset=ISO-8859-1"

    def test_http_error_raises(self) -> None:
        """A 404 response raises ``httpx.HTTPStatusError``."""
        with respx.mock:
            respx.get("https://example.com/missing").mock(
                return_value=httpx.Response(404, text="Not Found")
            )
            with pytest.raises(httpx.HTTPStatusError):
                fetch_raw_content("https://example.com/missing")

    def test_redirect_target_becomes_base_url(self) -> None:
        with respx.mock:
            respx.get("https://example.com/old").mock(
                return_value=httpx.Response(
                    301, headers={"Location": "https://example.com/new/"}
                )
            )
            respx.get("https://example.com/new/").mock(
                return_value=httpx.Response(200, text=_PAGE)
            )
            raw = fetch_raw_content("https://example.com/old")

        assert raw.url == "https://example.com/old"
        assert raw.base_url == "https://example.com/new/"

    def test_sends_configured_user_agent(self) -> None:
        settings = Settings(user_agent="test-agent/1.0")
        with respx.mock:
            route = respx.get("https://example.com/").mock(
                return_value=httpx.Response(200, text=_PAGE)
            )
            fetch_raw_content("https://example.com/", settings)

        assert route.calls.last.request.headers["User-Agent"] == "test-agent/1.0"

    def test_fetched_page_parses(self) -> None:
        with respx.mock:
            respx.get("https://example.com/").mock(
                return_value=httpx.Response(
                    200, text=_PAGE, headers={"Content-Type": "text/html; charset=utf-8"}
                )
            )
            raw = fetch_raw_content("https://example.com/")

        outcome = ParsePipeline(Settings()).parse(raw)
        assert isinstance(outcome, ParseSuccess)
        assert outcome.title == "Careers"
        assert outcome.encoding.name == "utf-8"
