"""HTTP fetcher producing :class:`RawContent` for the parse pipeline."""

from __future__ import annotations

import logging

import httpx

from crawlparse.config import Settings
from crawlparse.parse.models import RawContent

logger = logging.getLogger(__name__)


def fetch_raw_content(url: str, settings: Settings | None = None) -> RawContent:
    """Fetch *url* and return its body bytes, final URL and response headers.

    The body is left undecoded; the parse pipeline decides the encoding from
    the headers and the bytes themselves.

    Raises:
        httpx.HTTPStatusError: If the server returns a 4xx/5xx status code.
    """
    settings = settings or Settings()

    with httpx.Client(
        headers={"User-Agent": settings.user_agent},
        timeout=settings.request_timeout,
        follow_redirects=True,
    ) as client:
        response = client.get(url)
        response.raise_for_status()

    final_url = str(response.url)
    if final_url != url:
        logger.info(f"[fetcher] {url} redirected to {final_url}")

    return RawContent(
        base_url=final_url,
        content=response.content,
        metadata=response.headers,
        url=url,
        content_type=response.headers.get("Content-Type", "text/html"),
    )
