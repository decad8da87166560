"""Robots, caching and refresh directives from ``<meta>`` and ``<base>`` tags."""

from __future__ import annotations

import logging
from urllib.parse import urljoin

from crawlparse.parse.models import DocumentFragment, MetaTags

logger = logging.getLogger(__name__)


def _apply_robots(tags: MetaTags, content: str) -> None:
    for directive in content.lower().split(","):
        directive = directive.strip()
        if directive == "none":
            tags.no_index = True
            tags.no_follow = True
        elif directive == "all":
            tags.no_index = False
            tags.no_follow = False
        elif directive == "noindex":
            tags.no_index = True
        elif directive == "nofollow":
            tags.no_follow = True
        elif directive == "noarchive":
            tags.no_cache = True


def _apply_refresh(tags: MetaTags, content: str, base_url: str) -> None:
    delay, _, target = content.partition(";")
    try:
        tags.refresh_time = int(delay.strip())
    except ValueError:
        logger.debug(f"[meta] Ignoring refresh with bad delay {content!r}")
        return

    target = target.strip()
    if target.lower().startswith("url"):
        target = target[3:].lstrip()
        if target.startswith("="):
            target = target[1:]
    target = target.strip().strip("\"'").strip()

    try:
        href = urljoin(base_url, target) if target else base_url
    except ValueError as exc:
        logger.debug(f"[meta] Ignoring refresh with bad target {target!r}: {exc}")
        return
    tags.refresh = True
    tags.refresh_href = href


def collect_meta_tags(fragment: DocumentFragment, base_url: str) -> MetaTags:
    """Scan *fragment* for ``<meta>`` directives and the first ``<base href>``.

    Relative refresh targets are resolved against ``<base href>`` when the
    document declares one, otherwise against *base_url*.
    """
    tags = MetaTags()

    base = fragment.find("base")
    if base is not None and base.get("href"):
        try:
            tags.base_href = urljoin(base_url, base.get("href").strip())
        except ValueError as exc:
            logger.debug(f"[meta] Ignoring bad <base href>: {exc}")
    effective_base = tags.base_href or base_url

    for meta in fragment.find_all("meta"):
        content = meta.get("content")
        if content is None:
            continue

        name = (meta.get("name") or "").strip().lower()
        if name:
            tags.general[name] = content
            if name == "robots":
                _apply_robots(tags, content)

        equiv = (meta.get("http-equiv") or "").strip().lower()
        if equiv:
            tags.http_equiv[equiv] = content
            if equiv == "pragma" and "no-cache" in content.lower():
                tags.no_cache = True
            elif equiv == "refresh":
                _apply_refresh(tags, content, effective_base)

    return tags
