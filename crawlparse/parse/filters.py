"""Post-parse filter chain.

Filters receive the fetched content, the packaged success outcome, the meta
directives and the parsed fragment, and return the (possibly replaced)
outcome.  The ``ParseFilterChain`` runs them in order.  A filter that raises
is logged and skipped; the chain continues with the outcome it was given.
Filters must treat the fragment as read-only.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Iterable

from crawlparse.parse.models import DocumentFragment, MetaTags, ParseSuccess, RawContent

logger = logging.getLogger(__name__)


class ParseFilter(ABC):
    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def filter(
        self,
        content: RawContent,
        outcome: ParseSuccess,
        meta_tags: MetaTags,
        fragment: DocumentFragment,
    ) -> ParseSuccess:
        """Return the outcome to hand to the next filter."""


class ParseFilterChain:
    def __init__(self, filters: Iterable[ParseFilter] = ()) -> None:
        self.filters = list(filters)

    def __len__(self) -> int:
        return len(self.filters)

    def run(
        self,
        content: RawContent,
        outcome: ParseSuccess,
        meta_tags: MetaTags,
        fragment: DocumentFragment,
    ) -> ParseSuccess:
        for parse_filter in self.filters:
            try:
                result = parse_filter.filter(content, outcome, meta_tags, fragment)
            except Exception:
                logger.exception(
                    f"[filters] {parse_filter.name} failed on {content.base_url}; skipping"
                )
                continue
            if not isinstance(result, ParseSuccess):
                logger.warning(
                    f"[filters] {parse_filter.name} returned {type(result).__name__} "
                    f"for {content.base_url}; keeping previous outcome"
                )
                continue
            outcome = result
        return outcome
