"""Multi-pass fragment accumulation.

Some backends hand back only part of the tree per call.  The accumulator
keeps calling the backend on the same stream, appending each batch as
siblings under one root, until a call produces no nodes.  Each step takes an
:class:`AccumulationState` and returns the next one, so termination and
partial results can be checked step by step.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace

from crawlparse.parse.backends import BackendError, CharStream, ParseContext, ParserBackend
from crawlparse.parse.models import DocumentFragment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccumulationState:
    root: DocumentFragment = field(default_factory=DocumentFragment)
    iterations: int = 0
    exhausted: bool = False
    error: str | None = None
    truncated: bool = False

    @property
    def partial(self) -> bool:
        """True when accumulation stopped before the backend ran dry."""
        return self.error is not None or self.truncated


def accumulate_step(
    state: AccumulationState,
    backend: ParserBackend,
    stream: CharStream,
    context: ParseContext = ParseContext.FRAGMENT,
) -> AccumulationState:
    """Run one backend call and fold its nodes into *state*."""
    if state.exhausted:
        return state

    iteration = state.iterations + 1
    try:
        nodes = backend.parse(stream, context)
    except BackendError as exc:
        logger.error(
            f"[accumulator] {backend.name} failed on call {iteration} "
            f"at offset {stream.position}: {exc}"
        )
        return replace(state, iterations=iteration, exhausted=True, error=str(exc))

    if not nodes:
        return replace(state, iterations=iteration, exhausted=True)

    if iteration > 1:
        logger.debug(f"[accumulator] new fragment, {len(nodes)} nodes")
    return replace(state, root=state.root.extended(nodes), iterations=iteration)


def accumulate(
    backend: ParserBackend,
    stream: CharStream,
    context: ParseContext = ParseContext.FRAGMENT,
    max_iterations: int = 10_000,
) -> AccumulationState:
    """Drive *backend* over *stream* until it returns nothing.

    The number of calls is capped at ``min(max_iterations, len(stream) + 1)``;
    every productive call consumes input, so the cap only matters for a
    backend that keeps returning nodes without advancing.
    """
    state = AccumulationState()
    if len(stream) == 0:
        return replace(state, exhausted=True)

    limit = min(max_iterations, len(stream) + 1)
    while not state.exhausted:
        if state.iterations >= limit:
            logger.warning(
                f"[accumulator] {backend.name} still producing nodes after "
                f"{state.iterations} calls; stopping at offset {stream.position}"
            )
            return replace(state, exhausted=True, truncated=True)
        state = accumulate_step(state, backend, stream, context)
    return state
