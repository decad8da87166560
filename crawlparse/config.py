"""Settings for the crawlparse pipeline.

All runtime configuration is resolved here in one place.  Values default from
environment variables; :func:`load_settings` additionally reads a `.env` file
before building the settings object.  A :class:`Settings` instance is handed
to the pipeline at construction and never mutated afterwards.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv


class BackendKind(str, Enum):
    """Which tolerant parser backs the pipeline."""

    LENIENT_SAX = "lenient-sax"
    DOM_FRAGMENT = "dom-fragment"


class ExtractorKind(str, Enum):
    DOM = "dom"
    READABLE = "readable"


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------
    default_encoding: str = field(
        default_factory=lambda: os.environ.get("CRAWLPARSE_DEFAULT_ENCODING", "windows-1252")
    )
    sniff_limit: int = field(
        default_factory=lambda: int(os.environ.get("CRAWLPARSE_SNIFF_LIMIT", "2000"))
    )
    detect_bom: bool = field(
        default_factory=lambda: _env_bool("CRAWLPARSE_DETECT_BOM", "true")
    )

    # ------------------------------------------------------------------
    # Parser backend
    # ------------------------------------------------------------------
    backend: BackendKind = field(
        default_factory=lambda: BackendKind(
            os.environ.get("CRAWLPARSE_BACKEND", BackendKind.DOM_FRAGMENT.value)
        )
    )
    max_nodes_per_call: int = field(
        default_factory=lambda: int(os.environ.get("CRAWLPARSE_FRAGMENT_NODES", "64"))
    )
    max_iterations: int = field(
        default_factory=lambda: int(os.environ.get("CRAWLPARSE_MAX_ITERATIONS", "10000"))
    )
    ignore_unknown_elements: bool = field(
        default_factory=lambda: _env_bool("CRAWLPARSE_IGNORE_UNKNOWN_ELEMENTS", "true")
    )
    malformed_tags_as_text: bool = field(
        default_factory=lambda: _env_bool("CRAWLPARSE_MALFORMED_TAGS_AS_TEXT", "false")
    )
    trace: bool = field(
        default_factory=lambda: _env_bool("CRAWLPARSE_TRACE", "false")
    )

    # ------------------------------------------------------------------
    # Packaging
    # ------------------------------------------------------------------
    extractor: ExtractorKind = field(
        default_factory=lambda: ExtractorKind(
            os.environ.get("CRAWLPARSE_EXTRACTOR", ExtractorKind.DOM.value)
        )
    )
    caching_forbidden_policy: str = field(
        default_factory=lambda: os.environ.get("CRAWLPARSE_CACHING_POLICY", "content")
    )

    # ------------------------------------------------------------------
    # Fetcher
    # ------------------------------------------------------------------
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CRAWLPARSE_REQUEST_TIMEOUT", "30.0"))
    )
    user_agent: str = field(
        default_factory=lambda: os.environ.get(
            "CRAWLPARSE_USER_AGENT",
            "Mozilla/5.0 (compatible; crawlparse/0.1)",
        )
    )

    def __post_init__(self) -> None:
        # Enum fields accept their string values as well.
        object.__setattr__(self, "backend", BackendKind(self.backend))
        object.__setattr__(self, "extractor", ExtractorKind(self.extractor))

        from crawlparse.parse.encoding import normalise_encoding_name

        if not (self.default_encoding or "").strip():
            raise ValueError("default_encoding must not be empty")
        name = normalise_encoding_name(self.default_encoding)
        if name is None:
            raise ValueError(f"Malformed default encoding name: {self.default_encoding!r}")
        try:
            # bytes.decode only accepts text encodings.
            b"".decode(name)
        except LookupError as exc:
            raise ValueError(f"Unknown default encoding: {name!r}") from exc
        object.__setattr__(self, "default_encoding", name)

        if self.sniff_limit <= 0:
            raise ValueError(f"sniff_limit must be positive, got {self.sniff_limit}")
        if self.max_nodes_per_call <= 0:
            raise ValueError(
                f"max_nodes_per_call must be positive, got {self.max_nodes_per_call}"
            )
        if self.max_iterations <= 0:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")


def load_settings(env_file: str | Path | None = None) -> Settings:
    """Load a `.env` file (if any) into the environment and build :class:`Settings`.

    Variables already present in the environment win over the file.
    """
    if env_file is None:
        env_file = Path.cwd() / ".env"
    load_dotenv(env_file, override=False)
    return Settings()
