"""Protocols for the external collaborators used by the stage executors.

Each protocol is small on purpose so tests can substitute in-memory fakes for
the network-backed implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class ScrapedArticle:
    """Raw article text returned by a content scraper."""

    content: str
    title: Optional[str] = None
    url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SummaryRequest:
    """Inputs for one summarization call.

    Attributes:
        content: Preprocessed article text
        episode_title: Title used to frame the summary
        source_name: Content source name
        target_words: Approximate summary length in words
        style: "conversational", "brief" or "detailed"
        max_tokens: Completion token limit
        temperature: Sampling temperature
    """

    content: str
    episode_title: str
    source_name: str
    target_words: int
    style: str
    max_tokens: int
    temperature: float


@runtime_checkable
class ContentScraper(Protocol):
    """Protocol for article scrapers."""

    def scrape(self, url: str) -> ScrapedArticle:
        """Fetch ``url`` and return its article text.

        Raises:
            ProviderRuntimeError: If the page cannot be fetched
        """
        ...


@runtime_checkable
class LanguageModel(Protocol):
    """Protocol for summarization language models."""

    def summarize(self, request: SummaryRequest) -> str:
        """Return summary text for ``request``.

        Raises:
            ProviderError: On provider failures (rate limiting, auth, 5xx)
        """
        ...


@runtime_checkable
class SpeechSynthesizer(Protocol):
    """Protocol for text-to-speech providers."""

    def synthesize(self, text: str, voice: str, speed: float, audio_format: str) -> bytes:
        """Return encoded audio for ``text``.

        Raises:
            ProviderError: On provider failures
        """
        ...


@runtime_checkable
class BlobStorage(Protocol):
    """Protocol for storage that publishes audio files."""

    def store(self, key: str, data: bytes, content_type: str) -> str:
        """Persist ``data`` under ``key`` and return a retrievable URL.

        Raises:
            ProviderError: If the write fails
        """
        ...
