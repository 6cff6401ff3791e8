"""Factories for the external collaborators.

Each factory looks at the configured provider type and builds the matching
implementation.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from podcast_generator import config
    from podcast_generator.providers.base import (
        BlobStorage,
        ContentScraper,
        LanguageModel,
        SpeechSynthesizer,
    )


def create_content_scraper(cfg: config.Config) -> ContentScraper:
    from .http_scraper import HttpArticleScraper

    return HttpArticleScraper(user_agent=cfg.user_agent, timeout=cfg.request_timeout)


def create_language_model(cfg: config.Config) -> LanguageModel:
    """Create the summarization language model.

    Raises:
        ValueError: If the provider type is not supported
    """
    provider_type = cfg.summary_provider
    if provider_type == "openai":
        from .openai_provider import OpenAIProvider

        return OpenAIProvider(cfg)
    raise ValueError(
        f"Unsupported summarization provider: {provider_type}. Supported providers: 'openai'."
    )


def create_speech_synthesizer(cfg: config.Config) -> SpeechSynthesizer:
    """Create the text-to-speech provider.

    Raises:
        ValueError: If the provider type is not supported
    """
    provider_type = cfg.tts_provider
    if provider_type == "openai":
        from .openai_provider import OpenAIProvider

        return OpenAIProvider(cfg)
    raise ValueError(f"Unsupported TTS provider: {provider_type}. Supported providers: 'openai'.")


def create_blob_storage(cfg: config.Config) -> BlobStorage:
    """Create the audio storage provider.

    Raises:
        ValueError: If the provider type is not supported
    """
    provider_type = cfg.storage_provider
    if provider_type == "local":
        from .local_storage import LocalBlobStorage

        return LocalBlobStorage(cfg.storage_dir, base_url=cfg.storage_base_url)
    raise ValueError(
        f"Unsupported storage provider: {provider_type}. Supported providers: 'local'."
    )
