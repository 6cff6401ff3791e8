"""External collaborators: scraper, language model, speech synthesizer, storage."""

from .base import (
    BlobStorage,
    ContentScraper,
    LanguageModel,
    ScrapedArticle,
    SpeechSynthesizer,
    SummaryRequest,
)

__all__ = [
    "BlobStorage",
    "ContentScraper",
    "LanguageModel",
    "ScrapedArticle",
    "SpeechSynthesizer",
    "SummaryRequest",
]
