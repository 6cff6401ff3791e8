"""Factory for the pipeline stage executors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Optional

from ..models import StageKind
from .quality import QualityAssessor, QualityThresholds
from .scraping import ScrapeExecutor
from .summarization import SummarizeExecutor
from .synthesis import SynthesizeAudioExecutor
from .upload import UploadExecutor

if TYPE_CHECKING:
    from podcast_generator import config
    from podcast_generator.providers.base import (
        BlobStorage,
        ContentScraper,
        LanguageModel,
        SpeechSynthesizer,
    )
    from podcast_generator.stages.base import StageExecutor


def create_stage_executors(
    cfg: config.Config,
    scraper: Optional[ContentScraper] = None,
    language_model: Optional[LanguageModel] = None,
    synthesizer: Optional[SpeechSynthesizer] = None,
    storage: Optional[BlobStorage] = None,
    assessor: Optional[QualityAssessor] = None,
) -> Dict[StageKind, StageExecutor]:
    """Build one executor per stage.

    Collaborators that are not passed in are created from configuration, so
    tests can inject fakes for some or all of them.

    Args:
        cfg: Configuration object
        scraper: Content scraper override
        language_model: Summarization model override
        synthesizer: Speech synthesizer override
        storage: Blob storage override
        assessor: Quality assessor override

    Returns:
        Mapping from stage kind to executor
    """
    from ..providers import factory as providers

    if scraper is None:
        scraper = providers.create_content_scraper(cfg)
    if language_model is None:
        language_model = providers.create_language_model(cfg)
    if synthesizer is None:
        if cfg.tts_provider == cfg.summary_provider and hasattr(language_model, "synthesize"):
            # One OpenAI client serves both summarization and speech
            synthesizer = language_model  # type: ignore[assignment]
        else:
            synthesizer = providers.create_speech_synthesizer(cfg)
    if storage is None:
        storage = providers.create_blob_storage(cfg)

    return {
        StageKind.SCRAPE: ScrapeExecutor(
            scraper,
            cost_per_scrape=cfg.scrape_cost,
            max_content_length=cfg.max_content_length,
        ),
        StageKind.SUMMARIZE: SummarizeExecutor(
            language_model,
            model_name=cfg.summary_model,
            cost_per_1k_tokens=cfg.summary_cost_per_1k_tokens,
            max_tokens=cfg.summary_max_tokens,
            temperature=cfg.summary_temperature,
            max_content_length=cfg.max_content_length,
            words_per_minute=cfg.words_per_minute,
            assessor=assessor,
            thresholds=QualityThresholds(
                min_coherence=cfg.min_coherence,
                min_relevance=cfg.min_relevance,
                min_readability=cfg.min_readability,
            ),
        ),
        StageKind.GENERATE_AUDIO: SynthesizeAudioExecutor(
            synthesizer,
            voice=cfg.tts_voice,
            speed=cfg.tts_speed,
            audio_format=cfg.tts_format,
            cost_per_1k_chars=cfg.tts_cost_per_1k_chars,
            words_per_minute=cfg.words_per_minute,
            model_name=cfg.tts_model,
        ),
        StageKind.UPLOAD: UploadExecutor(storage, cost_per_mb=cfg.upload_cost_per_mb),
    }
