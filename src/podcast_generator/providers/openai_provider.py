"""OpenAI provider for summarization and speech synthesis.

A single ``OpenAIProvider`` implements both the ``LanguageModel`` and
``SpeechSynthesizer`` protocols on one shared client. OpenAI SDK exceptions are
mapped onto the provider exception hierarchy so the stage executors can
classify them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .. import config
from ..exceptions import (
    ProviderAuthError,
    ProviderConfigError,
    ProviderRateLimitError,
    ProviderRuntimeError,
)
from ..stages.summarization import strip_pause_markers
from ..utils.retryable_errors import get_retry_after
from .base import SummaryRequest

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a podcast script writer. You turn news articles into short, "
    "engaging spoken segments for a daily tech podcast. Write for the ear: "
    "plain sentences, natural transitions, no lists or markdown."
)

USER_PROMPT_TEMPLATE = (
    "Source: {source}\n"
    "Title: {title}\n"
    "Style: {style}\n"
    "Target length: about {target_words} words\n\n"
    "Rewrite the following article as a podcast segment.\n\n"
    "{content}"
)


def build_user_prompt(request: SummaryRequest) -> str:
    return USER_PROMPT_TEMPLATE.format(
        source=request.source_name,
        title=request.episode_title or "Untitled",
        style=request.style,
        target_words=request.target_words,
        content=request.content,
    )


class OpenAIProvider:
    """LanguageModel and SpeechSynthesizer backed by the OpenAI API.

    The client is thread-safe and shared by all worker threads.
    """

    def __init__(self, cfg: config.Config):
        """Initialize the provider.

        Args:
            cfg: Configuration with OpenAI credentials and model settings

        Raises:
            ProviderConfigError: If no API key is configured
        """
        from openai import OpenAI

        if not cfg.openai_api_key:
            raise ProviderConfigError(
                message="OpenAI API key required for OpenAI provider",
                provider="OpenAI",
                config_key="openai_api_key",
                suggestion="Set OPENAI_API_KEY environment variable or openai_api_key in config",
            )

        self.cfg = cfg

        # OpenAI SDK request/response logs drown ours at DEBUG level
        root_logger = logging.getLogger()
        root_level = root_logger.level if root_logger.level else logging.INFO
        if root_level <= logging.DEBUG:
            for logger_name in ("openai", "openai._base_client", "httpx", "httpcore"):
                logging.getLogger(logger_name).setLevel(logging.WARNING)

        client_kwargs: Dict[str, Any] = {"api_key": cfg.openai_api_key}
        if cfg.openai_api_base:
            client_kwargs["base_url"] = cfg.openai_api_base
        self.client = OpenAI(**client_kwargs)

        self.summary_model = cfg.summary_model
        self.tts_model = cfg.tts_model

    def summarize(self, request: SummaryRequest) -> str:
        """Summarize article content with the chat completions API.

        Raises:
            ProviderAuthError: If the API key is rejected
            ProviderRateLimitError: If the API rate limits the call
            ProviderRuntimeError: For other API failures or an empty response
        """
        logger.debug(
            "Summarizing %d characters via OpenAI (model: %s, max_tokens: %d)",
            len(request.content),
            self.summary_model,
            request.max_tokens,
        )
        try:
            response = self.client.chat.completions.create(
                model=self.summary_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_user_prompt(request)},
                ],
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
        except Exception as exc:
            raise self._map_error(exc, "OpenAI/Summarization") from exc

        summary = response.choices[0].message.content if response.choices else None
        if not summary or not summary.strip():
            raise ProviderRuntimeError(
                message="OpenAI returned an empty summary", provider="OpenAI/Summarization"
            )
        logger.debug("OpenAI summarization completed: %d characters", len(summary))
        return summary.strip()

    def synthesize(self, text: str, voice: str, speed: float, audio_format: str) -> bytes:
        """Generate speech with the audio.speech API and return the encoded bytes."""
        # The speech endpoint reads SSML tags aloud instead of pausing
        spoken = strip_pause_markers(text)
        logger.debug(
            "Synthesizing %d characters via OpenAI (model: %s, voice: %s)",
            len(spoken),
            self.tts_model,
            voice,
        )
        try:
            response = self.client.audio.speech.create(
                model=self.tts_model,
                voice=voice,
                input=spoken,
                speed=speed,
                response_format=audio_format,
            )
            audio = response.read() if hasattr(response, "read") else response.content
        except Exception as exc:
            raise self._map_error(exc, "OpenAI/TTS") from exc

        if not audio:
            raise ProviderRuntimeError(message="OpenAI returned empty audio", provider="OpenAI/TTS")
        return bytes(audio)

    @staticmethod
    def _map_error(exc: Exception, provider: str) -> Exception:
        """Translate an OpenAI SDK exception into the provider hierarchy."""
        from openai import APIStatusError, AuthenticationError, RateLimitError

        if isinstance(exc, AuthenticationError):
            return ProviderAuthError(
                message=f"OpenAI authentication failed: {exc}",
                provider=provider,
                suggestion="Check your OPENAI_API_KEY environment variable or config setting",
            )
        if isinstance(exc, RateLimitError):
            return ProviderRateLimitError(
                message=f"OpenAI rate limit exceeded: {exc}",
                provider=provider,
                retry_after=get_retry_after(exc),
                suggestion="Wait before retrying or check your API quota",
            )
        error = ProviderRuntimeError(message=f"OpenAI request failed: {exc}", provider=provider)
        status_code: Optional[int] = getattr(exc, "status_code", None)
        if isinstance(exc, APIStatusError) and status_code is not None:
            error.status_code = status_code  # type: ignore[attr-defined]
        return error
