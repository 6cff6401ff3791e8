"""Podcast Generator - Turn scraped news articles into audio podcast episodes.

This package runs each requested episode through a four-stage pipeline
(scrape, summarize, synthesize audio, upload) under bounded concurrency, a
daily and per-job cost budget, and automatic retry with exponential backoff.

Programmatic API Example:
    >>> import podcast_generator
    >>> from podcast_generator.stages import create_stage_executors
    >>>
    >>> cfg = podcast_generator.Config(max_concurrent_jobs=2, daily_limit=10.0)
    >>> processor = podcast_generator.QueueProcessor(cfg, create_stage_executors(cfg))
    >>> processor.enqueue("Morning Brief", "TLDR Tech", source_url="https://example.com/a")
    >>> processor.start()
    >>> print(processor.get_stats().to_dict())

Service Mode (for supervisor/systemd):
    $ python -m podcast_generator.service --config config.yaml
"""

from __future__ import annotations

from .config import Config, load_config_file
from .models import (
    ControlResult,
    FailureKind,
    GenerationOptions,
    GenerationStats,
    LogEvent,
    QueueItem,
    QueueStatus,
    StageKind,
)
from .queue import QueueProcessor

__all__ = [
    "Config",
    "ControlResult",
    "FailureKind",
    "GenerationOptions",
    "GenerationStats",
    "LogEvent",
    "QueueItem",
    "QueueProcessor",
    "QueueStatus",
    "StageKind",
    "load_config_file",
    "__version__",
]
# Note: 'service' is available via __getattr__ for lazy loading
__version__ = "1.0.0"

# Cache for lazy-loaded modules to prevent circular imports
_import_cache: dict[str, object] = {}


def __getattr__(name: str):
    if name in _import_cache:
        return _import_cache[name]

    if name == "service":
        import importlib

        _service = importlib.import_module(f"{__name__}.service")
        _import_cache[name] = _service
        return _service

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
