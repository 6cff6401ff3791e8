"""Shared fixtures and test utilities for podcast_generator tests.

This module contains:
- Test constants (article text and summaries that pass or fail the quality gate)
- A controllable clock
- In-memory fakes for the scraper, language model, speech synthesizer and storage
- Helpers for building configurations and processors

All test files can import from this module using pytest's conftest.py mechanism.
"""

import threading
from datetime import datetime, timedelta, timezone

import pytest

from podcast_generator import config
from podcast_generator.exceptions import ProviderRuntimeError
from podcast_generator.providers.base import ScrapedArticle
from podcast_generator.queue import QueueProcessor
from podcast_generator.stages import create_stage_executors

# Test constants
TEST_SOURCE_NAME = "TLDR Tech"
TEST_EPISODE_TITLE = "Morning Brief"
TEST_ARTICLE_URL = "https://example.com/articles/compact-models"
TEST_START_TIME = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

# Two 15-word sentences built only from words of ARTICLE_TEXT
GOOD_SUMMARY = (
    "Researchers released a compact language model that runs quickly on ordinary laptops "
    "without special hardware. Meanwhile, developers should expect cheaper inference costs "
    "as smaller open models keep improving every month."
)

# Shares no words with ARTICLE_TEXT
OFF_TOPIC_SUMMARY = (
    "Tropical bananas ripen slowly beside quiet riverbanks during humid summer evenings "
    "in distant green valleys. Additionally, farmers gather mangoes under bright orange skies "
    "while children chase playful goats around wooden barns."
)

ARTICLE_TEXT = (
    "Researchers released a compact language model that runs quickly on ordinary laptops "
    "without special hardware. The team says the model was trained on a curated mix of "
    "public code, textbooks and forum discussions. Meanwhile, developers should expect "
    "cheaper inference costs as smaller open models keep improving every month. Benchmarks "
    "published alongside the release show the model matching systems several times its "
    "size on reasoning tasks, although it still trails them on long documents. The authors "
    "plan to publish training recipes so other groups can reproduce the results. "
)

# Exactly 2,000 characters of article text
ARTICLE_CONTENT = (ARTICLE_TEXT * 5)[:2000]

FAKE_AUDIO = b"ID3" + b"\x00" * 4093


class FakeClock:
    """Deterministic UTC clock advanced by tests."""

    def __init__(self, start=TEST_START_TIME):
        self.now = start
        self._lock = threading.Lock()

    def __call__(self):
        with self._lock:
            return self.now

    def advance(self, seconds):
        with self._lock:
            self.now = self.now + timedelta(seconds=seconds)


class FakeScraper:
    """Scraper returning ARTICLE_CONTENT, optionally failing the first calls."""

    def __init__(self, content=ARTICLE_CONTENT, failures=None, gate=None):
        self.content = content
        self.failures = list(failures or [])
        self.gate = gate
        self.calls = []

    def scrape(self, url):
        self.calls.append(url)
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if self.failures:
            raise self.failures.pop(0)
        return ScrapedArticle(content=self.content, title="Compact models", url=url)


class FakeLanguageModel:
    """Language model returning a fixed summary."""

    def __init__(self, summary=GOOD_SUMMARY, error=None):
        self.summary = summary
        self.error = error
        self.requests = []

    def summarize(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.summary


class FakeSynthesizer:
    def __init__(self, audio=FAKE_AUDIO):
        self.audio = audio
        self.calls = []

    def synthesize(self, text, voice, speed, audio_format):
        self.calls.append((text, voice, speed, audio_format))
        return self.audio


class FakeStorage:
    """Blob storage keeping uploads in a dict."""

    def __init__(self, fail=False):
        self.fail = fail
        self.objects = {}

    def store(self, key, data, content_type):
        if self.fail:
            raise ProviderRuntimeError("503 Service Unavailable", provider="FakeStorage")
        self.objects[key] = (data, content_type)
        return f"https://cdn.example.com/{key}"


def make_config(**overrides):
    """Create a Config with small, test-friendly defaults.

    Args:
        **overrides: Fields to override from defaults

    Returns:
        config.Config
    """
    defaults = {
        "max_concurrent_jobs": 3,
        "polling_interval": 1.0,
        "max_retries": 3,
        "retry_base_delay": 5.0,
        "retry_max_delay": 300.0,
        "daily_limit": 50.0,
        "per_job_limit": 5.0,
        "scrape_cost": 0.001,
        "upload_cost_per_mb": 0.5,
        "openai_api_key": "sk-test",
    }
    defaults.update(overrides)
    return config.Config(**defaults)


def make_processor(cfg=None, clock=None, scraper=None, language_model=None,
                   synthesizer=None, storage=None, listener=None):
    """Build a QueueProcessor wired to in-memory fakes.

    Returns:
        Tuple of (processor, fakes dict)
    """
    cfg = cfg or make_config()
    fakes = {
        "clock": clock or FakeClock(),
        "scraper": scraper or FakeScraper(),
        "language_model": language_model or FakeLanguageModel(),
        "synthesizer": synthesizer or FakeSynthesizer(),
        "storage": storage or FakeStorage(),
    }
    executors = create_stage_executors(
        cfg,
        scraper=fakes["scraper"],
        language_model=fakes["language_model"],
        synthesizer=fakes["synthesizer"],
        storage=fakes["storage"],
    )
    processor = QueueProcessor(cfg, executors, clock=fakes["clock"], listener=listener)
    return processor, fakes


def run_until_terminal(processor, clock, item_id, max_ticks=40, step_seconds=1.0):
    """Tick and drain until the item is completed or failed.

    Returns:
        The final QueueItem
    """
    for _ in range(max_ticks):
        processor.tick()
        processor.drain(timeout=10)
        item = processor.get_item(item_id)
        if item.is_terminal:
            return item
        clock.advance(step_seconds if not item.backoff_seconds else item.backoff_seconds)
    raise AssertionError(f"{item_id} did not finish within {max_ticks} ticks")


@pytest.fixture
def fake_clock():
    return FakeClock()
