#!/usr/bin/env python3
"""Unit tests for the scrape, generate-audio and upload stage executors."""

import unittest

import pytest
from conftest import (
    ARTICLE_CONTENT,
    FAKE_AUDIO,
    GOOD_SUMMARY,
    TEST_ARTICLE_URL,
    TEST_SOURCE_NAME,
    FakeScraper,
    FakeStorage,
    FakeSynthesizer,
    make_config,
)

from podcast_generator.exceptions import ProviderAuthError, ProviderRuntimeError
from podcast_generator.models import FailureKind, GenerationOptions, StageKind
from podcast_generator.stages import (
    JobMeta,
    ScrapeExecutor,
    StageExecutor,
    StageFailure,
    StageSuccess,
    SynthesizeAudioExecutor,
    UploadExecutor,
    create_stage_executors,
)
from podcast_generator.stages.summarization import optimize_for_tts
from podcast_generator.stages.synthesis import content_hash, estimate_audio_duration

pytestmark = [pytest.mark.unit]


def _job(source_url=TEST_ARTICLE_URL, **options):
    return JobMeta(
        job_id="job-1",
        episode_title="Morning Brief",
        source_name=TEST_SOURCE_NAME,
        source_url=source_url,
        options=GenerationOptions(**options),
    )


class TestScrapeExecutor(unittest.TestCase):
    def test_scrapes_source_url(self):
        scraper = FakeScraper()
        result = ScrapeExecutor(scraper, cost_per_scrape=0.002).execute({}, _job())

        self.assertIsInstance(result, StageSuccess)
        self.assertEqual(result.payload["content"], ARTICLE_CONTENT)
        self.assertEqual(result.payload["article_title"], "Compact models")
        self.assertEqual(result.payload["word_count"], len(ARTICLE_CONTENT.split()))
        self.assertEqual(result.cost.amount, 0.002)
        self.assertEqual(scraper.calls, [TEST_ARTICLE_URL])

    def test_prefetched_content_skips_scraper(self):
        scraper = FakeScraper()
        result = ScrapeExecutor(scraper).execute({"content": "Already here"}, _job())
        self.assertEqual(result.payload["content"], "Already here")
        self.assertEqual(scraper.calls, [])

    def test_long_content_is_truncated(self):
        result = ScrapeExecutor(FakeScraper(content="x" * 500), max_content_length=100).execute(
            {}, _job()
        )
        self.assertEqual(len(result.payload["content"]), 100)
        self.assertEqual(result.payload["truncated_from"], 500)

    def test_prefetched_content_is_never_truncated(self):
        result = ScrapeExecutor(FakeScraper(), max_content_length=100).execute(
            {"content": "y" * 500}, _job()
        )
        self.assertEqual(len(result.payload["content"]), 500)
        self.assertNotIn("truncated_from", result.payload)

    def test_empty_page_is_input_validation_failure(self):
        result = ScrapeExecutor(FakeScraper(content="   ")).execute({}, _job())
        self.assertEqual(result.kind, FailureKind.INPUT_VALIDATION)

    def test_missing_url_or_scraper(self):
        self.assertEqual(
            ScrapeExecutor(FakeScraper()).execute({}, _job(source_url=None)).kind,
            FailureKind.INPUT_VALIDATION,
        )
        self.assertEqual(
            ScrapeExecutor(None).execute({}, _job()).kind, FailureKind.INPUT_VALIDATION
        )

    def test_provider_errors_are_classified(self):
        transient = ScrapeExecutor(
            FakeScraper(failures=[ProviderRuntimeError("503 Service Unavailable")])
        ).execute({}, _job())
        forbidden = ScrapeExecutor(
            FakeScraper(failures=[ProviderAuthError("403 Forbidden")])
        ).execute({}, _job())
        self.assertEqual(transient.kind, FailureKind.TRANSIENT)
        self.assertEqual(forbidden.kind, FailureKind.PROVIDER_CONFIG)

    def test_non_provider_errors_propagate(self):
        executor = ScrapeExecutor(FakeScraper(failures=[KeyError("content")]))
        with self.assertRaises(KeyError):
            executor.execute({}, _job())


class TestSynthesizeAudioExecutor(unittest.TestCase):
    def setUp(self):
        self.synthesizer = FakeSynthesizer()
        self.executor = SynthesizeAudioExecutor(
            self.synthesizer, voice="alloy", cost_per_1k_chars=0.015
        )
        self.payload = {
            "summary": GOOD_SUMMARY,
            "tts_text": optimize_for_tts(GOOD_SUMMARY, 150)["text"],
        }

    def test_success(self):
        result = self.executor.execute(self.payload, _job())

        self.assertIsInstance(result, StageSuccess)
        self.assertEqual(result.payload["audio"], FAKE_AUDIO)
        self.assertEqual(result.payload["audio_size"], len(FAKE_AUDIO))
        self.assertEqual(result.payload["voice"], "alloy")
        self.assertEqual(
            result.payload["audio_duration"], estimate_audio_duration(GOOD_SUMMARY, 1.0, 150)
        )
        self.assertEqual(
            result.payload["content_hash"], content_hash(GOOD_SUMMARY, "alloy", 1.0, "mp3", "tts-1")
        )
        self.assertAlmostEqual(result.cost.amount, len(GOOD_SUMMARY) / 1000 * 0.015)
        self.assertEqual(
            result.cost.amount, self.executor.estimate_cost(self.payload, _job())
        )
        # The synthesizer receives the marked-up text
        self.assertIn("<break", self.synthesizer.calls[0][0])

    def test_job_options_override_voice_and_speed(self):
        result = self.executor.execute(self.payload, _job(voice="nova", speed=1.5))
        self.assertEqual(result.payload["voice"], "nova")
        self.assertEqual(self.synthesizer.calls[0][2], 1.5)

    def test_validation_failures(self):
        cases = [
            ({}, _job()),
            ({"summary": "x" * 5000}, _job()),
            (self.payload, _job(speed=5.0)),
        ]
        for payload, job in cases:
            with self.subTest(job=job.options):
                result = self.executor.execute(payload, job)
                self.assertIsInstance(result, StageFailure)
                self.assertEqual(result.kind, FailureKind.INPUT_VALIDATION)
        self.assertEqual(self.synthesizer.calls, [])

    def test_empty_audio_is_transient(self):
        executor = SynthesizeAudioExecutor(FakeSynthesizer(audio=b""), voice="alloy")
        self.assertEqual(executor.execute(self.payload, _job()).kind, FailureKind.TRANSIENT)

    def test_duration_estimate(self):
        self.assertEqual(estimate_audio_duration("word " * 149 + "word", 1.0, 150), 60)
        self.assertEqual(estimate_audio_duration("word " * 149 + "word", 2.0, 150), 30)


class TestUploadExecutor(unittest.TestCase):
    def test_upload_replaces_audio_with_url(self):
        storage = FakeStorage()
        executor = UploadExecutor(storage, cost_per_mb=1.0)
        payload = {"audio": FAKE_AUDIO, "audio_format": "mp3", "content_hash": "abc123"}

        result = executor.execute(payload, _job())

        self.assertEqual(result.payload["audio_url"], "https://cdn.example.com/job-1/abc123.mp3")
        self.assertNotIn("audio", result.payload)
        self.assertEqual(storage.objects["job-1/abc123.mp3"], (FAKE_AUDIO, "audio/mpeg"))
        self.assertAlmostEqual(result.cost.amount, len(FAKE_AUDIO) / (1024 * 1024))
        self.assertEqual(executor.estimate_cost(payload, _job()), result.cost.amount)

    def test_missing_audio(self):
        result = UploadExecutor(FakeStorage()).execute({}, _job())
        self.assertEqual(result.kind, FailureKind.INPUT_VALIDATION)

    def test_storage_failure_is_transient(self):
        result = UploadExecutor(FakeStorage(fail=True)).execute({"audio": FAKE_AUDIO}, _job())
        self.assertEqual(result.kind, FailureKind.TRANSIENT)


class TestStageFactory(unittest.TestCase):
    def test_builds_one_executor_per_stage(self):
        executors = create_stage_executors(
            make_config(),
            scraper=FakeScraper(),
            language_model=object(),
            synthesizer=FakeSynthesizer(),
            storage=FakeStorage(),
        )
        self.assertEqual(set(executors), set(StageKind))
        for stage, executor in executors.items():
            with self.subTest(stage=stage):
                self.assertIsInstance(executor, StageExecutor)
                self.assertEqual(executor.stage, stage)
