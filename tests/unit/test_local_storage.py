#!/usr/bin/env python3
"""Unit tests for LocalBlobStorage and the provider factories."""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import FAKE_AUDIO, make_config

from podcast_generator.exceptions import ProviderRuntimeError
from podcast_generator.providers import (
    BlobStorage,
    ContentScraper,
    LanguageModel,
    SpeechSynthesizer,
)
from podcast_generator.providers.factory import (
    create_blob_storage,
    create_content_scraper,
    create_language_model,
    create_speech_synthesizer,
)
from podcast_generator.providers.local_storage import LocalBlobStorage

pytestmark = [pytest.mark.unit]


class TestLocalBlobStorage(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)

    def test_store_returns_file_uri(self):
        storage = LocalBlobStorage(self.temp_dir.name)

        url = storage.store("job-1/abc.mp3", FAKE_AUDIO, "audio/mpeg")

        target = Path(self.temp_dir.name) / "job-1" / "abc.mp3"
        self.assertEqual(target.read_bytes(), FAKE_AUDIO)
        self.assertEqual(url, target.resolve().as_uri())
        self.assertFalse(target.with_name("abc.mp3.part").exists())

    def test_store_uses_base_url(self):
        storage = LocalBlobStorage(self.temp_dir.name, base_url="https://cdn.example.com/")
        url = storage.store("job-1/abc.mp3", FAKE_AUDIO, "audio/mpeg")
        self.assertEqual(url, "https://cdn.example.com/job-1/abc.mp3")

    def test_overwrites_existing_object(self):
        storage = LocalBlobStorage(self.temp_dir.name)
        storage.store("a.mp3", b"old", "audio/mpeg")
        storage.store("a.mp3", b"new", "audio/mpeg")
        self.assertEqual((Path(self.temp_dir.name) / "a.mp3").read_bytes(), b"new")

    def test_rejects_keys_outside_root(self):
        storage = LocalBlobStorage(self.temp_dir.name)
        for key in ("../escape.mp3", "/abs/path.mp3"):
            with self.subTest(key=key):
                with self.assertRaises(ValueError):
                    storage.store(key, FAKE_AUDIO, "audio/mpeg")

    def test_write_failure_is_provider_error(self):
        storage = LocalBlobStorage(self.temp_dir.name)
        replace = "podcast_generator.providers.local_storage.os.replace"
        with patch(replace, side_effect=OSError("disk full")):
            with self.assertRaises(ProviderRuntimeError) as ctx:
                storage.store("a.mp3", FAKE_AUDIO, "audio/mpeg")
        self.assertIn("disk full", str(ctx.exception))


class TestProviderFactories(unittest.TestCase):
    def test_builds_configured_providers(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            cfg = make_config(storage_dir=os.path.join(tmp_dir, "episodes"))
            with patch("openai.OpenAI"):
                language_model = create_language_model(cfg)
                synthesizer = create_speech_synthesizer(cfg)

            self.assertIsInstance(create_content_scraper(cfg), ContentScraper)
            self.assertIsInstance(language_model, LanguageModel)
            self.assertIsInstance(synthesizer, SpeechSynthesizer)
            storage = create_blob_storage(cfg)
            self.assertIsInstance(storage, BlobStorage)
            self.assertEqual(storage.root, Path(tmp_dir) / "episodes")
