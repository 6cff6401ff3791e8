"""Configuration constants for podcast_generator.

All constants are re-exported from config.py for convenience.
"""

# General defaults
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_TIMEOUT_SECONDS = 20
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/119.0 Safari/537.36"
)
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Scheduler defaults
DEFAULT_MAX_CONCURRENT_JOBS = 3
MIN_CONCURRENT_JOBS = 1
MAX_CONCURRENT_JOBS = 10
DEFAULT_POLLING_INTERVAL_SECONDS = 5.0
MIN_POLLING_INTERVAL_SECONDS = 1.0
MAX_POLLING_INTERVAL_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 3
MAX_RETRIES_LIMIT = 10
DEFAULT_RETRY_BASE_DELAY_SECONDS = 5.0
DEFAULT_RETRY_MAX_DELAY_SECONDS = 300.0
# Per-stage timeout; not present in the original service
DEFAULT_STAGE_TIMEOUT_SECONDS = 600

# Cost defaults (USD)
DEFAULT_DAILY_LIMIT = 50.0
MAX_DAILY_LIMIT = 1000.0
DEFAULT_PER_JOB_LIMIT = 5.0
MAX_PER_JOB_LIMIT = 50.0
DEFAULT_COST_RESET_HOUR_UTC = 0

# Summarization defaults
DEFAULT_SUMMARY_PROVIDER = "openai"
DEFAULT_SUMMARY_MODEL = "gpt-4-turbo-preview"
DEFAULT_SUMMARY_MAX_TOKENS = 2000
DEFAULT_SUMMARY_TEMPERATURE = 0.3
MAX_CONTENT_LENGTH = 50000
CHARS_PER_TOKEN = 4
DEFAULT_WORDS_PER_MINUTE = 150
SUMMARY_WORD_TARGETS = {
    "short": 100,
    "medium": 200,
    "long": 300,
}
VALID_SUMMARY_STYLES = ("conversational", "brief", "detailed")

# Cost per 1k tokens by model (USD)
MODEL_COST_PER_1K_TOKENS = {
    "gpt-4-turbo-preview": 0.03,
    "gpt-4": 0.06,
    "gpt-3.5-turbo": 0.002,
    "gpt-4o-mini": 0.00015,
}

# Quality gate thresholds (0-1)
DEFAULT_MIN_COHERENCE = 0.7
DEFAULT_MIN_RELEVANCE = 0.7
DEFAULT_MIN_READABILITY = 0.6

# Key point / takeaway extraction
KEY_POINT_MIN_CHARS = 50
MAX_KEY_POINTS = 5
MAX_TAKEAWAYS = 3

# TTS defaults
DEFAULT_TTS_PROVIDER = "openai"
DEFAULT_TTS_MODEL = "tts-1"
DEFAULT_TTS_VOICE = "alloy"
DEFAULT_TTS_SPEED = 1.0
DEFAULT_TTS_FORMAT = "mp3"
VALID_TTS_FORMATS = ("mp3", "opus", "aac", "flac", "wav")
TTS_COST_PER_1K_CHARS = {
    "openai": 0.015,
    "google": 0.016,
    "elevenlabs": 0.3,
    "local": 0.0,
}
# OpenAI speech endpoint rejects input longer than this
TTS_MAX_INPUT_CHARS = 4096

# Storage defaults
DEFAULT_STORAGE_PROVIDER = "local"
DEFAULT_STORAGE_DIR = "episodes"
DEFAULT_UPLOAD_COST_PER_MB = 0.0
BYTES_PER_MB = 1024 * 1024

# Scrape defaults
DEFAULT_SCRAPE_COST = 0.0

# Event log
DEFAULT_EVENT_LOG_SIZE = 500
MAX_LOG_QUERY_LIMIT = 100
DEFAULT_LOG_QUERY_LIMIT = 50

# Progress percentage at the start of each status
STATUS_PROGRESS = {
    "pending": 0,
    "scraping": 10,
    "summarizing": 40,
    "generating-audio": 70,
    "uploading": 90,
    "completed": 100,
}
