"""Service API for running the episode generation queue unattended.

This module provides a programmatic interface for non-interactive use, such as
running as a daemon or batch job (e.g., with supervisor, systemd, cron).

A service run:
- Loads a configuration file (JSON or YAML)
- Enqueues the ``episodes`` listed in that file
- Runs the queue processor until every episode is completed or failed
- Returns a structured result with a human-readable summary

Example configuration:
    max_concurrent_jobs: 2
    daily_limit: 10.0
    storage_dir: ./episodes
    episodes:
      - episode_title: "Morning Brief"
        source_name: "TLDR Tech"
        source_url: "https://example.com/article"
        options:
          target_length: short

For daemon/service usage:
    # supervisor config
    [program:podcast_generator]
    command=python -m podcast_generator.service --config /path/to/config.yaml
    autostart=true
    autorestart=false
"""

from __future__ import annotations

import logging
import os
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from . import __version__, config
from .models import GenerationOptions, QueueItem, QueueStatus
from .queue import QueueProcessor
from .stages import create_stage_executors

logger = logging.getLogger(__name__)

# How often the service checks whether the queue has drained
WAIT_INTERVAL_SECONDS = 0.5


@dataclass
class ServiceResult:
    """Result of a service run.

    Attributes:
        episodes_completed: Number of episodes that reached ``completed``
        episodes_failed: Number of episodes that ended ``failed``
        total_cost: Spend committed during the run (USD)
        summary: Human-readable summary message
        success: Whether the run completed without failed episodes
        error: Error message if success is False, None otherwise
        audio_urls: URLs of the published episodes
    """

    episodes_completed: int
    episodes_failed: int
    total_cost: float
    summary: str
    success: bool = True
    error: Optional[str] = None
    audio_urls: List[str] = field(default_factory=list)


def apply_log_level(level: str, log_file: Optional[str] = None) -> None:
    """Apply logging level to root logger and configure handlers.

    Args:
        level: Log level string (e.g., 'DEBUG', 'INFO', 'WARNING')
        log_file: Optional path to log file. If provided, logs will be written to both
                  console and file.

    Raises:
        ValueError: If log level is invalid
        OSError: If log file cannot be created or written to
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(console_handler)
        root_logger.setLevel(numeric_level)
    else:
        root_logger.setLevel(numeric_level)
        for handler in root_logger.handlers:
            handler.setLevel(numeric_level)

    if log_file:
        file_handler_exists = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in root_logger.handlers
        )
        if not file_handler_exists:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)
            logger.info("Logging to file: %s", log_file)

    logger.setLevel(numeric_level)


def enqueue_episodes(processor: QueueProcessor, episodes: Iterable[Mapping[str, Any]]) -> List[str]:
    """Enqueue episode requests given as mappings.

    Each mapping needs ``episode_title``, ``source_name`` and either
    ``source_url`` or ``content``; ``options`` may hold ``GenerationOptions``
    fields.

    Returns:
        Ids of the created queue items

    Raises:
        ValueError: If an entry is malformed
    """
    ids: List[str] = []
    for index, entry in enumerate(episodes):
        if not isinstance(entry, Mapping):
            raise ValueError(f"Episode #{index + 1} must be a mapping")
        try:
            options = GenerationOptions(**dict(entry.get("options") or {}))
        except TypeError as exc:
            raise ValueError(f"Episode #{index + 1} has invalid options: {exc}") from exc
        title = entry.get("episode_title")
        source = entry.get("source_name")
        if not title or not source:
            raise ValueError(f"Episode #{index + 1} needs episode_title and source_name")
        item = processor.enqueue(
            title,
            source,
            source_url=entry.get("source_url"),
            content=entry.get("content"),
            options=options,
        )
        ids.append(item.id)
    return ids


def wait_until_drained(
    processor: QueueProcessor, item_ids: Iterable[str], timeout: Optional[float] = None
) -> bool:
    """Block until every listed item is terminal.

    Returns:
        True if all items finished, False on timeout
    """
    pending = set(item_ids)
    deadline = time.monotonic() + timeout if timeout is not None else None
    while pending:
        pending = {item_id for item_id in pending if not processor.get_item(item_id).is_terminal}
        if not pending:
            break
        if deadline is not None and time.monotonic() >= deadline:
            return False
        time.sleep(WAIT_INTERVAL_SECONDS)
    return True


def _summarize(items: List[QueueItem], total_cost: float) -> ServiceResult:
    completed = [item for item in items if item.status == QueueStatus.COMPLETED]
    failed = [item for item in items if item.status == QueueStatus.FAILED]
    lines = [
        f"Episodes completed: {len(completed)}, failed: {len(failed)}, "
        f"cost ${total_cost:.4f}"
    ]
    for item in completed:
        lines.append(f"  ok     {item.episode_title}: {item.payload.get('audio_url')}")
    for item in failed:
        kind = item.failure_kind.value if item.failure_kind else ""
        lines.append(f"  failed {item.episode_title}: {kind} {item.last_error or ''}".rstrip())
    return ServiceResult(
        episodes_completed=len(completed),
        episodes_failed=len(failed),
        total_cost=total_cost,
        summary="\n".join(lines),
        success=not failed,
        error=f"{len(failed)} episode(s) failed" if failed else None,
        audio_urls=[
            item.payload["audio_url"] for item in completed if item.payload.get("audio_url")
        ],
    )


def run(
    cfg: config.Config,
    episodes: Iterable[Mapping[str, Any]],
    timeout: Optional[float] = None,
    processor: Optional[QueueProcessor] = None,
) -> ServiceResult:
    """Generate the given episodes and wait for them to finish.

    Args:
        cfg: Configuration object
        episodes: Episode requests (see ``enqueue_episodes``)
        timeout: Seconds to wait for the queue to drain (None waits forever)
        processor: Pre-built processor (one is built from ``cfg`` if omitted)

    Returns:
        ServiceResult with processing results
    """
    try:
        if cfg.log_file or cfg.log_level:
            apply_log_level(level=cfg.log_level or "INFO", log_file=cfg.log_file)

        if processor is None:
            processor = QueueProcessor(cfg, create_stage_executors(cfg))
        item_ids = enqueue_episodes(processor, episodes)
        if not item_ids:
            return ServiceResult(0, 0, 0.0, summary="No episodes to generate")

        processor.start()
        try:
            drained = wait_until_drained(processor, item_ids, timeout)
        finally:
            processor.stop()

        items = [processor.get_item(item_id) for item_id in item_ids]
        result = _summarize(items, sum(item.cost_to_date for item in items))
        if not drained:
            result.success = False
            result.error = f"Timed out after {timeout}s waiting for the queue to drain"
        return result
    except Exception as e:
        error_msg = str(e)
        logger.error("Service run failed: %s", error_msg, exc_info=True)
        return ServiceResult(0, 0, 0.0, summary="", success=False, error=error_msg)


def run_from_config_file(config_path: str | Path) -> ServiceResult:
    """Run the queue from a configuration file that lists ``episodes``.

    Args:
        config_path: Path to configuration file (JSON or YAML)

    Returns:
        ServiceResult with processing results
    """
    try:
        config_dict: Dict[str, Any] = config.load_config_file(str(config_path))
        episodes = config_dict.pop("episodes", None) or []
        if not isinstance(episodes, list):
            raise ValueError("'episodes' must be a list")
        cfg = config.Config(**config_dict)
    except Exception as exc:
        error_msg = f"Failed to load configuration file: {exc}"
        logger.error(error_msg)
        return ServiceResult(0, 0, 0.0, summary="", success=False, error=error_msg)

    return run(cfg, episodes)


def main() -> int:
    """Main entry point for service mode.

    python -m podcast_generator.service --config config.yaml

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    import argparse

    parser = argparse.ArgumentParser(
        description="Podcast Generator Service - Generate episodes from a configuration file",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate the episodes listed in a config file
  python -m podcast_generator.service --config config.yaml
        """,
    )
    parser.add_argument(
        "--config",
        required=True,
        help="Path to configuration file (JSON or YAML)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"podcast_generator {__version__}",
    )

    args = parser.parse_args()

    result = run_from_config_file(args.config)

    if result.success:
        print(result.summary)
        return 0
    print(result.summary, file=sys.stderr)
    print(f"Error: {result.error}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
