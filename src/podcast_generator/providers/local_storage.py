"""Filesystem blob storage."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from ..exceptions import ProviderRuntimeError

logger = logging.getLogger(__name__)


class LocalBlobStorage:
    """BlobStorage that writes files under a directory.

    Returns ``<base_url>/<key>`` when a public base URL is configured and a
    ``file://`` URL otherwise.
    """

    def __init__(self, root_dir: str, base_url: Optional[str] = None) -> None:
        self.root = Path(root_dir).expanduser()
        self.base_url = base_url.rstrip("/") if base_url else None

    def store(self, key: str, data: bytes, content_type: str) -> str:
        relative = Path(key)
        if relative.is_absolute() or ".." in relative.parts:
            raise ValueError(f"Invalid storage key: {key}")
        target = self.root / relative
        tmp_path = target.with_name(target.name + ".part")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as fh:
                fh.write(data)
            # Readers never observe a half-written file
            os.replace(tmp_path, target)
        except OSError as exc:
            raise ProviderRuntimeError(
                message=f"Failed to write {target}: {exc}", provider="LocalStorage"
            ) from exc

        logger.debug("Stored %d bytes (%s) at %s", len(data), content_type, target)
        if self.base_url:
            return f"{self.base_url}/{relative.as_posix()}"
        return target.resolve().as_uri()
