"""Filesystem-backed object store for generated comic images."""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path

from review_comics.errors import StorageError

logger = logging.getLogger(__name__)

ARTIFACT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class FileArtifactStore:
    """Store comic images as ``<root>/<artifact_id>.png``.

    URLs are built from ``base_url`` when one is configured (for a directory
    served by a web server or CDN), otherwise a ``file://`` URI is returned.
    """

    def __init__(self, root: Path, base_url: str | None = None, suffix: str = ".png"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.suffix = suffix

    def path_for(self, artifact_id: str) -> Path:
        if not artifact_id or not ARTIFACT_ID_RE.match(artifact_id):
            raise StorageError(f"Invalid artifact id: {artifact_id!r}")
        return self.root / f"{artifact_id}{self.suffix}"

    def url_for(self, artifact_id: str) -> str:
        if self.base_url:
            return f"{self.base_url}/{artifact_id}{self.suffix}"
        return self.path_for(artifact_id).resolve().as_uri()

    async def put(self, artifact_id: str, data: bytes) -> str:
        if not data:
            raise StorageError("Refusing to store an empty artifact")
        path = self.path_for(artifact_id)
        await asyncio.to_thread(self._write, path, data)
        logger.info("Stored artifact %s (%d bytes)", artifact_id, len(data))
        return self.url_for(artifact_id)

    async def delete(self, artifact_id: str) -> bool:
        path = self.path_for(artifact_id)
        return await asyncio.to_thread(self._remove, path)

    def _write(self, path: Path, data: bytes) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(path.suffix + ".tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        except OSError as exc:
            raise StorageError(f"Failed to write artifact {path.name}: {exc}") from exc

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StorageError(f"Failed to delete artifact {path.name}: {exc}") from exc
        return True
