"""
Content Store

The runtime persists install records and mirrored plugin assets through a
small read/write/delete/list interface. Production deployments may back it
with a remote repository; `LocalContentStore` keeps everything under a
directory on disk.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ContentStore(Protocol):
    async def read(self, path: str) -> str | None: ...

    async def write(self, path: str, content: str) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def list(self, directory: str) -> list[str]: ...


class LocalContentStore:
    """Filesystem-backed content store rooted at `base_dir`."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _full_path(self, path: str) -> Path:
        full = (self._base_dir / path.lstrip("/")).resolve()
        if full != self._base_dir and self._base_dir not in full.parents:
            msg = f"Path escapes content store: {path}"
            raise ValueError(msg)
        return full

    async def read(self, path: str) -> str | None:
        full = self._full_path(path)
        if not full.is_file():
            return None
        try:
            return full.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to read %s from content store: %s", path, exc)
            return None

    async def write(self, path: str, content: str) -> None:
        full = self._full_path(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_text(content, encoding="utf-8")

    async def delete(self, path: str) -> None:
        """Delete a file, or a whole directory tree when `path` names one."""
        full = self._full_path(path)
        if full.is_dir():
            shutil.rmtree(full)
        elif full.exists():
            full.unlink()

    async def list(self, directory: str) -> list[str]:
        """Names of the entries directly under `directory` (empty if missing)."""
        full = self._full_path(directory)
        if not full.is_dir():
            return []
        return sorted(child.name for child in full.iterdir())
