"""
Photo file storage backends.

Trip photos are written to a pluggable store. The local backend keeps them
under `photo_storage_dir`; blocking file I/O runs in the default executor.
"""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from fleet_dashboard.app.core.config import settings

logger = logging.getLogger(__name__)


class PhotoStorage(Protocol):
    async def save(self, path: str, content: bytes) -> str:
        """Store content at a relative path and return the stored path."""
        ...

    async def delete(self, path: str) -> None:
        ...


class LocalPhotoStorage:
    """Stores photos on the local filesystem."""

    def __init__(self, base_dir: str = None):
        self.base_dir = Path(base_dir or settings.photo_storage_dir).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.base_dir / path).resolve()
        if self.base_dir not in target.parents:
            raise ValueError(f"Photo path escapes storage directory: {path}")
        return target

    def _write(self, target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)

    async def save(self, path: str, content: bytes) -> str:
        target = self._resolve(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, target, content)
        logger.debug("Photo stored", extra={"path": path, "size": len(content)})
        return path

    async def delete(self, path: str) -> None:
        target = self._resolve(path)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, target.unlink)

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
