"""Local storage for uploaded source files."""

import asyncio
import logging
from pathlib import Path

from docchat.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class FileStorage:
    """Byte access and best-effort deletion for uploads under one directory."""

    def __init__(self, upload_dir: str) -> None:
        self.root = Path(upload_dir)

    def resolve(self, name: str) -> Path:
        """Map a stored name (or absolute path) to a path on disk."""
        path = Path(name)
        return path if path.is_absolute() else self.root / path

    async def read_bytes(self, path: str) -> bytes:
        """
        Read an uploaded file.

        Raises:
            StorageError: If the file is missing or unreadable.
        """
        target = self.resolve(path)
        try:
            return await asyncio.to_thread(target.read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read {target}: {str(e)}") from e

    async def delete(self, path: str) -> bool:
        """
        Remove an uploaded file.

        Returns:
            True if a file was removed, False if it was absent or removal failed.
        """
        target = self.resolve(path)
        try:
            await asyncio.to_thread(target.unlink)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning(f"Failed to delete {target}: {str(e)}")
            return False
        return True
