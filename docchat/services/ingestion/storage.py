"""Local object storage for uploaded documents."""

import logging
import os
from typing import Optional

from docchat.core.config import settings
from docchat.core.constants import STORAGE_BUCKET
from docchat.core.exceptions import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Filesystem-backed blob store.

    Locators have the form ``{bucket}/{key}`` and resolve to
    ``{root}/{bucket}/{key}``.
    """

    def __init__(self, root: Optional[str] = None, bucket: str = STORAGE_BUCKET):
        self.root = root or settings.DATA_DIR
        self.bucket = bucket
        if not os.path.exists(self.root):
            os.makedirs(self.root, exist_ok=True)
            logger.info(f"Created data directory: {self.root}")

    def _full_path(self, locator: str) -> str:
        full_path = os.path.realpath(os.path.join(self.root, locator))
        root = os.path.realpath(self.root)
        if os.path.commonpath([root, full_path]) != root:
            raise StorageError(f"Invalid storage locator: {locator}")
        return full_path

    def put(self, data: bytes, key: str) -> str:
        """Write bytes under ``key`` and return the locator. Existing blobs are never overwritten."""
        locator = f"{self.bucket}/{key}"
        full_path = self._full_path(locator)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise StorageError(f"Blob already exists: {locator}") from e
        except OSError as e:
            logger.error(f"Error writing blob {locator}: {str(e)}")
            raise StorageError(f"Upload failed: {str(e)}") from e
        logger.info(f"Stored blob {locator} ({len(data)} bytes)")
        return locator

    def get(self, locator: str) -> bytes:
        full_path = self._full_path(locator)
        try:
            with open(full_path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise StorageError(f"Blob not found: {locator}") from e
        except OSError as e:
            logger.error(f"Error reading blob {locator}: {str(e)}")
            raise StorageError(f"Download failed: {str(e)}") from e

    def delete(self, locator: str) -> bool:
        """Remove a blob. Returns False if it did not exist."""
        full_path = self._full_path(locator)
        try:
            os.remove(full_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error deleting blob {locator}: {str(e)}")
            raise StorageError(f"Delete failed: {str(e)}") from e

        # Drop now-empty {owner}/{document_id} directories
        parent = os.path.dirname(full_path)
        bucket_root = os.path.realpath(os.path.join(self.root, self.bucket))
        while parent != bucket_root and parent.startswith(bucket_root):
            try:
                os.rmdir(parent)
            except OSError:
                break
            parent = os.path.dirname(parent)
        logger.info(f"Deleted blob {locator}")
        return True

    def exists(self, locator: str) -> bool:
        return os.path.exists(self._full_path(locator))
