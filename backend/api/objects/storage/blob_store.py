"""Blob storage backends.

The registry only needs put/get/delete by key; anything that can do that
(local disk, an S3-compatible bucket) plugs in behind BlobStore.
"""

import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path


class BlobStoreError(Exception):
    """Raised when the backend fails for a reason other than absence."""


class BlobNotFoundError(BlobStoreError):
    """Raised by get() when no blob exists under the key."""


class BlobStore(ABC):
    """Backend-agnostic key -> bytes store."""

    @abstractmethod
    def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store data under key, replacing anything already there."""

    @abstractmethod
    def get(self, key: str) -> bytes:
        """Return the blob. Raises BlobNotFoundError if missing."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete the blob. Returns False if it was already absent."""

    @abstractmethod
    def exists(self, key: str) -> bool:
        """Whether a blob is stored under key."""


_SAFE_KEY = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]{0,127}$")


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed blob store.

    Each blob is a single file ``root/<key>``. Writes go to a temp file in the
    same directory and are renamed into place, so readers never see a
    partially written blob.
    """

    def __init__(self, root_dir: Path):
        self.root = Path(root_dir)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key) or key in {".", ".."}:
            raise BlobStoreError(f"Invalid blob key: {key!r}")
        return self.root / key

    def put(self, key: str, data: bytes, content_type: str) -> None:
        path = self._path(key)
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise BlobStoreError(f"Failed to write blob {key}: {e}") from e

    def get(self, key: str) -> bytes:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob not found: {key}") from e
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob {key}: {e}") from e

    def delete(self, key: str) -> bool:
        path = self._path(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {key}: {e}") from e

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()
