"""Local directory blob provider.

Blobs land at root/bucket/name. Each blob is written to a temporary file in
the target directory and renamed into place when the write block exits
normally, so readers never observe a half-written blob. On failure the
temporary file is removed.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from blobsink.contracts.errors import BlobIOError
from blobsink.core.logging import get_logger

log = get_logger(__name__)


class LocalBlobProvider:
    """Writes blobs under a root directory."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, bucket: str, name: str) -> Path:
        """Resolve a blob location, refusing names that escape the bucket."""
        bucket_dir = (self._root / bucket).resolve()
        target = (bucket_dir / name).resolve()
        if not target.is_relative_to(bucket_dir) or target == bucket_dir:
            raise BlobIOError(f"Blob name {name!r} escapes bucket {bucket!r}")
        return target

    @contextmanager
    def open(self, bucket: str, name: str) -> Iterator[BinaryIO]:
        target = self.path_for(bucket, name)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
        except OSError as e:
            raise BlobIOError(f"Cannot open blob {bucket}/{name}: {e}") from e

        tmp_path = Path(tmp_name)
        committed = False
        try:
            with os.fdopen(fd, "wb") as sink:
                yield sink
            os.replace(tmp_path, target)
            committed = True
            log.debug("Committed blob", blob=f"{bucket}/{name}", path=str(target))
        except OSError as e:
            if isinstance(e, BlobIOError):
                raise
            raise BlobIOError(f"Cannot write blob {bucket}/{name}: {e}") from e
        finally:
            if not committed:
                tmp_path.unlink(missing_ok=True)
