"""Asset store: content-addressed storage for screenshot and diff mask files."""

from __future__ import annotations

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Optional, Protocol

from shotdiff.errors import ImageNotFound

logger = logging.getLogger(__name__)


class AssetStore(Protocol):
    def local_path(self, ref: str) -> Path: ...

    def store(self, local_path: Path) -> str: ...

    def public_url(self, ref: str) -> Optional[str]: ...


def file_key(path: Path) -> str:
    """SHA-256 hex digest of a file, used as its asset reference."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


class LocalAssetStore:
    """Stores assets on the local filesystem under their SHA-256 key."""

    def __init__(self, root: Path, public_url_base: str | None = None):
        self.root = Path(root)
        self.public_url_base = public_url_base.rstrip("/") if public_url_base else None

    def _path_for(self, ref: str) -> Path:
        return self.root / ref[:2] / ref

    def local_path(self, ref: str) -> Path:
        path = self._path_for(ref)
        if not path.exists():
            raise ImageNotFound(path)
        return path

    def exists(self, ref: str) -> bool:
        return self._path_for(ref).exists()

    def store(self, local_path: Path) -> str:
        """Copy a file into the store and return its reference."""
        local_path = Path(local_path)
        ref = file_key(local_path)
        dest = self._path_for(ref)
        if not dest.exists():
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(local_path, dest)
            logger.debug("Stored asset %s from %s", ref, local_path)
        return ref

    def public_url(self, ref: str) -> Optional[str]:
        if not self.public_url_base:
            return None
        return f"{self.public_url_base}/{ref}"
