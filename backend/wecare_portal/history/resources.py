"""Transient file handles for previews and downloads.

A :class:`Handle` is the local stand-in for a browser object URL: the
payload is written to a scratch file that lives until the handle is
revoked.  Every handle must be revoked exactly once.
"""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger("wecare_portal.history.resources")


class HandleError(RuntimeError):
    pass


@dataclass(frozen=True)
class Blob:
    content: bytes
    content_type: str = "application/octet-stream"
    filename: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass(eq=False)
class Handle:
    id: str
    path: Path
    content_type: str
    size: int
    revoked: bool = field(default=False, init=False)

    @property
    def url(self) -> str:
        return self.path.as_uri()


def sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("._")
    return cleaned or "download"


def _unique_path(directory: Path, filename: str) -> Path:
    candidate = directory / filename
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem}-{counter}{suffix}"
        counter += 1
    return candidate


class ResourceManager:
    def __init__(self, scratch_dir: Path | None = None) -> None:
        self._scratch_dir = Path(scratch_dir) if scratch_dir else None
        self._owns_scratch = scratch_dir is None
        self._live: dict[str, Handle] = {}
        self.created_count = 0
        self.revoked_count = 0

    @property
    def live_handles(self) -> list[Handle]:
        return list(self._live.values())

    def _ensure_scratch(self) -> Path:
        if self._scratch_dir is None:
            self._scratch_dir = Path(tempfile.mkdtemp(prefix="wecare-handles-"))
        self._scratch_dir.mkdir(parents=True, exist_ok=True)
        return self._scratch_dir

    def present(self, blob: Blob) -> Handle:
        handle_id = uuid.uuid4().hex
        path = self._ensure_scratch() / handle_id
        path.write_bytes(blob.content)
        handle = Handle(id=handle_id, path=path, content_type=blob.content_type, size=blob.size)
        self._live[handle_id] = handle
        self.created_count += 1
        logger.debug("Created handle %s (%s bytes)", handle_id, blob.size)
        return handle

    def revoke(self, handle: Handle) -> None:
        if handle.revoked or handle.id not in self._live:
            raise HandleError(f"Handle {handle.id} already revoked")
        del self._live[handle.id]
        handle.revoked = True
        self.revoked_count += 1
        handle.path.unlink(missing_ok=True)
        logger.debug("Revoked handle %s", handle.id)

    def download(self, blob: Blob, filename: str, downloads_dir: Path) -> Path:
        """Save ``blob`` under ``downloads_dir`` through a one-shot handle."""
        handle = self.present(blob)
        try:
            downloads_dir = Path(downloads_dir)
            downloads_dir.mkdir(parents=True, exist_ok=True)
            target = _unique_path(downloads_dir, sanitize_filename(filename))
            shutil.copyfile(handle.path, target)
        finally:
            self.revoke(handle)
        logger.info("Saved download %s", target)
        return target

    def close(self) -> None:
        for handle in self.live_handles:
            self.revoke(handle)
        if self._owns_scratch and self._scratch_dir is not None:
            shutil.rmtree(self._scratch_dir, ignore_errors=True)
            self._scratch_dir = None


class PreviewSlot:
    """Owner of at most one live preview handle for a surface."""

    def __init__(self, manager: ResourceManager) -> None:
        self._manager = manager
        self._handle: Handle | None = None

    @property
    def handle(self) -> Handle | None:
        return self._handle

    def install(self, handle: Handle) -> Handle:
        self.release()
        self._handle = handle
        return handle

    def replace(self, blob: Blob) -> Handle:
        self.release()
        return self.install(self._manager.present(blob))

    def release(self) -> None:
        handle, self._handle = self._handle, None
        # the manager may already have revoked it on close()
        if handle is not None and not handle.revoked:
            self._manager.revoke(handle)

    def __enter__(self) -> "PreviewSlot":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
