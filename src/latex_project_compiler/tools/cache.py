"""Content fingerprinting and the TTL compilation cache."""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from pathlib import Path

from ..models import CacheEntry, FileTree
from .references import is_image

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0


def fingerprint(tree: FileTree) -> str:
    """Hash the content of every non-image file in the tree.

    Nodes are visited in id order so the result does not depend on dict
    ordering.  Image content is not hashed: image-only edits keep the cached
    PDF.
    """
    digest = hashlib.blake2b(digest_size=16)
    for node in sorted(tree.files(), key=lambda n: n.id):
        if is_image(node.name):
            continue
        digest.update(node.id.encode("utf-8"))
        digest.update(b"\x00")
        digest.update((node.content or "").encode("utf-8"))
        digest.update(b"\x00")
    return digest.hexdigest()


class CompilationCache:
    """Fingerprint -> artifact path map with time-based expiry.

    Expired entries read as misses and are dropped on access.  Callers clear
    the cache whenever the tree structure changes.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str) -> Path | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self.ttl_seconds:
            logger.debug("Cache entry %s expired", key)
            del self._entries[key]
            return None
        return entry.artifact

    def put(self, key: str, artifact: Path) -> None:
        self._entries[key] = CacheEntry(fingerprint=key, artifact=artifact, created_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None
