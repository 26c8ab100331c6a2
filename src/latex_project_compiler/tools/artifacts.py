"""On-disk storage for compiled PDFs."""

from __future__ import annotations

import logging
import tempfile
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Writes PDF bytes to a directory and hands back the file path."""

    def __init__(self, directory: str | Path | None = None) -> None:
        if directory is None:
            directory = tempfile.mkdtemp(prefix="lpc-artifacts-")
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def save(self, data: bytes, stem: str = "document") -> Path:
        safe_stem = Path(stem).name or "document"
        path = self.directory / f"{safe_stem}-{uuid.uuid4().hex[:8]}.pdf"
        path.write_bytes(data)
        logger.debug("Wrote %d bytes to %s", len(data), path)
        return path
