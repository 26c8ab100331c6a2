"""Build a :class:`FileTree` snapshot from a directory on disk."""

from __future__ import annotations

import base64
import logging
import mimetypes
from pathlib import Path

from ..models import BINARY_PLACEHOLDER, FileTree, NodeKind, TreeNode
from .references import is_image

logger = logging.getLogger(__name__)


def _encode_image(path: Path) -> str:
    mime, _ = mimetypes.guess_type(path.name)
    if mime is None:
        mime = "application/octet-stream"
    payload = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime};base64,{payload}"


def load_tree(directory: str | Path, *, root_id: str = "root") -> FileTree:
    """Snapshot *directory* as a tree.

    Node ids are POSIX paths relative to *directory*.  Text files are read as
    UTF-8, images become base64 data URLs and any other binary file gets the
    unencoded placeholder.  Hidden files and folders are skipped.
    """
    base = Path(directory)
    if not base.is_dir():
        raise FileNotFoundError(f"Project directory not found: {base}")

    tree = FileTree(root_id=root_id)
    for path in sorted(base.rglob("*")):
        rel = path.relative_to(base)
        if any(part.startswith(".") for part in rel.parts):
            continue
        node_id = rel.as_posix()
        parent_id = rel.parent.as_posix() if rel.parent != Path(".") else root_id

        if path.is_dir():
            tree.nodes[node_id] = TreeNode(id=node_id, name=path.name, kind=NodeKind.FOLDER, parent_id=parent_id)
            continue

        if is_image(path.name):
            content = _encode_image(path)
        else:
            try:
                content = path.read_text(encoding="utf-8")
            except UnicodeDecodeError:
                logger.warning("Binary file %s stored as placeholder", node_id)
                content = BINARY_PLACEHOLDER
        tree.nodes[node_id] = TreeNode(id=node_id, name=path.name, parent_id=parent_id, content=content)

    logger.info("Loaded %d nodes from %s", len(tree.nodes), base)
    return tree
