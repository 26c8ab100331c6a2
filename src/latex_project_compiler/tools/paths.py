"""Node id -> slash-delimited path resolution with memoization."""

from __future__ import annotations

import posixpath

from ..models import FileTree, TreeNode


class PathResolver:
    """Resolve tree node ids to project-relative paths.

    Resolved paths are memoized per id. The memo is only valid for one tree
    structure: call :meth:`invalidate_all` after any add, remove, rename or
    reparent.
    """

    def __init__(self) -> None:
        self._cache: dict[str, str] = {}

    def resolve(self, node_id: str, tree: FileTree) -> str:
        """Return the path of *node_id*, or ``""`` when the id is unknown.

        A node whose parent is missing resolves to its own name.
        """
        if node_id in self._cache:
            return self._cache[node_id]

        node = tree.get(node_id)
        if node is None:
            return ""

        # Walk up until the root sentinel, a missing parent or a memoized ancestor.
        chain: list[TreeNode] = [node]
        prefix = ""
        seen = {node.id}
        current = node
        while current.parent_id and current.parent_id != tree.root_id:
            if current.parent_id in self._cache:
                prefix = self._cache[current.parent_id]
                break
            parent = tree.get(current.parent_id)
            if parent is None or parent.id in seen:
                break
            seen.add(parent.id)
            chain.append(parent)
            current = parent

        for item in reversed(chain):
            prefix = f"{prefix}/{item.name}" if prefix else item.name
            self._cache[item.id] = prefix
        return prefix

    def invalidate_all(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def index(self, tree: FileTree) -> dict[str, TreeNode]:
        """Map resolved paths of file nodes to nodes.

        Bare file names are added as aliases when no real path already uses
        them, so ``\\input{intro}`` can still find ``chapters/intro.tex``.
        """
        by_path: dict[str, TreeNode] = {}
        for node in tree.files():
            path = self.resolve(node.id, tree)
            if path:
                by_path[path] = node
        for node in tree.files():
            by_path.setdefault(node.name, node)
        return by_path


def lookup(index: dict[str, TreeNode], ref: str) -> TreeNode | None:
    """Find *ref* by exact path, falling back to its basename."""
    node = index.get(ref)
    if node is None:
        node = index.get(posixpath.basename(ref))
    return node
