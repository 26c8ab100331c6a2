"""Entry document selection."""

from __future__ import annotations

import logging

from ..models import FileTree, MainDocument
from .paths import PathResolver

logger = logging.getLogger(__name__)

_DOCUMENT_CLASS = "\\documentclass"

# Reserved entry file names, highest priority first.
_RESERVED_NAMES: tuple[tuple[str, int], ...] = (
    ("main.tex", 50),
    ("thesis.tex", 40),
    ("document.tex", 30),
)


def is_document(name: str) -> bool:
    return name.lower().endswith(".tex")


def score_candidate(name: str, path: str, content: str) -> int:
    """Score a .tex file as entry point candidate."""
    score = 0
    if _DOCUMENT_CLASS in content:
        score += 100
    lower = name.lower()
    for reserved, bonus in _RESERVED_NAMES:
        if lower == reserved:
            score += bonus
            break
    if "/" not in path:
        score += 10
    return score


def locate_main_document(tree: FileTree, resolver: PathResolver) -> MainDocument | None:
    """Pick the highest-scoring .tex file; ties go to the first one seen.

    Returns ``None`` when the tree holds no .tex file at all.
    """
    best: MainDocument | None = None
    for node in tree.files():
        if not is_document(node.name):
            continue
        path = resolver.resolve(node.id, tree)
        if not path:
            continue
        content = node.content or ""
        score = score_candidate(node.name, path, content)
        if best is None or score > best.score:
            best = MainDocument(id=node.id, path=path, content=content, score=score)

    if best is not None:
        logger.debug("Main document: %s (score %d)", best.path, best.score)
    return best
