"""Reference extraction and transitive dependency resolution.

Regex scanning, not a LaTeX parser: arguments must sit inside one pair of
braces on one line.  Comments are blanked with spaces before scanning so that
match offsets (and therefore line numbers) still refer to the original text.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections import deque

from ..models import TreeNode
from .paths import lookup

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# A % after an even run of backslashes (\\ is a line break) up to end of line.
_COMMENT_RE = re.compile(r"(?<!\\)((?:\\\\)*)%.*$", re.MULTILINE)

INPUT_RE = re.compile(r"\\(?:input|include)\s*\{([^}]+)\}")
INCLUDEGRAPHICS_RE = re.compile(r"\\includegraphics\s*(?:\[[^\]]*\])?\s*\{([^}]+)\}")
BIBLIOGRAPHY_RE = re.compile(r"\\(?:bibliography|addbibresource)\s*(?:\[[^\]]*\])?\s*\{([^}]+)\}")

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".pdf")
# Tried in order when \includegraphics omits the extension.
GUESSED_IMAGE_EXTENSIONS = (".png", ".jpg", ".pdf")


def blank_comments(text: str) -> str:
    """Replace comment text with spaces, keeping every offset unchanged."""
    return _COMMENT_RE.sub(lambda m: m.group(1) + " " * (len(m.group(0)) - len(m.group(1))), text)


def is_image(path: str) -> bool:
    return path.lower().endswith(IMAGE_EXTENSIONS)


def _with_extension(ref: str, ext: str) -> str:
    return ref if ref.endswith(ext) else ref + ext


def _relative_to(ref: str, base_path: str) -> str:
    """Resolve *ref* against the directory of *base_path*."""
    if ref.startswith("/"):
        return ref.lstrip("/")
    directory = posixpath.dirname(base_path)
    return posixpath.normpath(posixpath.join(directory, ref))


def document_ref(raw: str, base_path: str = "") -> str:
    """Normalize an ``\\input``/``\\include`` argument to a .tex path."""
    return _relative_to(_with_extension(raw.strip(), ".tex"), base_path)


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_references(content: str, base_path: str = "") -> set[str]:
    """Return every document, image and bibliography path *content* refers to.

    Document references are relative to the directory of *base_path*, the
    referencing document.  Image references without an extension expand to
    one guess per common extension.
    """
    text = blank_comments(content)
    refs: set[str] = set()

    for m in INPUT_RE.finditer(text):
        refs.add(document_ref(m.group(1), base_path))

    for m in INCLUDEGRAPHICS_RE.finditer(text):
        ref = m.group(1).strip()
        if is_image(ref):
            refs.add(ref)
        else:
            refs.update(ref + ext for ext in GUESSED_IMAGE_EXTENSIONS)

    for m in BIBLIOGRAPHY_RE.finditer(text):
        for entry in m.group(1).split(","):
            entry = entry.strip()
            if entry:
                refs.add(_with_extension(entry, ".bib"))

    return refs


def build_dependency_set(entry_content: str, index: dict[str, TreeNode]) -> set[str]:
    """Breadth-first closure of references starting at the entry document.

    The entry document's own references are root-relative.  Referenced .tex
    files present in *index* are scanned in turn; images and bibliographies
    are leaves.  Each path is processed once, so circular includes terminate.
    """
    dependencies: set[str] = set()
    queue: deque[tuple[str, str]] = deque([(entry_content, "")])

    while queue:
        content, path = queue.popleft()
        for ref in sorted(extract_references(content, path)):
            if ref in dependencies:
                continue
            dependencies.add(ref)
            if not ref.endswith(".tex"):
                continue
            node = lookup(index, ref)
            if node is not None and node.content:
                queue.append((node.content, ref))

    logger.debug("Resolved %d dependencies", len(dependencies))
    return dependencies
