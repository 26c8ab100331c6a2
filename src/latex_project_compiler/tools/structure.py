"""Document outline: headings, figures and tables with source line numbers.

Unlike the auxiliary index scan this is not numbered; it feeds navigation,
so every item records the file and line it comes from.  Comments are blanked
rather than removed so line numbers refer to the unmodified source.
"""

from __future__ import annotations

import logging
import re

from ..models import AuxEntryKind, DocumentStructure, FileTree, StructureItem
from .locator import locate_main_document
from .paths import PathResolver, lookup
from .references import INPUT_RE, blank_comments, document_ref

logger = logging.getLogger(__name__)

_SECTION_RE = re.compile(r"\\(chapter|section|subsection)\*?\s*\{([\s\S]*?)\}")
_ENV_RE = re.compile(r"\\begin\{(figure|table)\*?\}([\s\S]*?)\\end\{\1\*?\}")
_CAPTION_RE = re.compile(r"\\caption\s*(?:\[[^\]]*\])?\s*\{([\s\S]*?)\}")
_WS_RE = re.compile(r"\s+")


def _line_number(text: str, offset: int) -> int:
    return text.count("\n", 0, offset) + 1


def _clean(title: str) -> str:
    return _WS_RE.sub(" ", title).strip()


def parse_project_structure(
    tree: FileTree,
    resolver: PathResolver,
    root_id: str | None = None,
) -> DocumentStructure:
    """Collect the outline starting at *root_id* (default: the main document).

    Included files are followed once each, in document order.
    """
    result = DocumentStructure()
    if root_id is None:
        main = locate_main_document(tree, resolver)
        if main is None:
            return result
        root_id = main.id

    index = resolver.index(tree)
    processed: set[str] = set()

    def parse_file(node_id: str) -> None:
        if node_id in processed:
            return
        processed.add(node_id)
        node = tree.get(node_id)
        if node is None or not node.content:
            return

        text = blank_comments(node.content)

        for m in _SECTION_RE.finditer(text):
            result.toc.append(StructureItem(
                id=f"{node_id}-{m.start()}",
                kind=AuxEntryKind(m.group(1)),
                title=_clean(m.group(2)),
                node_id=node_id,
                line=_line_number(text, m.start()),
            ))

        for m in _ENV_RE.finditer(text):
            env = m.group(1)
            cap = _CAPTION_RE.search(text, m.start(2), m.end(2))
            if cap:
                title = _clean(cap.group(1))
                line = _line_number(text, cap.start())
            else:
                title = f"Untitled {env.capitalize()}"
                line = _line_number(text, m.start())
            item = StructureItem(
                id=f"{node_id}-{m.start()}",
                kind=AuxEntryKind(env),
                title=title,
                node_id=node_id,
                line=line,
            )
            (result.figures if env == "figure" else result.tables).append(item)

        for m in INPUT_RE.finditer(text):
            included = lookup(index, document_ref(m.group(1)))
            if included is not None:
                parse_file(included.id)
            else:
                logger.debug("Outline: include %s not found", m.group(1))

    parse_file(root_id)
    return result
