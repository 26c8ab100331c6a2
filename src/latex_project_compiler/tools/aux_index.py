"""Single-pass synthesis of .toc / .lof / .lot auxiliary files.

LaTeX normally needs a first run to write ``\\contentsline`` entries and a
second run to typeset them.  Scanning the sources statically and shipping the
auxiliary files with the first run gives a populated table of contents, list
of figures and list of tables straight away.  Page numbers are estimates kept
per list: the table of contents starts at page 1 and advances 2 per chapter
and 1 per section; the figure and table lists each start at page 10 and
advance 5 per chapter and 1 per float of their own kind.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from ..models import AuxEntryKind, AuxIndex, AuxIndexEntry, TreeNode
from .paths import lookup
from .references import INPUT_RE, blank_comments, document_ref

logger = logging.getLogger(__name__)

# Unstarred sectioning commands; the argument is read with _read_group.
_HEADING_RE = re.compile(r"\\(chapter|section|subsection)(?![A-Za-z*])\s*(?:\[([^\]]*)\])?\s*(?=\{)")
_FLOAT_BEGIN_RE = re.compile(r"\\begin\s*\{(figure|table)\*?\}")
_CAPTION_RE = re.compile(r"\\caption\s*(?:\[([^\]]*)\])?\s*(?=\{)")

CAPTION_LOOKAHEAD = 20

# Page estimates.  Floats never move the table of contents and vice versa.
_TOC_FIRST_PAGE = 1
_TOC_CHAPTER_PAGES = 2
_TOC_SECTION_PAGES = 1
_FLOAT_FIRST_PAGE = 10
_FLOAT_CHAPTER_PAGES = 5
_FLOAT_PAGES = 1


def _read_group(text: str, start: int) -> str | None:
    """Return the brace-balanced group opening at *start* (without braces)."""
    if start >= len(text) or text[start] != "{":
        return None
    depth = 0
    for i in range(start, len(text)):
        if i > start and text[i - 1] == "\\":
            continue
        if text[i] == "{":
            depth += 1
        elif text[i] == "}":
            depth -= 1
            if depth == 0:
                return text[start + 1:i]
    return None


def _find_caption(line: str, pos: int = 0) -> str | None:
    m = _CAPTION_RE.search(line, pos)
    if not m:
        return None
    long_title = _read_group(line, m.end())
    short_title = m.group(1)
    title = short_title if short_title else long_title
    return title.strip() if title is not None else None


@dataclass
class _Scanner:
    index: dict[str, TreeNode]
    result: AuxIndex = field(default_factory=AuxIndex)
    chapter: int = 0
    section: int = 0
    subsection: int = 0
    figure: int = 0
    table: int = 0
    toc_page: int = _TOC_FIRST_PAGE
    figure_page: int = _FLOAT_FIRST_PAGE
    table_page: int = _FLOAT_FIRST_PAGE
    chapters_seen: bool = False
    active: set[str] = field(default_factory=set)

    def _prefix(self) -> list[int]:
        return [self.chapter] if self.chapters_seen else []

    def _number(self, *parts: int) -> str:
        return ".".join(str(p) for p in [*self._prefix(), *parts])

    # -- headings -----------------------------------------------------------

    def heading(self, level: str, title: str) -> None:
        if level == "chapter":
            self.chapters_seen = True
            self.chapter += 1
            self.section = self.subsection = 0
            self.figure = self.table = 0
            self.toc_page += _TOC_CHAPTER_PAGES
            self.figure_page += _FLOAT_CHAPTER_PAGES
            self.table_page += _FLOAT_CHAPTER_PAGES
            kind, number = AuxEntryKind.CHAPTER, str(self.chapter)
        elif level == "section":
            self.section += 1
            self.subsection = 0
            self.toc_page += _TOC_SECTION_PAGES
            kind, number = AuxEntryKind.SECTION, self._number(self.section)
        else:
            self.subsection += 1
            kind, number = AuxEntryKind.SUBSECTION, self._number(self.section, self.subsection)
        self.result.toc.append(AuxIndexEntry(kind=kind, number=number, title=title, page=self.toc_page))

    # -- floats -------------------------------------------------------------

    def float_entry(self, env: str, lines: list[str], start: int, col: int) -> None:
        caption = None
        end_re = re.compile(r"\\end\s*\{" + env + r"\*?\}")
        for j in range(start, min(start + CAPTION_LOOKAHEAD, len(lines))):
            line = lines[j]
            caption = _find_caption(line, col if j == start else 0)
            if caption is not None:
                break
            if end_re.search(line, col if j == start else 0):
                break

        if env == "figure":
            self.figure += 1
            self.figure_page += _FLOAT_PAGES
            title = caption if caption is not None else "Untitled Figure"
            self.result.lof.append(AuxIndexEntry(
                kind=AuxEntryKind.FIGURE, number=self._number(self.figure), title=title, page=self.figure_page,
            ))
        else:
            self.table += 1
            self.table_page += _FLOAT_PAGES
            title = caption if caption is not None else "Untitled Table"
            self.result.lot.append(AuxIndexEntry(
                kind=AuxEntryKind.TABLE, number=self._number(self.table), title=title, page=self.table_page,
            ))

    # -- driver -------------------------------------------------------------

    def scan(self, content: str, path: str = "") -> None:
        if path:
            self.active.add(path)
        lines = blank_comments(content).split("\n")
        for i, line in enumerate(lines):
            if not line.strip():
                continue

            includes = list(INPUT_RE.finditer(line))
            if includes:
                for m in includes:
                    self._include(m.group(1))
                continue

            hm = _HEADING_RE.search(line)
            if hm:
                long_title = _read_group(line, hm.end())
                if long_title is not None:
                    title = hm.group(2) if hm.group(2) else long_title
                    self.heading(hm.group(1), title.strip())

            fm = _FLOAT_BEGIN_RE.search(line)
            if fm:
                self.float_entry(fm.group(1), lines, i, fm.end())
        if path:
            self.active.discard(path)

    def _include(self, raw: str) -> None:
        ref = document_ref(raw)
        node = lookup(self.index, ref)
        if node is None or not node.content:
            logger.debug("Include %s not found in tree, skipped in index synthesis", ref)
            return
        if ref in self.active:
            logger.warning("Circular include of %s ignored in index synthesis", ref)
            return
        self.scan(node.content, ref)


def synthesize_aux_index(
    entry_content: str,
    index: dict[str, TreeNode],
    entry_path: str = "",
) -> AuxIndex:
    """Scan the entry document, inlining includes, and collect index entries.

    Includes are resolved from the project root, the way the engine resolves
    them when run from the entry document's directory.
    """
    scanner = _Scanner(index=index)
    scanner.scan(entry_content, entry_path)
    result = scanner.result
    logger.debug(
        "Synthesized index: %d toc, %d lof, %d lot entries",
        len(result.toc), len(result.lof), len(result.lot),
    )
    return result
