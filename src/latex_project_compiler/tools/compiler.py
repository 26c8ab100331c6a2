"""TeX log parsing shared by both compilation backends.

Finds the first ``! ...`` fatal error together with the ``l.<n>`` source line
that follows it, tracks which ``.tex`` file was open at that point, and extracts
line windows from the source for display.
"""

from __future__ import annotations

import re

from ..models import LogError, Resource

# ---------------------------------------------------------------------------
# Log parsing
# ---------------------------------------------------------------------------

_ERROR_RE = re.compile(r"^![ \t]*(.*)", re.MULTILINE)
_LINE_RE = re.compile(r"^l\.(\d+)\s*(.*)", re.MULTILINE)

# File-open events. TeX Live writes (./chapters/intro.tex; MiKTeX omits the ./
_FILE_OPEN_RE = re.compile(r"\((?:\./)?([^\s()]+\.tex)\b")

# How far past a "!" line to look for its "l.<n>" line.
_LINE_LOOKAHEAD = 500


def _is_absolute_path(path: str) -> bool:
    """Return True for absolute/system paths (e.g. C:\\... or /usr/...)."""
    if len(path) >= 3 and path[1] == ":" and path[2] in ("/", "\\"):
        return True
    return path.startswith("/")


def _find_current_file(log_text: str, error_pos: int, main_file: str = "") -> str:
    """Determine which .tex file is open at *error_pos* in the log.

    TeX logs track files via parenthesis nesting: ``(./path.tex ...)``.
    Returns the innermost project file, or *main_file* when none is open.
    System files (absolute paths) are ignored.
    """
    stack: list[str] = []
    text = log_text[:error_pos]
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == "(":
            m = _FILE_OPEN_RE.match(text, i)
            if m:
                fname = m.group(1)
                stack.append("" if _is_absolute_path(fname) else fname.removeprefix("./"))
                i = m.end()
                continue
            stack.append("")
        elif ch == ")" and stack:
            stack.pop()
        i += 1

    for name in reversed(stack):
        if name:
            return name
    return main_file


def _extract_context(tex_content: str, line_num: int, window: int = 5) -> str:
    """Extract ±window lines around a line number from .tex source."""
    lines = tex_content.split("\n")
    start = max(0, line_num - 1 - window)
    end = min(len(lines), line_num + window)
    context_lines: list[str] = []
    for i in range(start, end):
        marker = ">>>" if i == line_num - 1 else "   "
        context_lines.append(f"{marker} {i + 1:4d} | {lines[i]}")
    return "\n".join(context_lines)


def first_fatal_error(log_text: str, main_file: str = "") -> LogError | None:
    """The first ``! ...`` error in the log, with its source line if reported.

    The ``l.<n>`` marker is searched for in the text just after the error
    line.  Returns None when the log holds no error with a message.
    """
    for em in _ERROR_RE.finditer(log_text):
        message = em.group(1).strip()
        if not message:
            continue
        line_num = None
        line_match = _LINE_RE.search(log_text[em.end():em.end() + _LINE_LOOKAHEAD])
        if line_match:
            line_num = int(line_match.group(1))
        return LogError(
            file=_find_current_file(log_text, em.start(), main_file),
            line=line_num,
            message=message,
        )
    return None


def error_context(resources: list[Resource], file: str, line: int, window: int = 2) -> str:
    """Source window around *line* of the text resource at *file*, or ``""``."""
    for res in resources:
        if res.path == file and res.content is not None:
            return _extract_context(res.content, line, window)
    return ""
