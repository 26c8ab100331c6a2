"""Error taxonomy for the compilation pipeline.

Every failure leaving :class:`~latex_project_compiler.pipeline.CompilationOrchestrator`
is a :class:`CompilationError`. Subclasses classify where it came from;
``hint`` carries optional human-readable guidance that never changes the class.
"""

from __future__ import annotations

import re


class CompilationError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, *, raw_log: str = "", hint: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.raw_log = raw_log
        self.hint = hint
        self.context = ""

    @property
    def user_message(self) -> str:
        """Message plus guidance, suitable for display."""
        if self.hint:
            return f"{self.message}\n{self.hint}"
        return self.message


class MissingMainDocument(CompilationError):
    def __init__(self, message: str = "No .tex file with \\documentclass found.") -> None:
        super().__init__(message)


class BackendError(CompilationError):
    """Raised by a compilation backend."""


class NetworkError(BackendError):
    """The remote compilation service could not be reached."""


class RemoteCompileError(BackendError):
    """The remote engine reported a fatal error."""

    def __init__(
        self,
        message: str,
        *,
        source_line: int | None = None,
        source_file: str = "",
        raw_log: str = "",
    ) -> None:
        super().__init__(message, raw_log=raw_log)
        self.source_line = source_line
        self.source_file = source_file


class EngineUnavailable(BackendError):
    """Every local engine source failed to load."""

    def __init__(self, message: str = "") -> None:
        super().__init__(
            message
            or "Local LaTeX engine is not available. Please switch to the remote backend."
        )


class LocalCompileError(BackendError):
    """The local engine exited with a non-zero status."""

    def __init__(
        self,
        message: str,
        *,
        source_line: int | None = None,
        source_file: str = "",
        raw_log: str = "",
    ) -> None:
        super().__init__(message, raw_log=raw_log)
        self.source_line = source_line
        self.source_file = source_file


class EmptyArtifact(BackendError):
    def __init__(self, message: str = "No PDF output generated") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Message humanization
# ---------------------------------------------------------------------------

NETWORK_HINT = (
    "Network Error: Unable to reach the compilation server. "
    "Check your internet connection or switch to the local backend."
)

_HINTS: tuple[tuple[re.Pattern[str], str], ...] = (
    (
        re.compile(r"failed to fetch|connection (?:refused|reset|aborted|error)|"
                   r"max retries exceeded|name or service not known|unable to reach", re.I),
        NETWORK_HINT,
    ),
    (
        re.compile(r"undefined control sequence", re.I),
        "A command is not defined. Check it for typos or add the \\usepackage that provides it.",
    ),
    (
        re.compile(r"file [`'][^']*' not found|no file \S+|cannot find file|not found in", re.I),
        "A referenced file could not be found. Check the path in \\input, \\include, "
        "\\includegraphics or \\bibliography.",
    ),
    (
        re.compile(r"missing [{}] inserted|extra [{}]|too many \}'s", re.I),
        "Braces are unbalanced. Look for a missing or extra { or } near the reported line.",
    ),
    (
        re.compile(r"perhaps a missing \\item|environment thebibliography undefined|"
                   r"empty .thebibliography", re.I),
        "The bibliography is empty or missing. Cite at least one entry and check the "
        "\\bibliography / \\addbibresource file.",
    ),
    (
        re.compile(r"runaway argument|file ended while scanning|paragraph ended before", re.I),
        "An argument was not terminated, most likely a closing brace is missing.",
    ),
)


def humanize_error(message: str) -> str | None:
    """Return guidance text for a raw error message, or ``None``."""
    for pattern, hint in _HINTS:
        if pattern.search(message):
            return hint
    return None
