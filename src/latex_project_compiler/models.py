"""Pydantic models for the LaTeX project compilation pipeline."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class NodeKind(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class BackendKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


class AuxEntryKind(str, Enum):
    CHAPTER = "chapter"
    SECTION = "section"
    SUBSECTION = "subsection"
    FIGURE = "figure"
    TABLE = "table"


# Stored in place of binary content that was never encoded for transport.
BINARY_PLACEHOLDER = "[Binary Data]"


# ---------------------------------------------------------------------------
# File tree snapshot
# ---------------------------------------------------------------------------

class TreeNode(BaseModel):
    """A single file or folder in the project tree."""
    id: str = Field(..., description="Unique node identifier")
    name: str = Field(..., description="File or folder name, no separators")
    kind: NodeKind = Field(default=NodeKind.FILE)
    parent_id: str | None = Field(default=None, description="Parent node id, None or root id at top level")
    content: str | None = Field(default=None, description="Text, or a data: URL for binary files")

    @property
    def is_file(self) -> bool:
        return self.kind == NodeKind.FILE


class FileTree(BaseModel):
    """Immutable-by-convention snapshot of the project tree."""
    nodes: dict[str, TreeNode] = Field(default_factory=dict)
    root_id: str = Field(default="root", description="Sentinel id of the tree root")

    def get(self, node_id: str | None) -> TreeNode | None:
        if node_id is None:
            return None
        return self.nodes.get(node_id)

    def files(self) -> Iterator[TreeNode]:
        """Yield file nodes in insertion order."""
        return (n for n in self.nodes.values() if n.is_file)


class MainDocument(BaseModel):
    """The entry document selected for compilation."""
    id: str
    path: str
    content: str = ""
    score: int = 0

    @property
    def basename(self) -> str:
        """Path without the ``.tex`` extension, used for auxiliary file names."""
        if self.path.lower().endswith(".tex"):
            return self.path[:-4]
        return self.path


# ---------------------------------------------------------------------------
# Compilation resources
# ---------------------------------------------------------------------------

class Resource(BaseModel):
    """One file handed to a compilation backend."""
    path: str = Field(..., description="Path inside the compilation directory")
    main: bool = Field(default=False, description="Whether this is the entry document")
    content: str | None = Field(default=None, description="Text content")
    file: str | None = Field(default=None, description="Base64-encoded binary content")

    @property
    def is_binary(self) -> bool:
        return self.file is not None

    def to_payload(self) -> dict[str, object]:
        """Wire representation used by the remote compilation service."""
        payload: dict[str, object] = {"path": self.path}
        if self.main:
            payload["main"] = True
        if self.file is not None:
            payload["file"] = self.file
        else:
            payload["content"] = self.content or ""
        return payload


# ---------------------------------------------------------------------------
# Auxiliary index files
# ---------------------------------------------------------------------------

class AuxIndexEntry(BaseModel):
    """One line of a synthesized .toc/.lof/.lot file."""
    kind: AuxEntryKind
    number: str = Field(..., description="Dotted hierarchical number, e.g. '2.1'")
    title: str
    page: int = Field(..., description="Approximate page number")

    def render(self) -> str:
        anchor = f"{self.kind.value}.{self.number}"
        if self.kind in (AuxEntryKind.FIGURE, AuxEntryKind.TABLE):
            label = f"{{\\numberline {{{self.number}}}{{\\ignorespaces {self.title}}}}}"
        else:
            label = f"{{\\numberline {{{self.number}}}{self.title}}}"
        return f"\\contentsline {{{self.kind.value}}}{label}{{{self.page}}}{{{anchor}}}"


class AuxIndex(BaseModel):
    """Table of contents, list of figures and list of tables for one document."""
    toc: list[AuxIndexEntry] = Field(default_factory=list)
    lof: list[AuxIndexEntry] = Field(default_factory=list)
    lot: list[AuxIndexEntry] = Field(default_factory=list)

    def render_toc(self) -> str:
        return "\n".join(e.render() for e in self.toc)

    def render_lof(self) -> str:
        return "\n".join(e.render() for e in self.lof)

    def render_lot(self) -> str:
        return "\n".join(e.render() for e in self.lot)


# ---------------------------------------------------------------------------
# Cache + options
# ---------------------------------------------------------------------------

class CacheEntry(BaseModel):
    fingerprint: str
    artifact: Path
    created_at: float


class CompileOptions(BaseModel):
    """Per-invocation compile options."""
    draft_mode: bool = Field(default=False, description="Strip images for faster iteration")
    skip_cache: bool = Field(default=False, description="Bypass the compilation cache")
    backend: BackendKind = Field(default=BackendKind.REMOTE)
    on_progress: Callable[[str], None] | None = Field(default=None, exclude=True)


# ---------------------------------------------------------------------------
# Log diagnostics
# ---------------------------------------------------------------------------

class LogError(BaseModel):
    """A fatal ``! ...`` error found in a TeX log."""
    file: str = Field(default="", description="Source file open when the error occurred")
    line: int | None = Field(default=None, description="Line number from the l.<n> marker")
    message: str = Field(..., description="Error message")


# ---------------------------------------------------------------------------
# Document outline
# ---------------------------------------------------------------------------

class StructureItem(BaseModel):
    id: str
    kind: AuxEntryKind
    title: str
    node_id: str
    line: int


class DocumentStructure(BaseModel):
    toc: list[StructureItem] = Field(default_factory=list)
    figures: list[StructureItem] = Field(default_factory=list)
    tables: list[StructureItem] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Project Configuration (loaded from YAML)
# ---------------------------------------------------------------------------

class ProjectConfig(BaseModel):
    """Compilation settings loaded from config.yaml."""
    backend: BackendKind = Field(default=BackendKind.REMOTE, description="Default backend")
    compiler: str = Field(default="pdflatex", description="pdflatex, xelatex, or lualatex")

    # Remote service
    remote_url: str = Field(default="https://latex.ytotech.com/builds/sync")
    remote_timeout: int = Field(default=120, description="HTTP request timeout in seconds")

    # Local engine
    engine_sources: list[str] = Field(
        default_factory=lambda: ["latexmk", "pdflatex"],
        description="Engine sources in priority order: TeX programs or 'module:factory' specs",
    )
    engine_timeout: int = Field(default=15, description="Timeout per engine source load attempt")
    engine_compile_timeout: int = Field(default=120, description="Local compile timeout in seconds")

    # Caching + output
    cache_ttl_seconds: float = Field(default=300.0, description="Compilation cache entry lifetime")
    artifact_dir: str | None = Field(default=None, description="Where PDFs are written; temp dir if unset")
