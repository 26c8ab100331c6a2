"""Compile an in-memory LaTeX project tree into a PDF."""

from .errors import CompilationError
from .models import BackendKind, CompileOptions, FileTree, ProjectConfig, TreeNode
from .pipeline import CompilationOrchestrator

__all__ = [
    "BackendKind",
    "CompilationError",
    "CompilationOrchestrator",
    "CompileOptions",
    "FileTree",
    "ProjectConfig",
    "TreeNode",
]
