"""Deterministic tools for project analysis, resource preparation, and compilation."""

from .aux_index import synthesize_aux_index
from .locator import locate_main_document
from .paths import PathResolver
from .references import build_dependency_set, extract_references
from .structure import parse_project_structure

__all__ = [
    "PathResolver",
    "build_dependency_set",
    "extract_references",
    "locate_main_document",
    "parse_project_structure",
    "synthesize_aux_index",
]
