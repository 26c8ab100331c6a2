"""CompilationOrchestrator: tree snapshot in, PDF path out.

Stages, in order:

1. LOCATE    : pick the entry document (fatal if there is none)
2. CACHE     : return a cached PDF for an unchanged tree (full mode only)
3. ANALYZE   : transitive dependency set of the entry document
4. PREPARE   : resource list, draft-mode image stripping
5. STRUCTURE : synthesized .toc / .lof / .lot files
6. COMPILE   : selected backend
7. STORE     : write the PDF, remember it in the cache

Every failure leaves as a :class:`~latex_project_compiler.errors.CompilationError`.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path

from .errors import NETWORK_HINT, CompilationError, MissingMainDocument, NetworkError, humanize_error
from .models import (
    BackendKind,
    CompileOptions,
    DocumentStructure,
    FileTree,
    MainDocument,
    ProjectConfig,
    Resource,
)
from .tools.artifacts import ArtifactStore
from .tools.assembler import append_aux_resources, assemble_resources
from .tools.aux_index import synthesize_aux_index
from .tools.backends import CompilationBackend, create_backend
from .tools.cache import CompilationCache, fingerprint
from .tools.compiler import error_context
from .tools.locator import locate_main_document
from .tools.paths import PathResolver
from .tools.references import build_dependency_set
from .tools.structure import parse_project_structure

logger = logging.getLogger(__name__)


class CompilationOrchestrator:
    """Public entry point of the compilation pipeline.

    Owns its path cache, compilation cache, artifact store and backends, so
    two orchestrators never share state.  Call :meth:`on_tree_mutated` (or the
    two ``clear_*`` methods) whenever the caller changes the tree structure.
    One orchestrator runs one compilation at a time.
    """

    def __init__(
        self,
        config: ProjectConfig | None = None,
        *,
        backends: dict[BackendKind, CompilationBackend] | None = None,
        cache: CompilationCache | None = None,
        resolver: PathResolver | None = None,
        artifacts: ArtifactStore | None = None,
    ) -> None:
        self.config = config or ProjectConfig()
        self.backends: dict[BackendKind, CompilationBackend] = dict(backends or {})
        self.cache = cache or CompilationCache(self.config.cache_ttl_seconds)
        self.resolver = resolver or PathResolver()
        self._artifacts = artifacts

    # ------------------------------------------------------------------
    # Cache control
    # ------------------------------------------------------------------

    def clear_path_cache(self) -> None:
        self.resolver.invalidate_all()

    def clear_compilation_cache(self) -> None:
        self.cache.clear()

    def on_tree_mutated(self) -> None:
        """Drop everything derived from the previous tree structure."""
        self.clear_path_cache()
        self.clear_compilation_cache()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @property
    def artifacts(self) -> ArtifactStore:
        if self._artifacts is None:
            self._artifacts = ArtifactStore(self.config.artifact_dir)
        return self._artifacts

    def backend(self, kind: BackendKind) -> CompilationBackend:
        """The backend for *kind*, created on first use and kept for reuse."""
        if kind not in self.backends:
            self.backends[kind] = create_backend(kind, self.config)
        return self.backends[kind]

    def _main_document(self, tree: FileTree) -> MainDocument:
        main = locate_main_document(tree, self.resolver)
        if main is None:
            raise MissingMainDocument()
        return main

    def dependencies(self, tree: FileTree) -> set[str]:
        """Transitive references of the entry document."""
        main = self._main_document(tree)
        return build_dependency_set(main.content, self.resolver.index(tree))

    def outline(self, tree: FileTree) -> DocumentStructure:
        return parse_project_structure(tree, self.resolver)

    def prepare(
        self,
        tree: FileTree,
        options: CompileOptions | None = None,
    ) -> tuple[MainDocument, list[Resource]]:
        """Everything short of compiling: entry document and full resource list."""
        options = options or CompileOptions()
        report = _Progress(options)
        main = self._main_document(tree)
        return main, self._resources(tree, main, options, report)

    def _resources(
        self,
        tree: FileTree,
        main: MainDocument,
        options: CompileOptions,
        report: _Progress,
    ) -> list[Resource]:
        index = self.resolver.index(tree)

        report("Analyzing dependencies...")
        dependencies = build_dependency_set(main.content, index)

        report("Preparing files...")
        resources = assemble_resources(
            tree, main, dependencies, self.resolver, draft_mode=options.draft_mode,
        )

        report("Generating document structure...")
        aux_index = synthesize_aux_index(main.content, index, main.path)
        return append_aux_resources(resources, main, aux_index)

    # ------------------------------------------------------------------
    # Compile
    # ------------------------------------------------------------------

    def compile(self, tree: FileTree, options: CompileOptions | None = None) -> Path:
        """Compile *tree* and return the path of the PDF.

        Raises a :class:`CompilationError` subclass on any failure.
        """
        options = options or CompileOptions()
        report = _Progress(options)
        start = time.perf_counter()
        mode = "draft" if options.draft_mode else "full"
        use_cache = not (options.draft_mode or options.skip_cache)

        report(f"Starting {mode} compilation...")
        resources: list[Resource] = []
        try:
            main = self._main_document(tree)

            key = ""
            if use_cache:
                report("Checking cache...")
                key = fingerprint(tree)
                cached = self.cache.get(key)
                if cached is not None:
                    report("Using cached PDF")
                    return cached

            resources = self._resources(tree, main, options, report)

            report(f"Compiling {len(resources)} files...")
            data = self.backend(options.backend).compile(resources, report)
            artifact = self.artifacts.save(data, main.basename)

            if not options.draft_mode:
                self.cache.put(key or fingerprint(tree), artifact)
        except CompilationError as exc:
            self._finish_error(exc, resources)
            report("Compilation failed")
            raise
        except Exception as exc:
            error = CompilationError(f"Compilation failed: {exc}")
            self._finish_error(error, resources)
            report("Compilation failed")
            raise error from exc

        report(f"Done in {time.perf_counter() - start:.1f}s")
        return artifact

    def _finish_error(self, error: CompilationError, resources: list[Resource]) -> None:
        if error.hint is None:
            error.hint = NETWORK_HINT if isinstance(error, NetworkError) else humanize_error(error.message)
        line = getattr(error, "source_line", None)
        source = getattr(error, "source_file", "")
        if line and source and not error.context:
            error.context = error_context(resources, source, line)
        logger.error("%s: %s", type(error).__name__, error.message)


class _Progress:
    """Forwards stage messages to the caller's callback and the log."""

    def __init__(self, options: CompileOptions) -> None:
        self._callback = options.on_progress

    def __call__(self, message: str) -> None:
        logger.info(message)
        if self._callback is not None:
            self._callback(message)
