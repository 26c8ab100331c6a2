"""Compilation backends: remote HTTP service and local TeX engine.

Both implement :class:`CompilationBackend` and turn a resource list into PDF
bytes or raise a :class:`~latex_project_compiler.errors.BackendError`.

The local backend loads its engine lazily through :class:`EngineLoader`, a
small state machine that tries engine sources in priority order and
remembers a total failure so later calls fail fast.
"""

from __future__ import annotations

import base64
import importlib
import json
import logging
import re
import shutil
import subprocess
import tempfile
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Protocol

import requests

from ..errors import EmptyArtifact, EngineUnavailable, LocalCompileError, NetworkError, RemoteCompileError
from ..models import BackendKind, ProjectConfig, Resource
from .compiler import first_fatal_error

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

SUPPORTED_COMPILERS = ("pdflatex", "xelatex", "lualatex")
DEFAULT_REMOTE_URL = "https://latex.ytotech.com/builds/sync"

# Responses at or below this size are error payloads, not PDFs.
MIN_ARTIFACT_BYTES = 1000

_BIBER_MARKERS = ("biblatex", "\\addbibresource")


def _notify(on_progress: ProgressCallback | None, message: str) -> None:
    if on_progress is not None:
        on_progress(message)


def _main_resource(resources: list[Resource]) -> Resource | None:
    return next((r for r in resources if r.main), None)


class CompilationBackend(ABC):
    """Strategy interface shared by all backends."""

    name: str = ""

    @abstractmethod
    def compile(
        self,
        resources: list[Resource],
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        """Compile *resources* and return the PDF bytes."""


# ---------------------------------------------------------------------------
# Remote service
# ---------------------------------------------------------------------------


def _pick_log(log_files: dict[str, Any]) -> str:
    """The main ``.log`` from a ``log_files`` mapping, else the first text entry."""
    texts = {name: text for name, text in log_files.items() if isinstance(text, str)}
    for name, text in texts.items():
        if name.endswith(".log"):
            return text
    return next(iter(texts.values()), "")


class RemoteServiceBackend(CompilationBackend):
    """Synchronous submission to a LaTeX-on-HTTP compatible service."""

    name = "remote"

    def __init__(
        self,
        url: str = DEFAULT_REMOTE_URL,
        *,
        compiler: str = "pdflatex",
        timeout: int = 120,
        session: requests.Session | None = None,
    ) -> None:
        if compiler not in SUPPORTED_COMPILERS:
            raise ValueError(f"Unsupported compiler {compiler!r}. Choose from: {', '.join(SUPPORTED_COMPILERS)}")
        self.url = url
        self.compiler = compiler
        self.timeout = timeout
        self.session = session or requests.Session()

    def build_payload(self, resources: list[Resource]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "compiler": self.compiler,
            "resources": [r.to_payload() for r in resources],
        }
        main = _main_resource(resources)
        main_content = (main.content or "") if main else ""
        if any(marker in main_content for marker in _BIBER_MARKERS):
            payload["options"] = {"bibliography": {"command": "biber"}}
        return payload

    def compile(
        self,
        resources: list[Resource],
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        payload = self.build_payload(resources)
        biber = " + biber" if "options" in payload else ""
        _notify(on_progress, f"Sending to compilation server ({self.compiler}{biber})...")
        logger.info("POST %s with %d resources", self.url, len(resources))

        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.Timeout as exc:
            raise NetworkError(f"Compilation server did not answer within {self.timeout}s") from exc
        except requests.ConnectionError as exc:
            raise NetworkError(f"Unable to reach the compilation server: {exc}") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"Request to the compilation server failed: {exc}") from exc

        _notify(on_progress, "Processing response...")
        main = _main_resource(resources)
        return self._read_artifact(response, main.path if main else "")

    def _read_artifact(self, response: requests.Response, main_file: str) -> bytes:
        content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
        body = response.content or b""
        if content_type == "application/pdf" and len(body) > MIN_ARTIFACT_BYTES:
            return body

        text = body.decode("utf-8", errors="replace")
        try:
            data = json.loads(text)
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            log = _pick_log(data.get("log_files") or {})
            fatal = first_fatal_error(log, main_file) if log else None
            if fatal is None:
                raise RemoteCompileError(str(data["error"]), raw_log=log)
            message = fatal.message
            if fatal.line is not None:
                message += f" (line {fatal.line})"
            raise RemoteCompileError(
                message,
                source_line=fatal.line,
                source_file=fatal.file,
                raw_log=log,
            )

        if not response.ok:
            raise RemoteCompileError(f"Compilation failed: {text[:300]}")
        raise RemoteCompileError(f"Invalid response: {text[:200]}")


# ---------------------------------------------------------------------------
# Local engine
# ---------------------------------------------------------------------------


@dataclass
class EngineResult:
    """Outcome of one engine run."""
    status: int
    log: str = ""
    pdf: bytes = b""


class TexEngine(Protocol):
    """Virtual-filesystem engine interface."""

    def write_file(self, path: str, data: str | bytes) -> None: ...
    def set_main_file(self, path: str) -> None: ...
    def compile(self) -> EngineResult: ...


def _find_program(program: str) -> str | None:
    """Find a TeX executable, checking both Unix and Windows (.exe) names."""
    return shutil.which(program) or shutil.which(f"{program}.exe")


class SubprocessTexEngine:
    """Engine backed by an installed TeX program.

    Files are kept in memory until :meth:`compile`, which writes them to a
    fresh temporary directory, runs the program once and forgets them.
    """

    def __init__(self, executable: str, *, timeout: int = 120) -> None:
        self.executable = executable
        self.timeout = timeout
        self._files: dict[str, str | bytes] = {}
        self._main: str | None = None

    @property
    def is_latexmk(self) -> bool:
        return Path(self.executable).stem.lower() == "latexmk"

    def write_file(self, path: str, data: str | bytes) -> None:
        self._files[path] = data

    def set_main_file(self, path: str) -> None:
        self._main = path

    def _command(self, main: str) -> list[str]:
        out_dir = str(PurePosixPath(main).parent)
        if self.is_latexmk:
            cmd = [self.executable, "-pdf", "-interaction=nonstopmode"]
            if out_dir != ".":
                cmd.append(f"-outdir={out_dir}")
        else:
            cmd = [self.executable, "-interaction=nonstopmode"]
            if out_dir != ".":
                cmd.append(f"-output-directory={out_dir}")
        cmd.append(main)
        return cmd

    def _materialize(self, root: Path) -> None:
        base = root.resolve()
        for path, data in self._files.items():
            target = (root / path).resolve()
            if not target.is_relative_to(base):
                raise ValueError(f"Resource path escapes the compilation directory: {path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, bytes):
                target.write_bytes(data)
            else:
                target.write_text(data, encoding="utf-8")

    def compile(self) -> EngineResult:
        if self._main is None:
            raise ValueError("No main file set")
        main = self._main

        with tempfile.TemporaryDirectory(prefix="lpc-") as tmp:
            root = Path(tmp)
            try:
                self._materialize(root)
            finally:
                self._files = {}

            cmd = self._command(main)
            logger.info("Running: %s (in %s)", " ".join(cmd), root)
            try:
                proc = subprocess.run(
                    cmd,
                    cwd=str(root),
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired:
                return EngineResult(status=1, log=f"! Compilation timed out after {self.timeout}s")

            main_path = PurePosixPath(main)
            out_dir = root / main_path.parent
            log_path = out_dir / f"{main_path.stem}.log"
            pdf_path = out_dir / f"{main_path.stem}.pdf"
            if log_path.exists():
                log = log_path.read_text(encoding="utf-8", errors="replace")
            else:
                log = (proc.stdout or "") + (proc.stderr or "")
            pdf = pdf_path.read_bytes() if pdf_path.exists() else b""

        logger.info("%s finished: returncode=%d, pdf_bytes=%d", Path(self.executable).name, proc.returncode, len(pdf))
        return EngineResult(status=proc.returncode, log=log, pdf=pdf)


class EngineSource(ABC):
    """One place an engine can be loaded from."""

    name: str = ""

    @abstractmethod
    def load(self, timeout: float) -> TexEngine:
        """Return a ready engine or raise.

        *timeout* bounds external probes; in-process loading is not interrupted.
        """


class TexBinarySource(EngineSource):
    """A TeX program on PATH, probed with ``--version``."""

    def __init__(self, program: str, *, compile_timeout: int = 120) -> None:
        self.program = program
        self.name = program
        self.compile_timeout = compile_timeout

    def load(self, timeout: float) -> TexEngine:
        executable = _find_program(self.program)
        if not executable:
            raise FileNotFoundError(f"{self.program} not found on PATH")
        subprocess.run(
            [executable, "--version"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
        return SubprocessTexEngine(executable, timeout=self.compile_timeout)


class ImportSource(EngineSource):
    """A Python engine factory given as ``"package.module:factory"``.

    The import and the factory call run in-process and are not bounded by the
    loader timeout.
    """

    def __init__(self, spec: str) -> None:
        module_name, _, attr = spec.partition(":")
        if not module_name or not attr:
            raise ValueError(f"Engine spec must look like 'package.module:factory', got {spec!r}")
        self.module_name = module_name
        self.attr = attr
        self.name = spec

    def load(self, timeout: float) -> TexEngine:
        module = importlib.import_module(self.module_name)
        factory = getattr(module, self.attr)
        return factory()


_IMPORT_SPEC_RE = re.compile(r"^[A-Za-z_][\w.]*:[A-Za-z_]\w*$")


def parse_engine_source(spec: str, *, compile_timeout: int = 120) -> EngineSource:
    """``"module:factory"`` -> :class:`ImportSource`, anything else -> :class:`TexBinarySource`."""
    if _IMPORT_SPEC_RE.match(spec):
        return ImportSource(spec)
    return TexBinarySource(spec, compile_timeout=compile_timeout)


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class EngineLoader:
    """Lazy engine initialization.

    ``UNINITIALIZED -> INITIALIZING -> READY`` on the first source that loads,
    ``-> FAILED`` when every source fails.  FAILED is terminal: later calls
    raise :class:`EngineUnavailable` without touching the sources again.
    """

    def __init__(self, sources: list[EngineSource], *, timeout: float = 15) -> None:
        self.sources = sources
        self.timeout = timeout
        self.state = EngineState.UNINITIALIZED
        self.engine: TexEngine | None = None
        self.failures: list[str] = []

    def ensure_ready(self, on_progress: ProgressCallback | None = None) -> TexEngine:
        if self.state == EngineState.READY and self.engine is not None:
            return self.engine
        if self.state == EngineState.FAILED:
            raise EngineUnavailable(
                "Local LaTeX engine previously failed to initialize. Please switch to the remote backend."
            )
        if self.state == EngineState.INITIALIZING:
            raise RuntimeError("Local LaTeX engine initialization is already in progress")

        self.state = EngineState.INITIALIZING
        _notify(on_progress, "Initializing local LaTeX engine...")
        for source in self.sources:
            _notify(on_progress, f"Trying engine source {source.name}...")
            try:
                engine = source.load(self.timeout)
            except Exception as exc:  # any failing source falls through to the next
                logger.warning("Engine source %s failed: %s", source.name, exc)
                self.failures.append(f"{source.name}: {exc}")
                continue
            self.engine = engine
            self.state = EngineState.READY
            _notify(on_progress, f"Local LaTeX engine ready ({source.name})")
            return engine

        self.state = EngineState.FAILED
        tried = "; ".join(self.failures) or "no engine sources configured"
        raise EngineUnavailable(
            f"Local LaTeX engine is not available ({tried}). Please switch to the remote backend."
        )


class LocalEngineBackend(CompilationBackend):
    """Compile with a lazily loaded local engine."""

    name = "local"

    def __init__(self, loader: EngineLoader) -> None:
        self.loader = loader

    def compile(
        self,
        resources: list[Resource],
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        engine = self.loader.ensure_ready(on_progress)

        main = _main_resource(resources)
        if main is None:
            raise LocalCompileError("No main LaTeX file specified")

        _notify(on_progress, "Writing files to virtual filesystem...")
        for res in resources:
            if res.file is not None:
                engine.write_file(res.path, base64.b64decode(res.file))
            else:
                engine.write_file(res.path, res.content or "")
        engine.set_main_file(main.path)

        _notify(on_progress, "Compiling with local engine...")
        result = engine.compile()
        if result.status != 0:
            fatal = first_fatal_error(result.log, main.path)
            if fatal is None:
                raise LocalCompileError("Local compilation failed. Check the log for details.", raw_log=result.log)
            raise LocalCompileError(
                fatal.message,
                source_line=fatal.line,
                source_file=fatal.file,
                raw_log=result.log,
            )
        if not result.pdf:
            raise EmptyArtifact()

        _notify(on_progress, "Processing PDF output...")
        return bytes(result.pdf)


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def create_backend(kind: BackendKind, config: ProjectConfig) -> CompilationBackend:
    """Build the backend for *kind* from project settings."""
    if kind == BackendKind.LOCAL:
        sources = [
            parse_engine_source(spec, compile_timeout=config.engine_compile_timeout)
            for spec in config.engine_sources
        ]
        return LocalEngineBackend(EngineLoader(sources, timeout=config.engine_timeout))
    return RemoteServiceBackend(
        config.remote_url,
        compiler=config.compiler,
        timeout=config.remote_timeout,
    )
