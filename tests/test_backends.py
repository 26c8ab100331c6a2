"""Tests for the remote and local compilation backends."""

from __future__ import annotations

import base64
import json
import subprocess
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import requests

from latex_project_compiler.errors import (
    EmptyArtifact,
    EngineUnavailable,
    LocalCompileError,
    NetworkError,
    RemoteCompileError,
)
from latex_project_compiler.models import BackendKind, ProjectConfig, Resource
from latex_project_compiler.tools.backends import (
    EngineLoader,
    EngineResult,
    EngineSource,
    EngineState,
    ImportSource,
    LocalEngineBackend,
    RemoteServiceBackend,
    SubprocessTexEngine,
    TexBinarySource,
    create_backend,
    parse_engine_source,
)

FAKE_PDF = b"%PDF-1.5\n" + b"0" * 2048


def _resources(main_content: str = "\\documentclass{article}") -> list[Resource]:
    return [
        Resource(path="main.tex", main=True, content=main_content),
        Resource(path="fig.png", file=base64.b64encode(b"PNGDATA").decode("ascii")),
    ]


def _response(body: bytes, content_type: str = "application/json", ok: bool = True) -> MagicMock:
    response = MagicMock()
    response.headers = {"Content-Type": content_type}
    response.content = body
    response.ok = ok
    return response


# ---------------------------------------------------------------------------
# Remote
# ---------------------------------------------------------------------------


class TestRemotePayload:
    def test_unsupported_compiler(self):
        with pytest.raises(ValueError, match="Unsupported compiler"):
            RemoteServiceBackend(compiler="context", session=MagicMock())

    def test_resources_serialized(self):
        payload = RemoteServiceBackend(compiler="xelatex", session=MagicMock()).build_payload(_resources())
        assert payload["compiler"] == "xelatex"
        assert payload["resources"][0] == {"path": "main.tex", "main": True, "content": "\\documentclass{article}"}
        assert "content" not in payload["resources"][1]
        assert "options" not in payload

    def test_biber_enabled_for_biblatex(self):
        backend = RemoteServiceBackend(session=MagicMock())
        payload = backend.build_payload(_resources("\\usepackage{biblatex}\n\\addbibresource{refs.bib}"))
        assert payload["options"] == {"bibliography": {"command": "biber"}}


class TestRemoteCompile:
    def test_returns_pdf_bytes(self):
        session = MagicMock()
        session.post.return_value = _response(FAKE_PDF, "application/pdf")
        backend = RemoteServiceBackend("https://example.test/builds", timeout=30, session=session)
        messages: list[str] = []

        assert backend.compile(_resources(), messages.append) == FAKE_PDF
        args, kwargs = session.post.call_args
        assert args[0] == "https://example.test/builds"
        assert kwargs["timeout"] == 30
        assert kwargs["json"]["compiler"] == "pdflatex"
        assert messages[0].startswith("Sending to compilation server")

    @pytest.mark.parametrize("exc", [requests.Timeout("slow"), requests.ConnectionError("refused")])
    def test_transport_failure_is_network_error(self, exc):
        session = MagicMock()
        session.post.side_effect = exc
        with pytest.raises(NetworkError):
            RemoteServiceBackend(session=session).compile(_resources())

    @pytest.mark.parametrize("exc", [
        requests.exceptions.ChunkedEncodingError("connection broken"),
        requests.exceptions.InvalidURL("bad url"),
    ])
    def test_other_request_failures_are_network_errors(self, exc):
        session = MagicMock()
        session.post.side_effect = exc
        with pytest.raises(NetworkError, match="Request to the compilation server failed"):
            RemoteServiceBackend(session=session).compile(_resources())

    def test_structured_error_extracts_fatal_line(self):
        body = json.dumps({
            "error": "COMPILATION_ERROR",
            "log_files": {"__main_document__.log": "! Undefined control sequence.\nl.12 \\foo"},
        }).encode()
        session = MagicMock()
        session.post.return_value = _response(body)

        with pytest.raises(RemoteCompileError) as info:
            RemoteServiceBackend(session=session).compile(_resources())
        assert "Undefined control sequence" in info.value.message
        assert info.value.message.endswith("(line 12)")
        assert info.value.source_line == 12
        assert info.value.source_file == "main.tex"
        assert "l.12" in info.value.raw_log

    def test_structured_error_without_fatal_line(self):
        body = json.dumps({"error": "Server overloaded", "log_files": {}}).encode()
        session = MagicMock()
        session.post.return_value = _response(body, ok=False)
        with pytest.raises(RemoteCompileError, match="Server overloaded"):
            RemoteServiceBackend(session=session).compile(_resources())

    def test_small_pdf_is_not_an_artifact(self):
        session = MagicMock()
        session.post.return_value = _response(b"%PDF-tiny", "application/pdf")
        with pytest.raises(RemoteCompileError, match="Invalid response"):
            RemoteServiceBackend(session=session).compile(_resources())

    def test_http_error_without_json(self):
        session = MagicMock()
        session.post.return_value = _response(b"<html>Bad gateway</html>", "text/html", ok=False)
        with pytest.raises(RemoteCompileError, match="Compilation failed: <html>Bad gateway"):
            RemoteServiceBackend(session=session).compile(_resources())


# ---------------------------------------------------------------------------
# Local engine
# ---------------------------------------------------------------------------


class FakeEngine:
    def __init__(self, result: EngineResult | None = None) -> None:
        self.files: dict[str, str | bytes] = {}
        self.main: str | None = None
        self.result = result or EngineResult(status=0, log="", pdf=b"%PDF-local")

    def write_file(self, path, data):
        self.files[path] = data

    def set_main_file(self, path):
        self.main = path

    def compile(self):
        return self.result


class FakeSource(EngineSource):
    def __init__(self, name: str, engine: FakeEngine | None = None) -> None:
        self.name = name
        self.engine = engine
        self.calls = 0
        self.timeouts: list[float] = []

    def load(self, timeout):
        self.calls += 1
        self.timeouts.append(timeout)
        if self.engine is None:
            raise TimeoutError(f"{self.name} timed out")
        return self.engine


class TestEngineLoader:
    def test_first_success_wins(self):
        engine = FakeEngine()
        failing, working, unused = FakeSource("cdn"), FakeSource("mirror", engine), FakeSource("spare", FakeEngine())
        loader = EngineLoader([failing, working, unused], timeout=7)

        assert loader.state == EngineState.UNINITIALIZED
        assert loader.ensure_ready() is engine
        assert loader.state == EngineState.READY
        assert unused.calls == 0
        assert failing.timeouts == [7]
        assert loader.failures == ["cdn: cdn timed out"]

    def test_ready_is_idempotent(self):
        source = FakeSource("only", FakeEngine())
        loader = EngineLoader([source])
        first = loader.ensure_ready()
        assert loader.ensure_ready() is first
        assert source.calls == 1

    def test_total_failure_is_terminal(self):
        a, b = FakeSource("a"), FakeSource("b")
        loader = EngineLoader([a, b])
        with pytest.raises(EngineUnavailable, match="switch to the remote backend"):
            loader.ensure_ready()
        assert loader.state == EngineState.FAILED

        with pytest.raises(EngineUnavailable):
            loader.ensure_ready()
        assert (a.calls, b.calls) == (1, 1)

    def test_no_sources(self):
        with pytest.raises(EngineUnavailable, match="no engine sources configured"):
            EngineLoader([]).ensure_ready()

    def test_progress_messages(self):
        messages: list[str] = []
        EngineLoader([FakeSource("x", FakeEngine())]).ensure_ready(messages.append)
        assert messages[0] == "Initializing local LaTeX engine..."
        assert messages[-1] == "Local LaTeX engine ready (x)"


class TestLocalEngineBackend:
    def _backend(self, engine: FakeEngine) -> LocalEngineBackend:
        return LocalEngineBackend(EngineLoader([FakeSource("fake", engine)]))

    def test_writes_resources_and_returns_pdf(self):
        engine = FakeEngine()
        assert self._backend(engine).compile(_resources()) == b"%PDF-local"
        assert engine.main == "main.tex"
        assert engine.files["main.tex"] == "\\documentclass{article}"
        assert engine.files["fig.png"] == b"PNGDATA"

    def test_nonzero_status_uses_first_fatal_line(self):
        engine = FakeEngine(EngineResult(status=1, log="! Missing $ inserted.\nl.3 x^2"))
        with pytest.raises(LocalCompileError) as info:
            self._backend(engine).compile(_resources())
        assert info.value.message == "Missing $ inserted."
        assert info.value.source_line == 3
        assert info.value.source_file == "main.tex"

    def test_nonzero_status_without_fatal_line(self):
        engine = FakeEngine(EngineResult(status=2, log="nothing useful"))
        with pytest.raises(LocalCompileError, match="Local compilation failed"):
            self._backend(engine).compile(_resources())

    def test_empty_output_is_an_error(self):
        engine = FakeEngine(EngineResult(status=0, log="", pdf=b""))
        with pytest.raises(EmptyArtifact):
            self._backend(engine).compile(_resources())

    def test_missing_main_resource(self):
        with pytest.raises(LocalCompileError, match="No main LaTeX file"):
            self._backend(FakeEngine()).compile([Resource(path="a.tex", content="x")])

    def test_unavailable_engine(self):
        backend = LocalEngineBackend(EngineLoader([FakeSource("down")]))
        with pytest.raises(EngineUnavailable):
            backend.compile(_resources())


class TestEngineSources:
    def test_parse_binary_and_import_specs(self):
        assert isinstance(parse_engine_source("latexmk"), TexBinarySource)
        assert isinstance(parse_engine_source("mypkg.engines:create"), ImportSource)

    def test_import_spec_requires_factory(self):
        with pytest.raises(ValueError):
            ImportSource("mypkg.engines")

    def test_import_source_calls_factory(self):
        engine = FakeEngine()
        module = SimpleNamespace(create=lambda: engine)
        with patch("latex_project_compiler.tools.backends.importlib.import_module", return_value=module) as imp:
            assert ImportSource("mypkg.engines:create").load(5) is engine
        imp.assert_called_once_with("mypkg.engines")

    def test_import_source_ignores_zero_timeout(self):
        engine = FakeEngine()
        factory = MagicMock(return_value=engine)
        module = SimpleNamespace(create=factory)
        with patch("latex_project_compiler.tools.backends.importlib.import_module", return_value=module):
            assert ImportSource("mypkg.engines:create").load(0) is engine
        factory.assert_called_once_with()

    @patch("latex_project_compiler.tools.backends.shutil.which", return_value=None)
    def test_binary_missing(self, _which):
        with pytest.raises(FileNotFoundError):
            TexBinarySource("pdflatex").load(5)

    @patch("latex_project_compiler.tools.backends.subprocess.run")
    @patch("latex_project_compiler.tools.backends.shutil.which", return_value="/usr/bin/latexmk")
    def test_binary_probed_with_timeout(self, _which, mock_run):
        engine = TexBinarySource("latexmk", compile_timeout=90).load(5)
        assert isinstance(engine, SubprocessTexEngine)
        assert engine.executable == "/usr/bin/latexmk"
        assert engine.timeout == 90
        args, kwargs = mock_run.call_args
        assert args[0] == ["/usr/bin/latexmk", "--version"]
        assert kwargs["timeout"] == 5
        assert kwargs["check"] is True


class TestSubprocessTexEngine:
    def test_latexmk_command(self):
        engine = SubprocessTexEngine("/usr/bin/latexmk")
        assert engine._command("main.tex") == ["/usr/bin/latexmk", "-pdf", "-interaction=nonstopmode", "main.tex"]
        assert "-outdir=src" in engine._command("src/main.tex")

    def test_engine_command(self):
        engine = SubprocessTexEngine("/usr/bin/pdflatex")
        assert engine._command("main.tex") == ["/usr/bin/pdflatex", "-interaction=nonstopmode", "main.tex"]
        assert "-output-directory=src" in engine._command("src/main.tex")

    def test_compile_materializes_files(self):
        engine = SubprocessTexEngine("/usr/bin/pdflatex", timeout=60)
        engine.write_file("main.tex", "\\documentclass{article}")
        engine.write_file("figs/a.png", b"PNG")
        engine.set_main_file("main.tex")
        seen: dict[str, object] = {}

        def fake_run(cmd, cwd, **kwargs):
            root = Path(cwd)
            seen["tex"] = (root / "main.tex").read_text(encoding="utf-8")
            seen["png"] = (root / "figs" / "a.png").read_bytes()
            seen["timeout"] = kwargs["timeout"]
            (root / "main.pdf").write_bytes(b"%PDF")
            (root / "main.log").write_text("Output written on main.pdf", encoding="utf-8")
            return subprocess.CompletedProcess(cmd, 0, "", "")

        with patch("latex_project_compiler.tools.backends.subprocess.run", side_effect=fake_run):
            result = engine.compile()

        assert result.status == 0
        assert result.pdf == b"%PDF"
        assert result.log == "Output written on main.pdf"
        assert seen == {"tex": "\\documentclass{article}", "png": b"PNG", "timeout": 60}

    def test_compile_timeout(self):
        engine = SubprocessTexEngine("/usr/bin/pdflatex", timeout=1)
        engine.write_file("main.tex", "x")
        engine.set_main_file("main.tex")
        with patch(
            "latex_project_compiler.tools.backends.subprocess.run",
            side_effect=subprocess.TimeoutExpired(cmd="pdflatex", timeout=1),
        ):
            result = engine.compile()
        assert result.status == 1
        assert result.log.startswith("! Compilation timed out")

    def test_path_escape_rejected(self):
        engine = SubprocessTexEngine("/usr/bin/pdflatex")
        engine.write_file("../evil.tex", "x")
        engine.set_main_file("../evil.tex")
        with pytest.raises(ValueError, match="escapes"):
            engine.compile()

    def test_requires_main_file(self):
        with pytest.raises(ValueError, match="No main file"):
            SubprocessTexEngine("/usr/bin/pdflatex").compile()


class TestCreateBackend:
    def test_remote_from_config(self):
        config = ProjectConfig(remote_url="https://example.test/sync", compiler="lualatex", remote_timeout=45)
        backend = create_backend(BackendKind.REMOTE, config)
        assert isinstance(backend, RemoteServiceBackend)
        assert (backend.url, backend.compiler, backend.timeout) == ("https://example.test/sync", "lualatex", 45)

    def test_local_from_config(self):
        config = ProjectConfig(engine_sources=["tectonic", "mypkg.wasm:engine"], engine_timeout=9)
        backend = create_backend(BackendKind.LOCAL, config)
        assert isinstance(backend, LocalEngineBackend)
        assert backend.loader.timeout == 9
        assert [type(s) for s in backend.loader.sources] == [TexBinarySource, ImportSource]
        assert backend.loader.state == EngineState.UNINITIALIZED
