"""Tests for loading a project directory and storing artifacts."""

from __future__ import annotations

import base64

import pytest

from latex_project_compiler.models import BINARY_PLACEHOLDER, NodeKind
from latex_project_compiler.tools.artifacts import ArtifactStore
from latex_project_compiler.tools.paths import PathResolver
from latex_project_compiler.tools.project_loader import load_tree


class TestLoadTree:
    def test_files_and_folders(self, project_dir):
        (project_dir / "chapters").mkdir()
        (project_dir / "chapters" / "intro.tex").write_text("hello", encoding="utf-8")

        tree = load_tree(project_dir)
        assert tree.nodes["chapters"].kind == NodeKind.FOLDER
        assert tree.nodes["chapters/intro.tex"].parent_id == "chapters"
        assert tree.nodes["main.tex"].parent_id == tree.root_id
        assert PathResolver().resolve("chapters/intro.tex", tree) == "chapters/intro.tex"

    def test_images_become_data_urls(self, project_dir):
        content = load_tree(project_dir).nodes["fig.png"].content
        prefix, payload = content.split(",", 1)
        assert prefix == "data:image/png;base64"
        assert base64.b64decode(payload) == (project_dir / "fig.png").read_bytes()

    def test_undecodable_file_gets_placeholder(self, project_dir):
        (project_dir / "blob.dat").write_bytes(b"\xff\xfe\x00\x81")
        assert load_tree(project_dir).nodes["blob.dat"].content == BINARY_PLACEHOLDER

    def test_hidden_entries_skipped(self, project_dir):
        (project_dir / ".git").mkdir()
        (project_dir / ".git" / "HEAD").write_text("ref", encoding="utf-8")
        (project_dir / ".latexmkrc").write_text("x", encoding="utf-8")
        tree = load_tree(project_dir)
        assert not any(node_id.startswith(".") for node_id in tree.nodes)

    def test_missing_directory(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_tree(tmp_path / "nope")


class TestArtifactStore:
    def test_save_writes_unique_files(self, tmp_path):
        store = ArtifactStore(tmp_path / "out")
        first = store.save(b"%PDF-1", "paper/main")
        second = store.save(b"%PDF-2", "paper/main")
        assert first != second
        assert first.parent == tmp_path / "out"
        assert first.name.startswith("main-") and first.suffix == ".pdf"
        assert first.read_bytes() == b"%PDF-1"

    def test_temp_directory_by_default(self):
        store = ArtifactStore()
        assert store.directory.is_dir()
        assert store.directory.name.startswith("lpc-artifacts-")
