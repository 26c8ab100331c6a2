"""Shared test fixtures."""

from __future__ import annotations

import base64
from pathlib import Path

import pytest

from latex_project_compiler.models import FileTree, NodeKind, TreeNode

# Large enough to pass the remote backend's artifact size check.
FAKE_PDF = b"%PDF-1.5\n" + b"0" * 2048 + b"\n%%EOF"

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG_BYTES).decode("ascii")


def build_tree(files: dict[str, str], root_id: str = "root") -> FileTree:
    """Build a tree whose node ids are the given paths; folders are implied."""
    tree = FileTree(root_id=root_id)
    for path, content in files.items():
        parts = path.split("/")
        parent = root_id
        for depth in range(1, len(parts)):
            folder_id = "/".join(parts[:depth])
            if folder_id not in tree.nodes:
                tree.nodes[folder_id] = TreeNode(
                    id=folder_id, name=parts[depth - 1], kind=NodeKind.FOLDER, parent_id=parent,
                )
            parent = folder_id
        tree.nodes[path] = TreeNode(id=path, name=parts[-1], parent_id=parent, content=content)
    return tree


@pytest.fixture
def make_tree():
    return build_tree


@pytest.fixture
def png_data_url() -> str:
    return PNG_DATA_URL


@pytest.fixture
def fake_pdf() -> bytes:
    return FAKE_PDF


@pytest.fixture
def sample_main() -> str:
    """A minimal entry document pulling in one chapter and one image."""
    return r"""\documentclass{report}
\usepackage{graphicx}
\begin{document}
\tableofcontents
\input{chapter1}
\includegraphics[width=0.5\textwidth]{fig.png}
\end{document}
"""


@pytest.fixture
def sample_chapter() -> str:
    return r"""\chapter{Experiments}
\section{Apparatus}
\begin{figure}[htbp]
\centering
\includegraphics{fig.png}
\caption{Setup}
\end{figure}
"""


@pytest.fixture
def sample_tree(sample_main, sample_chapter) -> FileTree:
    return build_tree({
        "main.tex": sample_main,
        "chapter1.tex": sample_chapter,
        "fig.png": PNG_DATA_URL,
    })


@pytest.fixture
def project_dir(tmp_path: Path, sample_main, sample_chapter) -> Path:
    """The sample project written to disk."""
    root = tmp_path / "paper"
    root.mkdir()
    (root / "main.tex").write_text(sample_main, encoding="utf-8")
    (root / "chapter1.tex").write_text(sample_chapter, encoding="utf-8")
    (root / "fig.png").write_bytes(PNG_BYTES)
    return root
