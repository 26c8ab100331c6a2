"""Tests for reference extraction and dependency resolution."""

from __future__ import annotations

from latex_project_compiler.tools.paths import PathResolver
from latex_project_compiler.tools.references import (
    blank_comments,
    build_dependency_set,
    document_ref,
    extract_references,
)


class TestBlankComments:
    def test_preserves_offsets(self):
        text = "a\n% \\input{x}\nb % trailing\nc"
        blanked = blank_comments(text)
        assert len(blanked) == len(text)
        assert blanked.split("\n")[1].strip() == ""
        assert blanked.split("\n")[2].rstrip() == "b"
        assert blanked.index("c") == text.index("c")

    def test_escaped_percent_kept(self):
        assert blank_comments("50\\% done") == "50\\% done"

    def test_comment_after_line_break(self):
        text = "a\\\\% hidden \\input{x}\nb"
        blanked = blank_comments(text)
        assert len(blanked) == len(text)
        assert blanked.split("\n")[0] == "a\\\\" + " " * len("% hidden \\input{x}")
        assert extract_references(text) == set()

    def test_odd_backslash_run_is_escape(self):
        assert blank_comments("x\\\\\\% kept") == "x\\\\\\% kept"


class TestDocumentRef:
    def test_appends_extension(self):
        assert document_ref("chapters/intro") == "chapters/intro.tex"

    def test_keeps_extension(self):
        assert document_ref("intro.tex") == "intro.tex"

    def test_relative_to_referencing_directory(self):
        assert document_ref("sec1", "chapters/intro.tex") == "chapters/sec1.tex"
        assert document_ref("../appendix", "chapters/intro.tex") == "appendix.tex"


class TestExtractReferences:
    def test_input_and_include(self):
        refs = extract_references("\\input{intro}\n\\include{chapters/results}")
        assert refs == {"intro.tex", "chapters/results.tex"}

    def test_graphics_with_extension(self):
        assert extract_references("\\includegraphics[width=3cm]{figs/a.png}") == {"figs/a.png"}

    def test_graphics_without_extension_guesses(self):
        refs = extract_references("\\includegraphics{plot}")
        assert refs == {"plot.png", "plot.jpg", "plot.pdf"}

    def test_bibliography_list(self):
        refs = extract_references("\\bibliography{refs, more.bib}")
        assert refs == {"refs.bib", "more.bib"}

    def test_addbibresource(self):
        assert extract_references("\\addbibresource{library.bib}") == {"library.bib"}

    def test_commented_references_ignored(self):
        text = "% \\input{hidden}\n  % \\includegraphics{x.png}\n\\input{shown} % \\input{also_hidden}"
        assert extract_references(text) == {"shown.tex"}


class TestBuildDependencySet:
    def test_nested_include_gets_extension_and_transitive_refs(self, make_tree):
        tree = make_tree({
            "main.tex": "\\documentclass{book}\n\\input{chapters/intro}",
            "chapters/intro.tex": "\\input{details}\n\\includegraphics{plot.png}",
            "chapters/details.tex": "\\bibliography{refs}",
        })
        index = PathResolver().index(tree)
        deps = build_dependency_set(tree.nodes["main.tex"].content, index)
        assert "chapters/intro.tex" in deps
        assert "chapters/details.tex" in deps
        assert "plot.png" in deps
        assert "refs.bib" in deps

    def test_circular_includes_terminate(self, make_tree):
        tree = make_tree({
            "main.tex": "\\input{a}",
            "a.tex": "\\input{b}",
            "b.tex": "\\input{a}",
        })
        index = PathResolver().index(tree)
        deps = build_dependency_set(tree.nodes["main.tex"].content, index)
        assert deps == {"a.tex", "b.tex"}

    def test_missing_include_is_kept_but_not_expanded(self, make_tree):
        tree = make_tree({"main.tex": "\\input{ghost}"})
        deps = build_dependency_set("\\input{ghost}", PathResolver().index(tree))
        assert deps == {"ghost.tex"}

    def test_images_are_leaves(self, make_tree):
        tree = make_tree({"fig.png": "\\input{never}"})
        deps = build_dependency_set("\\includegraphics{fig.png}", PathResolver().index(tree))
        assert deps == {"fig.png"}
