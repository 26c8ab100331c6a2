"""Resource assembly: tree snapshot -> ordered list of backend resources.

Only files the entry document needs are sent, plus style, class and
bibliography files which are referenced implicitly.  Draft mode also sends
unreferenced text files but never images, and comments out every
``\\includegraphics`` so the engine never asks for them.
"""

from __future__ import annotations

import logging
import re

from ..models import BINARY_PLACEHOLDER, AuxIndex, FileTree, MainDocument, Resource
from .paths import PathResolver
from .references import INCLUDEGRAPHICS_RE, is_image

logger = logging.getLogger(__name__)

# Always sent: implicitly referenced by \documentclass, \usepackage, \bibliographystyle.
ALWAYS_INCLUDED_EXTENSIONS = (".cls", ".sty", ".bst", ".bib")

_DATA_URL_RE = re.compile(r"^data:(?:image|application)/[^;,]*(?:;[^,]*)?,")

SKIPPED_IMAGE_COMMENT = "% [image skipped]"


def strip_images(content: str) -> str:
    """Replace every ``\\includegraphics`` with a comment.

    When other text follows on the same line a newline is inserted after the
    comment so that text is kept.
    """
    def _replace(m: re.Match) -> str:
        line_end = content.find("\n", m.end())
        rest = content[m.end():] if line_end == -1 else content[m.end():line_end]
        return SKIPPED_IMAGE_COMMENT + ("\n" if rest.strip() else "")

    return INCLUDEGRAPHICS_RE.sub(_replace, content)


def _data_url_payload(content: str) -> str | None:
    m = _DATA_URL_RE.match(content)
    if not m:
        return None
    payload = content[m.end():]
    return payload or None


def assemble_resources(
    tree: FileTree,
    main: MainDocument,
    dependencies: set[str],
    resolver: PathResolver,
    *,
    draft_mode: bool = False,
) -> list[Resource]:
    """Build the resource list for one compilation.

    The main document comes first and is the only resource with ``main=True``.
    Paths are unique.
    """
    main_content = strip_images(main.content) if draft_mode else main.content
    resources = [Resource(path=main.path, main=True, content=main_content)]
    seen = {main.path}

    images = 0
    skipped = 0

    for node in tree.files():
        if node.id == main.id:
            continue
        path = resolver.resolve(node.id, tree)
        if not path or path in seen:
            continue

        content = node.content or ""
        referenced = (
            path in dependencies
            or node.name in dependencies
            or node.name.lower().endswith(ALWAYS_INCLUDED_EXTENSIONS)
        )
        if not referenced and not draft_mode:
            skipped += 1
            continue

        if is_image(node.name):
            if draft_mode:
                skipped += 1
                continue
            if content == BINARY_PLACEHOLDER:
                logger.warning("Skipping %s: binary content was never encoded", path)
                skipped += 1
                continue
            payload = _data_url_payload(content)
            if payload is None:
                logger.warning("Skipping %s: content is not a base64 data URL", path)
                skipped += 1
                continue
            resources.append(Resource(path=path, file=payload))
            seen.add(path)
            images += 1
            continue

        if draft_mode and node.name.lower().endswith(".tex"):
            content = strip_images(content)
        resources.append(Resource(path=path, content=content))
        seen.add(path)

    logger.info(
        "Prepared %d resources (%d images, %d files skipped)",
        len(resources), images, skipped,
    )
    return resources


def aux_resources(main: MainDocument, aux_index: AuxIndex) -> list[Resource]:
    """The three auxiliary index files, named after the main document."""
    base = main.basename
    return [
        Resource(path=f"{base}.toc", content=aux_index.render_toc()),
        Resource(path=f"{base}.lof", content=aux_index.render_lof()),
        Resource(path=f"{base}.lot", content=aux_index.render_lot()),
    ]


def append_aux_resources(
    resources: list[Resource],
    main: MainDocument,
    aux_index: AuxIndex,
) -> list[Resource]:
    """Append the synthesized index files last, replacing stale copies."""
    generated = aux_resources(main, aux_index)
    generated_paths = {r.path for r in generated}
    kept = [r for r in resources if r.main or r.path not in generated_paths]
    return kept + generated
