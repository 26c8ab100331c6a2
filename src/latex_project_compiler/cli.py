"""CLI entry point using Hydra.

Usage examples:
  lpc project_dir=paper
  lpc project_dir=paper draft=true output=paper-draft.pdf
  lpc project_dir=paper backend=local compiler=xelatex
  lpc project_dir=paper mode=deps
  lpc project_dir=paper mode=resources draft=true
  lpc project_dir=paper mode=outline
"""

from __future__ import annotations

import shutil
import sys
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_env_fallbacks
from .errors import CompilationError
from .logging_config import RichProgressReporter, console, setup_logging
from .models import CompileOptions, FileTree, ProjectConfig

register_configs()

# ---------------------------------------------------------------------------
# Hydra DictConfig → Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra *DictConfig* to a Pydantic ``ProjectConfig``.

    CLI-only keys (``mode``, ``draft``, etc.) are stripped before validation.
    ``LPC_*`` env-var fallbacks are applied afterwards.
    """
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = ProjectConfig.model_validate(container)
    return apply_env_fallbacks(config)


def _load_project(cfg: DictConfig) -> FileTree:
    from .tools.project_loader import load_tree

    try:
        return load_tree(cfg.get("project_dir", "."))
    except FileNotFoundError as exc:
        console.print(f"[red]{exc}[/]")
        sys.exit(1)


def _options(cfg: DictConfig, config: ProjectConfig, **kwargs: Any) -> CompileOptions:
    return CompileOptions(
        draft_mode=bool(cfg.get("draft", False)),
        skip_cache=bool(cfg.get("skip_cache", False)),
        backend=config.backend,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _compile_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    tree = _load_project(cfg)

    from .pipeline import CompilationOrchestrator

    reporter = RichProgressReporter(show=not cfg.get("quiet", False))
    orchestrator = CompilationOrchestrator(config)

    mode = "draft" if cfg.get("draft", False) else "full"
    console.print(f"[bold]Compiling {cfg.get('project_dir', '.')} ({mode}, {config.backend.value})...[/]")
    try:
        artifact = orchestrator.compile(tree, _options(cfg, config, on_progress=reporter))
    except CompilationError as exc:
        console.print("\n[bold red]Compilation failed.[/]")
        console.print(f"  [red]{exc.message}[/]")
        if exc.hint:
            console.print(f"  [yellow]{exc.hint}[/]")
        if exc.context:
            console.print(exc.context, markup=False, highlight=False)
        sys.exit(1)

    output = cfg.get("output")
    if output:
        shutil.copyfile(artifact, output)
        artifact_shown = output
    else:
        artifact_shown = str(artifact)
    console.print(f"\n[bold green]Compilation successful: {artifact_shown}[/]")


def _deps_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    tree = _load_project(cfg)

    from .pipeline import CompilationOrchestrator

    orchestrator = CompilationOrchestrator(config)
    try:
        deps = orchestrator.dependencies(tree)
    except CompilationError as exc:
        console.print(f"[red]{exc.message}[/]")
        sys.exit(1)

    console.print(f"[bold]Dependencies ({len(deps)}):[/]")
    for ref in sorted(deps):
        console.print(f"  {ref}", markup=False)


def _resources_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    tree = _load_project(cfg)

    from .pipeline import CompilationOrchestrator

    orchestrator = CompilationOrchestrator(config)
    try:
        main, resources = orchestrator.prepare(tree, _options(cfg, config))
    except CompilationError as exc:
        console.print(f"[red]{exc.message}[/]")
        sys.exit(1)

    console.print(f"[bold]Entry document:[/] {main.path}")
    console.print(f"[bold]Resources ({len(resources)}):[/]")
    for res in resources:
        kind = "binary" if res.is_binary else "text"
        marker = " (main)" if res.main else ""
        console.print(f"  {res.path} [{kind}]{marker}", markup=False)


def _outline_mode(cfg: DictConfig) -> None:
    config = _to_project_config(cfg)
    tree = _load_project(cfg)

    from .pipeline import CompilationOrchestrator

    outline = CompilationOrchestrator(config).outline(tree)

    console.print("[bold]Contents:[/]")
    for item in outline.toc:
        indent = {"chapter": "  ", "section": "    "}.get(item.kind.value, "      ")
        console.print(f"{indent}{item.title}  ({item.node_id}:{item.line})", markup=False)
    console.print(f"[bold]Figures ({len(outline.figures)}):[/]")
    for item in outline.figures:
        console.print(f"  {item.title}  ({item.node_id}:{item.line})", markup=False)
    console.print(f"[bold]Tables ({len(outline.tables)}):[/]")
    for item in outline.tables:
        console.print(f"  {item.title}  ({item.node_id}:{item.line})", markup=False)


_MODE_DISPATCH: dict[str, Any] = {
    "compile": _compile_mode,
    "deps": _deps_mode,
    "resources": _resources_mode,
    "outline": _outline_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path="conf", config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "compile")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    handler(cfg)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
