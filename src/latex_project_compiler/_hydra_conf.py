"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class LpcConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "compile"
    project_dir: str = "."
    output: str | None = None
    draft: bool = False
    skip_cache: bool = False
    verbose: bool = False
    quiet: bool = False

    # --- ProjectConfig fields (1:1 mapping) ---
    backend: str = "remote"
    compiler: str = "pdflatex"

    remote_url: str = "${oc.env:LPC_REMOTE_URL,''}"
    remote_timeout: int = 120

    engine_sources: list[str] = field(default_factory=lambda: ["latexmk", "pdflatex"])
    engine_timeout: int = 15
    engine_compile_timeout: int = 120

    cache_ttl_seconds: float = 300.0
    artifact_dir: str | None = None


# Keys present in LpcConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "project_dir", "output", "draft", "skip_cache", "verbose", "quiet",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="lpc_schema", node=LpcConf)
