"""Helpers for the ``siteembed init`` command."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from siteembed.core.config import (
    AppConfig,
    env_overrides,
    load_config,
    load_packaged_defaults,
    read_user_config,
    render_user_config,
)
from siteembed.core.paths import WorkspacePaths, resolve_workspace
from siteembed.modules.embeddings.database import ensure_schema

__all__ = ["InitResult", "init_workspace", "load_workspace_config"]


@dataclass(frozen=True, slots=True)
class InitResult:
    """Outcome of bootstrapping a workspace."""

    paths: WorkspacePaths
    config: AppConfig
    config_written: bool


def load_workspace_config(
    paths: WorkspacePaths,
    *,
    environ: Mapping[str, str] | None = None,
    cli_overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Merge defaults, ``siteembed.toml``, env vars and CLI flags."""

    return load_config(
        defaults=load_packaged_defaults(),
        user_config=read_user_config(paths.config_file),
        env_config=env_overrides(environ),
        cli_overrides=cli_overrides,
    )


def init_workspace(
    *,
    workspace: Path | None = None,
    env_workspace: Path | None = None,
    log_level: str | None = None,
    vector_client: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> InitResult:
    """Bootstrap the workspace directory, config file and database.

    An existing ``siteembed.toml`` is never overwritten.

    Example:
        >>> from pathlib import Path
        >>> result = init_workspace(workspace=Path("/tmp/siteembed-example"))
        >>> result.paths.config_file.name
        'siteembed.toml'
    """

    paths = resolve_workspace(
        workspace_override=workspace,
        env_override=env_workspace,
    )
    paths.ensure_directories()

    cli_overrides: dict[str, object] = {}
    if log_level:
        cli_overrides["log_level"] = log_level
    if vector_client:
        cli_overrides["embeddings"] = {"vector_client_plugin": vector_client}

    config = load_workspace_config(
        paths,
        environ=environ,
        cli_overrides=cli_overrides,
    )

    written = False
    if not paths.config_file.exists():
        paths.config_file.write_text(
            render_user_config(config),
            encoding="utf-8",
        )
        written = True

    ensure_schema(paths.database_path)
    return InitResult(paths=paths, config=config, config_written=written)
