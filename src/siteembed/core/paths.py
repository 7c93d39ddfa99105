"""Workspace path helpers for :mod:`siteembed`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

__all__ = [
    "CONFIG_FILENAME",
    "DATABASE_FILENAME",
    "WorkspacePaths",
    "resolve_workspace",
]

CONFIG_FILENAME = "siteembed.toml"
DATABASE_FILENAME = "siteembed.sqlite3"


@dataclass(frozen=True, slots=True)
class WorkspacePaths:
    """Resolved locations for a workspace instance.

    Example:
        >>> from pathlib import Path
        >>> paths = WorkspacePaths(
        ...     workspace=Path("/tmp/siteembed"),
        ...     config_file=Path("/tmp/siteembed/siteembed.toml"),
        ...     logs_dir=Path("/tmp/siteembed/logs"),
        ...     database_path=Path("/tmp/siteembed/siteembed.sqlite3"),
        ... )
        >>> paths.logs_dir.name
        'logs'
    """

    workspace: Path
    config_file: Path
    logs_dir: Path
    database_path: Path

    def iter_all(self) -> Iterable[Path]:
        """Yield every path managed within the workspace."""

        yield from (
            self.workspace,
            self.config_file,
            self.logs_dir,
            self.database_path,
        )

    def ensure_directories(self) -> None:
        """Create the workspace and log directories when missing."""

        self.workspace.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


def resolve_workspace(
    *,
    workspace_override: Path | None = None,
    env_override: Path | None = None,
) -> WorkspacePaths:
    """Resolve canonical workspace locations.

    Args:
        workspace_override: Optional override provided by CLI flags.
        env_override: Optional override from ``SITEEMBED_WORKSPACE``.

    Returns:
        Resolved workspace paths after precedence rules are applied.

    Raises:
        ValueError: If the resolved workspace points to a regular file.
    """

    base = workspace_override or env_override or Path.home() / ".siteembed"
    raw = Path(base).expanduser()
    if raw.is_absolute():
        workspace = raw.resolve(strict=False)
    else:
        workspace = (Path.cwd() / raw).resolve(strict=False)

    if workspace.exists() and workspace.is_file():
        raise ValueError(f"Workspace file path not allowed: {workspace}")

    return WorkspacePaths(
        workspace=workspace,
        config_file=workspace / CONFIG_FILENAME,
        logs_dir=workspace / "logs",
        database_path=workspace / DATABASE_FILENAME,
    )
