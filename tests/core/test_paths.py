"""Tests for :mod:`siteembed.core.paths`."""

from __future__ import annotations

from pathlib import Path

import pytest

from siteembed.core.paths import WorkspacePaths, resolve_workspace


def test_resolve_workspace_defaults_to_home_dot_siteembed(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> None:
    monkeypatch.setenv("HOME", tmp_path.as_posix())
    monkeypatch.setenv("USERPROFILE", tmp_path.as_posix())

    paths = resolve_workspace()

    expected = (tmp_path / ".siteembed").resolve(strict=False)
    assert paths.workspace == expected
    assert paths.config_file == expected / "siteembed.toml"
    assert paths.logs_dir == expected / "logs"
    assert paths.database_path == expected / "siteembed.sqlite3"


def test_resolve_workspace_prefers_cli_override(tmp_path: Path) -> None:
    paths = resolve_workspace(
        workspace_override=tmp_path / "from-cli",
        env_override=tmp_path / "from-env",
    )

    assert paths.workspace == (tmp_path / "from-cli").resolve(strict=False)


def test_resolve_workspace_uses_env_override_when_cli_missing(
    tmp_path: Path,
) -> None:
    paths = resolve_workspace(env_override=tmp_path / "from-env")

    assert paths.workspace == (tmp_path / "from-env").resolve(strict=False)


def test_resolve_workspace_supports_relative_paths(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.chdir(tmp_path)

    paths = resolve_workspace(workspace_override=Path("workspaces/rel"))

    assert paths.workspace == (tmp_path / "workspaces/rel").resolve(strict=False)


def test_resolve_workspace_rejects_file_path(tmp_path: Path) -> None:
    file_path = tmp_path / "workspace-as-file"
    file_path.write_text("not a directory")

    with pytest.raises(ValueError):
        resolve_workspace(workspace_override=file_path)


def test_workspace_paths_iter_all_and_ensure_directories(
    tmp_path: Path,
) -> None:
    paths = resolve_workspace(workspace_override=tmp_path / "ws")

    names = {path.name for path in paths.iter_all()}
    assert names == {"ws", "siteembed.toml", "logs", "siteembed.sqlite3"}

    paths.ensure_directories()
    assert paths.workspace.is_dir()
    assert paths.logs_dir.is_dir()
    assert not paths.config_file.exists()
    assert isinstance(paths, WorkspacePaths)
