"""Tests for :mod:`siteembed.core.logging`."""

from __future__ import annotations

import gzip
import io
import json
import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

import pytest
from rich.console import Console
from rich.logging import RichHandler

from siteembed.core.logging import configure_logging, get_logger, redact


def _clear_root_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Ensure each test runs with a clean logging configuration."""

    _clear_root_handlers()
    yield
    _clear_root_handlers()


def _build_console() -> Console:
    return Console(file=io.StringIO(), width=120, record=True)


def _flush_all() -> None:
    for handler in logging.getLogger().handlers:
        handler.flush()


def _file_handler() -> TimedRotatingFileHandler:
    return next(
        h
        for h in logging.getLogger().handlers
        if isinstance(h, TimedRotatingFileHandler)
    )


def test_configure_logging_installs_console_and_file_handlers(
    tmp_path: Path,
) -> None:
    workspace = tmp_path / "workspace"

    configure_logging(
        level="debug",
        workspace_path=workspace,
        console=_build_console(),
    )

    root = logging.getLogger()
    assert len([h for h in root.handlers if isinstance(h, RichHandler)]) == 1

    log_file = Path(_file_handler().baseFilename)
    assert log_file == workspace / "logs" / "siteembed.log"

    get_logger(__name__, component="worker").info(
        "embedding-item-processed",
        embedded=2,
    )
    _flush_all()

    payload = json.loads(log_file.read_text(encoding="utf-8").strip())
    assert payload["event"] == "embedding-item-processed"
    assert payload["component"] == "worker"
    assert payload["embedded"] == 2


def test_configure_logging_without_workspace_omits_file_handler() -> None:
    configure_logging(level="info", console=_build_console())

    root = logging.getLogger()
    assert any(isinstance(h, RichHandler) for h in root.handlers)
    assert not any(
        isinstance(h, TimedRotatingFileHandler) for h in root.handlers
    )


def test_configure_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        configure_logging(level="loud", console=_build_console())


def test_secrets_are_masked_in_file_output(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"
    configure_logging(
        level="info",
        workspace_path=workspace,
        console=_build_console(),
    )

    get_logger("secrets").info(
        "vector-store-configured",
        api_key="pk-live-123",
        params={"hostname": "https://idx", "token": "tok-secret-9"},
    )
    _flush_all()

    contents = (workspace / "logs" / "siteembed.log").read_text("utf-8")
    assert "pk-live-123" not in contents
    assert "tok-secret-9" not in contents
    payload = json.loads(contents.strip())
    assert payload["api_key"] == "***"
    assert payload["params"] == {"hostname": "https://idx", "token": "***"}


def test_redact_masks_nested_secret_keys() -> None:
    value = {
        "Authorization": "Bearer x",
        "items": [{"Api-Key": "k", "name": "n"}],
    }

    assert redact(value) == {
        "Authorization": "***",
        "items": [{"Api-Key": "***", "name": "n"}],
    }


def test_configure_logging_rotates_with_compression(tmp_path: Path) -> None:
    workspace = tmp_path / "workspace"
    configure_logging(
        level="warning",
        workspace_path=workspace,
        console=_build_console(),
    )

    get_logger("rotate", task="rotation").warning("pre-rotation")
    _flush_all()
    _file_handler().doRollover()

    archives = sorted((workspace / "logs").glob("siteembed.log.*.gz"))
    assert archives

    with gzip.open(archives[-1], "rt", encoding="utf-8") as handle:
        archived = handle.read()
    assert "pre-rotation" in archived
