"""Tests for the Typer application in :mod:`siteembed.cli`."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import httpx
import pytest
import typer
from rich.console import Console
from typer.testing import CliRunner

from siteembed.cli import create_app, parse_filters
from siteembed.core import logging as core_logging
from siteembed.modules.embeddings.database import connect

PINECONE_HOST = "https://index-abc.svc.pinecone.io"


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch: pytest.MonkeyPatch):
    """Route console logs away from the CLI output stream."""

    def configure(*, level: str, workspace_path: Path | None = None, console=None):
        core_logging.configure_logging(
            level=level,
            workspace_path=workspace_path,
            console=Console(file=io.StringIO()),
        )

    monkeypatch.setattr("siteembed.cli.configure_logging", configure)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def environ(tmp_path: Path) -> dict[str, str]:
    return {
        "SITEEMBED_WORKSPACE": str(tmp_path / "workspace"),
        "OPENAI_API_KEY": "sk-test",
        "PINECONE_API_KEY": "pk-live-123",
    }


@pytest.fixture
def workspace(environ: dict[str, str]) -> Path:
    path = Path(environ["SITEEMBED_WORKSPACE"])
    path.mkdir(parents=True)
    (path / "siteembed.toml").write_text(
        "[embeddings]\n"
        'vector_client_plugin = "pinecone"\n'
        'content_types = ["article"]\n'
        "\n[pinecone]\n"
        f'hostname = "{PINECONE_HOST}"\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture
def content_export(tmp_path: Path) -> Path:
    path = tmp_path / "content.json"
    path.write_text(
        json.dumps(
            {
                "entities": [
                    {
                        "entity_type": "node",
                        "entity_id": 42,
                        "bundle": "article",
                        "fields": [
                            {
                                "name": "body",
                                "type": "text_long",
                                "values": ["<p>First</p>", "<p>Second</p>"],
                            }
                        ],
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    return path


class PineconeFake:
    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = responses or {}
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json=self.responses.get(request.url.path, {}))

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _app(environ, fake: PineconeFake | None = None, openai=None) -> typer.Typer:
    return create_app(
        environ=environ,
        transport=fake.transport if fake is not None else None,
        openai_client=openai,
    )


def test_init_command_bootstraps_workspace(runner, environ, tmp_path) -> None:
    result = runner.invoke(
        _app(environ), ["init", "--vector-client", "milvus"]
    )

    assert result.exit_code == 0, result.output
    assert "Workspace initialized" in result.output
    assert "vector client: milvus" in result.output
    assert (tmp_path / "workspace" / "siteembed.toml").exists()

    again = runner.invoke(_app(environ), ["init"])
    assert "existing siteembed.toml left untouched" in again.output


def test_commands_require_initialized_workspace(runner, environ) -> None:
    result = runner.invoke(_app(environ), ["enqueue", "node", "1", "article"])

    assert result.exit_code == 1
    assert "siteembed init" in result.output


def test_enqueue_then_process_embeds_and_mirrors(
    runner, environ, workspace, content_export, fake_openai
) -> None:
    enqueued = runner.invoke(_app(environ), ["enqueue", "node", "42", "article"])
    assert enqueued.exit_code == 0, enqueued.output
    assert "Queued node 42 (article) as #1" in enqueued.output

    fake = PineconeFake()
    openai = fake_openai([0.1, 0.2], [0.3, 0.4])
    result = runner.invoke(
        _app(environ, fake, openai),
        ["process", "--content", str(content_export), "--json"],
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["completed"] == 1
    assert payload["embedded"] == 2
    assert payload["items"][0]["status"] == "processed"

    assert [request.url.path for request in fake.requests] == [
        "/vectors/upsert",
        "/vectors/upsert",
    ]
    assert [text for _, text in openai.embeddings.calls] == ["First", "Second"]
    with connect(workspace / "siteembed.sqlite3") as connection:
        total = connection.execute(
            "SELECT COUNT(*) FROM embedding_records"
        ).fetchone()[0]
    assert total == 2


def test_process_reports_missing_content_export(
    runner, environ, workspace, tmp_path
) -> None:
    result = runner.invoke(
        _app(environ, PineconeFake()),
        ["process", "--content", str(tmp_path / "absent.json")],
    )

    assert result.exit_code == 1
    assert "Processing failed" in result.output


def test_search_outputs_json_matches(
    runner, environ, workspace, fake_openai
) -> None:
    fake = PineconeFake(
        {
            "/query": {
                "matches": [
                    {
                        "id": "entity:42:node:article:body:0",
                        "score": 0.91,
                        "metadata": {"bundle": "article"},
                    }
                ]
            }
        }
    )
    result = runner.invoke(
        _app(environ, fake, fake_openai([0.5, 0.5])),
        ["search", "pasta recipes", "--filter", "bundle=article", "--json"],
    )

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == [
        {
            "id": "entity:42:node:article:body:0",
            "score": 0.91,
            "metadata": {"bundle": "article"},
        }
    ]
    body = json.loads(fake.requests[0].content)
    assert body["filter"] == {"bundle": {"$eq": "article"}}
    assert body["namespace"] == "node"


def test_search_without_matches(runner, environ, workspace, fake_openai) -> None:
    result = runner.invoke(
        _app(environ, PineconeFake({"/query": {"matches": []}}), fake_openai([1.0])),
        ["search", "nothing here"],
    )

    assert result.exit_code == 0, result.output
    assert "No matches found." in result.output


def test_search_reports_malformed_backend_response(
    runner, environ, workspace, fake_openai
) -> None:
    fake = PineconeFake({"/query": {"matches": [{"score": 0.5}]}})

    result = runner.invoke(
        _app(environ, fake, fake_openai([1.0])), ["search", "pasta"]
    )

    assert result.exit_code == 1
    assert "Search failed" in result.output
    assert "malformed" in result.output


def test_stats_reports_backend_mirror_and_queue(
    runner, environ, workspace
) -> None:
    runner.invoke(_app(environ), ["enqueue", "node", "7", "article"])
    fake = PineconeFake(
        {
            "/describe_index_stats": {
                "dimension": 1536,
                "namespaces": {"node": {"vectorCount": 5}},
            }
        }
    )

    result = runner.invoke(_app(environ, fake), ["stats", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {
        "backend": "pinecone",
        "partitions": [
            {"partition_name": "node", "record_count": 5, "dimension": 1536}
        ],
        "local_records": 0,
        "queue": {"pending": 1},
    }


def test_purge_by_filter(runner, environ, workspace) -> None:
    fake = PineconeFake()

    result = runner.invoke(
        _app(environ, fake),
        ["purge", "-t", "node", "--filter", "entity_id=42"],
    )

    assert result.exit_code == 0, result.output
    assert "Purged node" in result.output
    assert json.loads(fake.requests[0].content) == {
        "namespace": "node",
        "filter": {"entity_id": {"$eq": 42}},
    }


def test_purge_all_is_refused_without_namespaces(
    runner, environ, workspace
) -> None:
    config = workspace / "siteembed.toml"
    config.write_text(
        config.read_text(encoding="utf-8") + "disable_namespace = true\n",
        encoding="utf-8",
    )
    fake = PineconeFake()

    result = runner.invoke(
        _app(environ, fake), ["purge", "-t", "node", "--all", "--yes"]
    )

    assert result.exit_code == 1
    assert "Purge failed" in result.output
    assert fake.requests == []


def test_purge_requires_a_selector(runner, environ, workspace) -> None:
    result = runner.invoke(_app(environ, PineconeFake()), ["purge", "-t", "node"])

    assert result.exit_code == 2


def test_missing_plugin_fails_with_message(runner, environ, workspace) -> None:
    (workspace / "siteembed.toml").write_text("", encoding="utf-8")

    result = runner.invoke(_app(environ, PineconeFake()), ["stats"])

    assert result.exit_code == 1
    assert "vector_client_plugin" in result.output


def test_parse_filters_coerces_values() -> None:
    assert parse_filters(["bundle=article", "entity_id=1,2"]) == {
        "bundle": "article",
        "entity_id": (1, 2),
    }
    with pytest.raises(typer.BadParameter):
        parse_filters(["bundle"])
