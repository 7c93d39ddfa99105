from __future__ import annotations

import json
from pathlib import Path

import pytest

from siteembed.modules.embeddings.content import (
    ContentSource,
    InMemoryContentSource,
    JsonContentSource,
)
from siteembed.modules.embeddings.errors import ConfigurationError
from siteembed.modules.embeddings.models import (
    ContentField,
    ContentItem,
    WorkItem,
)


def _write_export(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_json_source_loads_entities_and_unwraps_values(tmp_path: Path) -> None:
    export = _write_export(
        tmp_path / "content.json",
        {
            "entities": [
                {
                    "entity_type": "node",
                    "entity_id": 42,
                    "bundle": "article",
                    "fields": [
                        {"name": "title", "type": "string", "values": "Hi"},
                        {
                            "name": "body",
                            "type": "text_with_summary",
                            "values": [
                                {"value": "<p>One</p>", "format": "basic_html"},
                                None,
                                "<p>Three</p>",
                            ],
                        },
                    ],
                }
            ]
        },
    )

    source = JsonContentSource(export)
    item = source.load(WorkItem("node", "42", "article"))

    assert item is not None
    assert item.fields == (
        ContentField("title", "string", ("Hi",)),
        ContentField(
            "body",
            "text_with_summary",
            ("<p>One</p>", None, "<p>Three</p>"),
        ),
    )
    assert source.load(WorkItem("node", 43, "article")) is None
    assert isinstance(source, ContentSource)


def test_missing_export_is_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError, match="not found") as excinfo:
        JsonContentSource(tmp_path / "absent.json")

    assert excinfo.value.setting == "content"


@pytest.mark.parametrize(
    "payload",
    ["not json", json.dumps({"entities": [{"entity_type": "node"}]})],
)
def test_malformed_export_is_a_configuration_error(
    tmp_path: Path, payload: str
) -> None:
    path = tmp_path / "content.json"
    path.write_text(payload, encoding="utf-8")

    with pytest.raises(ConfigurationError, match="malformed"):
        JsonContentSource(path)


def test_in_memory_source_matches_ids_as_text() -> None:
    source = InMemoryContentSource()
    source.add(ContentItem("node", "7", "page"))

    assert source.load(WorkItem("node", 7, "page")) is not None
