"""Content loading boundary between the CMS and the pipeline."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Mapping, Protocol, runtime_checkable

from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import ConfigurationError
from .models import ContentField, ContentItem, WorkItem

__all__ = [
    "ContentSource",
    "InMemoryContentSource",
    "JsonContentSource",
]


@runtime_checkable
class ContentSource(Protocol):
    """Load content entities referenced by queued work items."""

    def load(self, item: WorkItem) -> ContentItem | None:
        """Return the entity for ``item`` or ``None`` when it no longer exists."""


def _entity_key(entity_type: str, entity_id: int | str) -> tuple[str, str]:
    return entity_type, str(entity_id)


class InMemoryContentSource(ContentSource):
    """Content source over already-built :class:`ContentItem` objects."""

    def __init__(self, items: Mapping[tuple[str, str], ContentItem] | None = None):
        self._items: dict[tuple[str, str], ContentItem] = dict(items or {})

    def add(self, item: ContentItem) -> None:
        self._items[_entity_key(item.entity_type, item.entity_id)] = item

    def load(self, item: WorkItem) -> ContentItem | None:
        return self._items.get(_entity_key(item.entity_type, item.entity_id))


class _FieldPayload(BaseModel):
    name: str
    type: str
    values: tuple[str | None, ...] = ()

    @field_validator("values", mode="before")
    @classmethod
    def _unwrap_values(cls, value: Any) -> Any:
        # CMS exports store each delta as {"value": ..., "format": ...}.
        if isinstance(value, (str, Mapping)):
            value = [value]
        if isinstance(value, list):
            return [
                item.get("value") if isinstance(item, Mapping) else item
                for item in value
            ]
        return value


class _EntityPayload(BaseModel):
    entity_type: str
    entity_id: int | str
    bundle: str
    fields: tuple[_FieldPayload, ...] = ()

    def to_item(self) -> ContentItem:
        return ContentItem(
            entity_type=self.entity_type,
            entity_id=self.entity_id,
            bundle=self.bundle,
            fields=tuple(
                ContentField(
                    name=field.name,
                    field_type=field.type,
                    values=field.values,
                )
                for field in self.fields
            ),
        )


class _ExportPayload(BaseModel):
    entities: tuple[_EntityPayload, ...] = Field(default_factory=tuple)


class JsonContentSource(InMemoryContentSource):
    """Content source reading a JSON export of CMS entities.

    The export holds ``{"entities": [{"entity_type", "entity_id", "bundle",
    "fields": [{"name", "type", "values"}]}]}``; field order in the file is
    the field definition order.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)
        for entity in self._read_export(self.path).entities:
            self.add(entity.to_item())

    @staticmethod
    def _read_export(path: Path) -> _ExportPayload:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
            return _ExportPayload.model_validate(raw)
        except FileNotFoundError as exc:
            raise ConfigurationError(
                f"Content export not found: {path}",
                setting="content",
            ) from exc
        except (ValueError, ValidationError) as exc:
            raise ConfigurationError(
                f"Content export {path} is malformed: {exc}",
                setting="content",
            ) from exc
