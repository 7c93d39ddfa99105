"""Typed records flowing through the embeddings pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Sequence

__all__ = [
    "SUPPORTED_FIELD_TYPES",
    "ContentField",
    "ContentItem",
    "EmbeddingResult",
    "EmbeddingTarget",
    "EmbeddingUsage",
    "FilterValue",
    "METADATA_FIELDS",
    "Filters",
    "PartitionStats",
    "VectorMatch",
    "VectorRecord",
    "WorkItem",
    "collection_for",
]

# Field types carrying free text worth embedding.
SUPPORTED_FIELD_TYPES: frozenset[str] = frozenset(
    {
        "string",
        "string_long",
        "text",
        "text_long",
        "text_with_summary",
        "text_textarea_with_summary",
    }
)

# Metadata keys stored alongside every vector record.
METADATA_FIELDS: tuple[str, ...] = (
    "entity_id",
    "entity_type",
    "bundle",
    "field_name",
    "field_delta",
)

FilterValue = str | int | float | bool | Sequence[str | int | float | bool]
Filters = Mapping[str, FilterValue]


def _require_text(value: Any, *, field_name: str) -> str:
    result = str(value).strip() if value is not None else ""
    if not result:
        raise ValueError(f"{field_name} cannot be empty")
    return result


def collection_for(entity_type: str) -> str:
    """Return the collection/namespace that holds vectors of ``entity_type``.

    Example:
        >>> collection_for("node")
        'node'
    """

    return _require_text(entity_type, field_name="entity_type")


@dataclass(frozen=True, slots=True)
class WorkItem:
    """Queue payload identifying one content entity to (re)embed."""

    entity_type: str
    entity_id: int | str
    bundle: str

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "entity_type",
            _require_text(self.entity_type, field_name="entity_type"),
        )
        object.__setattr__(
            self, "bundle", _require_text(self.bundle, field_name="bundle")
        )
        entity_id = self.entity_id
        if isinstance(entity_id, str):
            entity_id = _require_text(entity_id, field_name="entity_id")
            if entity_id.isdigit():
                entity_id = int(entity_id)
        object.__setattr__(self, "entity_id", entity_id)

    def to_payload(self) -> dict[str, object]:
        return {
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "bundle": self.bundle,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WorkItem":
        try:
            return cls(
                entity_type=payload["entity_type"],
                entity_id=payload["entity_id"],
                bundle=payload["bundle"],
            )
        except KeyError as exc:
            raise ValueError(f"work item payload missing {exc.args[0]!r}") from exc


@dataclass(frozen=True, slots=True)
class ContentField:
    """One field of a content entity with its ordered values (deltas)."""

    name: str
    field_type: str
    values: tuple[str | None, ...] = ()

    @property
    def is_supported(self) -> bool:
        return self.field_type in SUPPORTED_FIELD_TYPES


@dataclass(frozen=True, slots=True)
class ContentItem:
    """A loaded content entity; fields keep their definition order."""

    entity_type: str
    entity_id: int | str
    bundle: str
    fields: tuple[ContentField, ...] = ()


@dataclass(frozen=True, slots=True)
class EmbeddingTarget:
    """Smallest embeddable unit: one value of one field of one entity."""

    entity_type: str
    entity_id: int | str
    bundle: str
    field_name: str
    delta: int

    def __post_init__(self) -> None:
        if self.delta < 0:
            raise ValueError("delta must be >= 0")

    @property
    def key(self) -> tuple[str, str, str, str, int]:
        return (
            str(self.entity_id),
            self.entity_type,
            self.bundle,
            self.field_name,
            self.delta,
        )

    @property
    def source_id(self) -> str:
        """Return the vector record id derived from the target key.

        Example:
            >>> EmbeddingTarget("node", 42, "article", "body", 0).source_id
            'entity:42:node:article:body:0'
        """

        return (
            f"entity:{self.entity_id}:{self.entity_type}:{self.bundle}:"
            f"{self.field_name}:{self.delta}"
        )

    @property
    def collection(self) -> str:
        return collection_for(self.entity_type)

    def metadata(self) -> dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "bundle": self.bundle,
            "field_name": self.field_name,
            "field_delta": self.delta,
        }

    def log_context(self) -> dict[str, object]:
        return {
            "entity_id": self.entity_id,
            "entity_type": self.entity_type,
            "bundle": self.bundle,
            "field_name": self.field_name,
            "delta": self.delta,
        }


@dataclass(frozen=True, slots=True)
class EmbeddingUsage:
    """Token accounting reported by the provider."""

    prompt_tokens: int = 0
    total_tokens: int = 0

    @property
    def tokens(self) -> int:
        return self.total_tokens

    def to_dict(self) -> dict[str, int]:
        return {
            "tokens": self.total_tokens,
            "prompt_tokens": self.prompt_tokens,
            "total_tokens": self.total_tokens,
        }


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    """Vector produced by the provider together with model and usage."""

    vector: tuple[float, ...]
    model: str
    usage: EmbeddingUsage = field(default_factory=EmbeddingUsage)

    @property
    def dimension(self) -> int:
        return len(self.vector)


@dataclass(frozen=True, slots=True)
class VectorRecord:
    """Record written to a vector store."""

    id: str
    vector: tuple[float, ...]
    metadata: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", _require_text(self.id, field_name="id"))
        if not self.vector:
            raise ValueError("vector cannot be empty")
        object.__setattr__(
            self, "vector", tuple(float(value) for value in self.vector)
        )
        object.__setattr__(
            self, "metadata", MappingProxyType(dict(self.metadata))
        )

    @classmethod
    def for_target(
        cls,
        target: EmbeddingTarget,
        vector: Sequence[float],
    ) -> "VectorRecord":
        return cls(
            id=target.source_id,
            vector=tuple(vector),
            metadata=target.metadata(),
        )


@dataclass(frozen=True, slots=True)
class VectorMatch:
    """Ranked query result returned by a vector store."""

    id: str
    score: float
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PartitionStats:
    """Record count for one namespace/collection."""

    name: str
    record_count: int | None
    details: Mapping[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "partition_name": self.name,
            "record_count": self.record_count,
            **dict(self.details),
        }
