"""Local mirror of which field value holds which embedding."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import json
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from .database import connect, ensure_schema, format_timestamp, utc_now
from .models import EmbeddingTarget, EmbeddingUsage
from .sql import load_sql

__all__ = [
    "EmbeddingRecord",
    "EmbeddingRecordRepository",
]


def _target_params(target: EmbeddingTarget) -> dict[str, object]:
    return {
        "entity_id": str(target.entity_id),
        "entity_type": target.entity_type,
        "bundle": target.bundle,
        "field_name": target.field_name,
        "field_delta": target.delta,
    }


def _coerce_entity_id(value: str) -> int | str:
    return int(value) if value.isdigit() else value


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """One mirrored row keyed by its embedding target."""

    target: EmbeddingTarget
    vector: tuple[float, ...]
    usage: EmbeddingUsage
    model: str
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EmbeddingRecord":
        embedding = json.loads(row["embedding"])
        usage = json.loads(row["data"]).get("usage") or {}
        return cls(
            target=EmbeddingTarget(
                entity_type=row["entity_type"],
                entity_id=_coerce_entity_id(str(row["entity_id"])),
                bundle=row["bundle"],
                field_name=row["field_name"],
                delta=int(row["field_delta"]),
            ),
            vector=tuple(float(value) for value in embedding.get("data") or ()),
            usage=EmbeddingUsage(
                prompt_tokens=int(usage.get("prompt_tokens", 0)),
                total_tokens=int(
                    usage.get("total_tokens", usage.get("tokens", 0))
                ),
            ),
            model=row["model"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


class EmbeddingRecordRepository:
    """Repository wrapper around packaged ``embedding_records`` SQL.

    Writes merge by target key, so replaying a work item never duplicates
    rows. Errors surface as :class:`sqlite3.Error`.
    """

    def __init__(
        self,
        database_path: Path,
        *,
        now: Callable[[], datetime] = utc_now,
    ) -> None:
        self.database_path = Path(database_path)
        self._now = now
        self._upsert_sql = load_sql("embedding_records_upsert.sql")
        self._select_sql = load_sql("embedding_records_select.sql")
        self._select_by_entity_sql = load_sql(
            "embedding_records_select_by_entity.sql"
        )
        self._count_sql = load_sql("embedding_records_count.sql")

    def ensure_schema(self) -> None:
        ensure_schema(self.database_path)

    def upsert(
        self,
        target: EmbeddingTarget,
        vector: Sequence[float],
        usage: EmbeddingUsage,
        *,
        model: str,
    ) -> None:
        """Insert or replace the row for ``target``."""

        params = {
            **_target_params(target),
            "embedding": json.dumps({"data": [float(v) for v in vector]}),
            "data": json.dumps({"usage": usage.to_dict()}),
            "model": model,
            "updated_at": format_timestamp(self._now()),
        }
        with connect(self.database_path) as connection:
            connection.execute(self._upsert_sql, params)

    def fetch(self, target: EmbeddingTarget) -> EmbeddingRecord | None:
        with connect(self.database_path) as connection:
            row = connection.execute(
                self._select_sql, _target_params(target)
            ).fetchone()
        return EmbeddingRecord.from_row(row) if row is not None else None

    def list_for_entity(
        self,
        entity_type: str,
        entity_id: int | str,
    ) -> tuple[EmbeddingRecord, ...]:
        """Return mirrored rows of one entity ordered by field and delta."""

        with connect(self.database_path) as connection:
            rows = connection.execute(
                self._select_by_entity_sql,
                {"entity_type": entity_type, "entity_id": str(entity_id)},
            ).fetchall()
        return tuple(EmbeddingRecord.from_row(row) for row in rows)

    def count(self) -> int:
        with connect(self.database_path) as connection:
            row = connection.execute(self._count_sql).fetchone()
        return int(row["total"])
