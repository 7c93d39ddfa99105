"""Milvus (REST v1) vector store backend."""

from __future__ import annotations

import json
import time
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

import httpx

from siteembed.core.logging import Logger

from ..models import (
    METADATA_FIELDS,
    Filters,
    PartitionStats,
    VectorMatch,
    VectorRecord,
)
from .base import (
    VectorStoreBase,
    normalize_filters,
    require_setting,
    sanitize_hostname,
)

if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from . import StoreInitContext

__all__ = [
    "DEFAULT_DIMENSION",
    "MilvusStore",
    "milvus_store_factory",
    "render_milvus_filter",
]

DEFAULT_DIMENSION = 1536
# Rows requested per ``/v1/vector/query`` page; the server default is 100.
DEFAULT_QUERY_PAGE_SIZE = 1000
SOURCE_ID_FIELD = "source_id"
_NATIVE_ID_FIELD = "id"
_SUCCESS_CODES = frozenset({0, 200})


def _literal(value: Any) -> str:
    return json.dumps(value)


def render_milvus_filter(filters: Mapping[str, Any]) -> str:
    """Render flat filters into a Milvus boolean expression.

    Example:
        >>> render_milvus_filter({"bundle": "article", "entity_id": (1, 2)})
        'bundle == "article" and entity_id in [1, 2]'
    """

    clauses: list[str] = []
    for key, value in filters.items():
        if isinstance(value, tuple):
            joined = ", ".join(_literal(item) for item in value)
            clauses.append(f"{key} in [{joined}]")
        else:
            clauses.append(f"{key} == {_literal(value)}")
    return " and ".join(clauses)


class MilvusStore(VectorStoreBase):
    """Vector store backed by Milvus collections over the v1 REST API.

    Milvus assigns its own primary keys, so the derived record id is stored
    in ``source_id`` and resolved back to native ids for deletes. Collections
    are created on first write with the configured dimension.
    """

    backend = "milvus"

    def __init__(
        self,
        *,
        logger: Logger,
        hostname: str | None,
        token: str | None,
        dimension: int = DEFAULT_DIMENSION,
        metric_type: str | None = None,
        query_page_size: int = DEFAULT_QUERY_PAGE_SIZE,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        token = require_setting(token, setting="milvus.token")
        super().__init__(
            logger=logger,
            hostname=sanitize_hostname(hostname, setting="milvus.hostname"),
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
            now=now,
        )
        if dimension < 1:
            raise ValueError("dimension must be >= 1")
        if query_page_size < 1:
            raise ValueError("query_page_size must be >= 1")
        self.dimension = dimension
        self.metric_type = (metric_type or "").strip() or None
        self.query_page_size = query_page_size
        self._known_collections: set[str] = set()

    def _call(
        self,
        operation: str,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> Any:
        # Milvus reports failures through ``code`` on HTTP 200 responses.
        body = self._request(operation, method, path, **kwargs)
        code = body.get("code") if isinstance(body, Mapping) else None
        if code is not None and code not in _SUCCESS_CODES:
            message = body.get("message") or "unknown error"
            self.logger.error(
                "vector-store-backend-error",
                backend=self.backend,
                operation=operation,
                code=code,
                message=message,
            )
            raise self._error(
                f"milvus {operation} failed with code {code}: {message}",
                operation=operation,
            )
        return body

    def list_collections(self) -> tuple[str, ...]:
        body = self._call("list_collections", "GET", "/v1/vector/collections")
        return tuple(str(name) for name in body.get("data") or ())

    def _ensure_collection(self, collection: str) -> None:
        if collection in self._known_collections:
            return
        if collection not in self.list_collections():
            payload: dict[str, Any] = {
                "collectionName": collection,
                "dimension": self.dimension,
            }
            if self.metric_type:
                payload["metricType"] = self.metric_type
            self._call(
                "create_collection",
                "POST",
                "/v1/vector/collections/create",
                json=payload,
                context={"collection": collection, "dimension": self.dimension},
            )
            # Invalid names can be rejected without an error code.
            if collection not in self.list_collections():
                raise self._error(
                    f"Failed to create collection {collection!r}; try a name "
                    "without special characters.",
                    operation="create_collection",
                )
        self._known_collections.add(collection)

    def _resolve_native_ids(
        self,
        collection: str,
        expression: str,
        operation: str,
    ) -> list[Any]:
        """Return every native id matching ``expression``, page by page."""

        native_ids: list[Any] = []
        offset = 0
        while True:
            body = self._call(
                operation,
                "POST",
                "/v1/vector/query",
                json={
                    "collectionName": collection,
                    "filter": expression,
                    "outputFields": [_NATIVE_ID_FIELD],
                    "limit": self.query_page_size,
                    "offset": offset,
                },
                context={
                    "collection": collection,
                    "step": "resolve-ids",
                    "offset": offset,
                },
            )
            rows = body.get("data") or ()
            native_ids.extend(
                row[_NATIVE_ID_FIELD] for row in rows if _NATIVE_ID_FIELD in row
            )
            if len(rows) < self.query_page_size:
                return native_ids
            offset += len(rows)

    def _delete_expression(self, collection: str, expression: str) -> int:
        native_ids = self._resolve_native_ids(collection, expression, "delete")
        if not native_ids:
            return 0
        self._call(
            "delete",
            "POST",
            "/v1/vector/delete",
            json={"collectionName": collection, "id": native_ids},
            context={"collection": collection, "ids": len(native_ids)},
        )
        return len(native_ids)

    def upsert(
        self,
        collection: str,
        records: Sequence[VectorRecord],
    ) -> None:
        name = self._require_collection(collection, "upsert")
        if not records:
            return
        self._ensure_collection(name)

        source_ids = {record.id: None for record in records}
        self._delete_expression(
            name, render_milvus_filter({SOURCE_ID_FIELD: tuple(source_ids)})
        )
        data = [
            {
                **dict(record.metadata),
                "vector": list(record.vector),
                SOURCE_ID_FIELD: record.id,
            }
            for record in records
        ]
        self._call(
            "upsert",
            "POST",
            "/v1/vector/insert",
            json={"collectionName": name, "data": data},
            context={"collection": name, "count": len(data)},
        )

    def delete(
        self,
        collection: str,
        ids: Sequence[str] = (),
        *,
        filters: Filters | None = None,
    ) -> None:
        name = self._require_collection(collection, "delete")
        cleaned, normalized = self._require_selector(ids, filters, "delete")
        if cleaned:
            normalized = {SOURCE_ID_FIELD: cleaned}
        deleted = self._delete_expression(name, render_milvus_filter(normalized))
        if not deleted:
            self.logger.info(
                "vector-store-delete-noop",
                backend=self.backend,
                collection=name,
                ids=len(cleaned),
                filters=sorted(filters or {}),
            )

    def delete_all(self, collection: str) -> None:
        name = self._require_collection(collection, "delete_all")
        self._call(
            "delete_all",
            "POST",
            "/v1/vector/collections/drop",
            json={"collectionName": name},
            context={"collection": name},
        )
        self._known_collections.discard(name)

    def query(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 5,
        filters: Filters | None = None,
        include_metadata: bool = False,
    ) -> tuple[VectorMatch, ...]:
        name = self._require_collection(collection, "query")
        if top_k < 1:
            raise self._error("top_k must be >= 1", operation="query")
        normalized = normalize_filters(
            filters, backend=self.backend, operation="query"
        )
        output_fields = [SOURCE_ID_FIELD]
        if include_metadata:
            output_fields.extend(METADATA_FIELDS)
        payload: dict[str, Any] = {
            "collectionName": name,
            "vector": [float(value) for value in vector],
            "limit": top_k,
            "outputFields": output_fields,
        }
        if normalized:
            payload["filter"] = render_milvus_filter(normalized)

        body = self._call(
            "query",
            "POST",
            "/v1/vector/search",
            json=payload,
            context={
                "collection": name,
                "top_k": top_k,
                "filters": sorted(normalized),
            },
        )
        matches: list[VectorMatch] = []
        for row in body.get("data") or ():
            metadata = {
                key: row[key] for key in METADATA_FIELDS if key in row
            }
            matches.append(
                VectorMatch(
                    id=str(row.get(SOURCE_ID_FIELD, row.get(_NATIVE_ID_FIELD))),
                    score=float(row.get("distance", 0.0)),
                    metadata=metadata if include_metadata else {},
                )
            )
        return tuple(matches)

    def fetch(
        self,
        collection: str,
        ids: Sequence[str],
    ) -> tuple[VectorRecord, ...]:
        name = self._require_collection(collection, "fetch")
        wanted = tuple(str(item).strip() for item in ids if str(item).strip())
        if not wanted:
            return ()
        body = self._call(
            "fetch",
            "POST",
            "/v1/vector/query",
            json={
                "collectionName": name,
                "filter": render_milvus_filter({SOURCE_ID_FIELD: wanted}),
                "outputFields": [SOURCE_ID_FIELD, "vector", *METADATA_FIELDS],
                "limit": len(wanted),
            },
            context={"collection": name, "ids": len(wanted)},
        )
        rows = {
            str(row[SOURCE_ID_FIELD]): row
            for row in body.get("data") or ()
            if SOURCE_ID_FIELD in row
        }
        return tuple(
            VectorRecord(
                id=source_id,
                vector=tuple(rows[source_id].get("vector") or ()),
                metadata={
                    key: rows[source_id][key]
                    for key in METADATA_FIELDS
                    if key in rows[source_id]
                },
            )
            for source_id in wanted
            if source_id in rows
        )

    def stats(self, collection: str | None = None) -> tuple[PartitionStats, ...]:
        if collection is not None:
            names: Sequence[str] = (
                self._require_collection(collection, "stats"),
            )
        else:
            names = self.list_collections()

        results: list[PartitionStats] = []
        for name in names:
            body = self._call(
                "stats",
                "GET",
                "/v1/vector/collections/describe",
                params={"collectionName": name},
                context={"collection": name},
            )
            data = body.get("data") or {}
            fields = tuple(
                f"{field.get('name')} ({field.get('type')})"
                for field in data.get("fields") or ()
            )
            results.append(
                PartitionStats(
                    name=str(data.get("collectionName") or name),
                    record_count=None,
                    details={
                        "shards": data.get("shardsNum"),
                        "dynamic_field": bool(data.get("enableDynamicField")),
                        "fields": fields,
                    },
                )
            )
        return tuple(results)


def milvus_store_factory(context: StoreInitContext) -> MilvusStore:
    """Factory registered with the store registry."""

    config = context.config
    return MilvusStore(
        logger=context.logger,
        hostname=config.get("hostname"),
        token=config.get("token"),
        dimension=int(config.get("dimension", DEFAULT_DIMENSION)),
        metric_type=config.get("metric_type"),
        query_page_size=int(
            config.get("query_page_size", DEFAULT_QUERY_PAGE_SIZE)
        ),
        timeout=float(config.get("timeout", 30.0)),
        transport=context.transport,
    )
