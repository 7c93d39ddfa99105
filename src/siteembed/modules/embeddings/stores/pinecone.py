"""Pinecone vector store backend."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

import httpx

from siteembed.core.logging import Logger

from ..errors import GuardRejection
from ..models import Filters, PartitionStats, VectorMatch, VectorRecord
from .base import (
    VectorStoreBase,
    normalize_filters,
    require_setting,
    sanitize_hostname,
)

if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from . import StoreInitContext

__all__ = [
    "PineconeStore",
    "pinecone_store_factory",
    "render_pinecone_filter",
]


def render_pinecone_filter(filters: Mapping[str, Any]) -> dict[str, Any]:
    """Render flat filters into Pinecone's metadata filter language.

    Example:
        >>> render_pinecone_filter({"bundle": "article", "entity_id": (1, 2)})
        {'bundle': {'$eq': 'article'}, 'entity_id': {'$in': [1, 2]}}
    """

    rendered: dict[str, Any] = {}
    for key, value in filters.items():
        if isinstance(value, tuple):
            rendered[key] = {"$in": list(value)}
        else:
            rendered[key] = {"$eq": value}
    return rendered


class PineconeStore(VectorStoreBase):
    """Vector store backed by a Pinecone index.

    Collections map to namespaces. Starter plans have a single implicit
    namespace; with ``disable_namespace`` set the namespace is omitted from
    every payload and namespace-wide deletes are refused.
    """

    backend = "pinecone"

    def __init__(
        self,
        *,
        logger: Logger,
        hostname: str | None,
        api_key: str | None,
        disable_namespace: bool = False,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        super().__init__(
            logger=logger,
            hostname=sanitize_hostname(hostname, setting="pinecone.hostname"),
            headers={
                "Api-Key": require_setting(api_key, setting="pinecone.api_key"),
            },
            timeout=timeout,
            transport=transport,
            now=now,
        )
        self.disable_namespace = bool(disable_namespace)

    def _namespace(self, collection: str | None) -> dict[str, str]:
        if self.disable_namespace:
            return {}
        name = (collection or "").strip()
        return {"namespace": name} if name else {}

    def upsert(
        self,
        collection: str,
        records: Sequence[VectorRecord],
    ) -> None:
        if not records:
            return
        payload: dict[str, Any] = {
            "vectors": [
                {
                    "id": record.id,
                    "values": list(record.vector),
                    "metadata": dict(record.metadata),
                }
                for record in records
            ],
            **self._namespace(collection),
        }
        self._request(
            "upsert",
            "POST",
            "/vectors/upsert",
            json=payload,
            context={"collection": collection, "count": len(records)},
        )

    def delete(
        self,
        collection: str,
        ids: Sequence[str] = (),
        *,
        filters: Filters | None = None,
    ) -> None:
        cleaned, normalized = self._require_selector(ids, filters, "delete")
        payload: dict[str, Any] = dict(self._namespace(collection))
        if cleaned:
            payload["ids"] = list(cleaned)
        else:
            payload["filter"] = render_pinecone_filter(normalized)
        self._request(
            "delete",
            "POST",
            "/vectors/delete",
            json=payload,
            context={
                "collection": collection,
                "ids": len(cleaned),
                "filters": sorted(normalized),
            },
        )

    def delete_all(self, collection: str) -> None:
        if self.disable_namespace:
            self.logger.warning(
                "vector-store-guard-rejected",
                backend=self.backend,
                operation="delete_all",
                collection=collection,
            )
            raise GuardRejection(
                "Deleting everything is disabled while namespaces are off; "
                "it would wipe the whole index.",
                backend=self.backend,
                operation="delete_all",
            )
        namespace = self._require_collection(collection, "delete_all")
        self._request(
            "delete_all",
            "POST",
            "/vectors/delete",
            json={"deleteAll": True, "namespace": namespace},
            context={"collection": namespace},
        )

    def query(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 5,
        filters: Filters | None = None,
        include_metadata: bool = False,
    ) -> tuple[VectorMatch, ...]:
        if top_k < 1:
            raise self._error("top_k must be >= 1", operation="query")
        normalized = normalize_filters(
            filters, backend=self.backend, operation="query"
        )
        payload: dict[str, Any] = {
            "vector": [float(value) for value in vector],
            "topK": top_k,
            "includeMetadata": include_metadata,
            "includeValues": False,
            **self._namespace(collection),
        }
        if normalized:
            payload["filter"] = render_pinecone_filter(normalized)

        body = self._request(
            "query",
            "POST",
            "/query",
            json=payload,
            context={
                "collection": collection,
                "top_k": top_k,
                "filters": sorted(normalized),
            },
        )
        try:
            return tuple(
                VectorMatch(
                    id=str(match["id"]),
                    score=float(match.get("score", 0.0)),
                    metadata=dict(match.get("metadata") or {}),
                )
                for match in body.get("matches") or ()
            )
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise self._error(
                f"pinecone query returned malformed matches: {exc!r}",
                operation="query",
            ) from exc

    def fetch(
        self,
        collection: str,
        ids: Sequence[str],
    ) -> tuple[VectorRecord, ...]:
        wanted = [str(item).strip() for item in ids if str(item).strip()]
        if not wanted:
            return ()
        body = self._request(
            "fetch",
            "GET",
            "/vectors/fetch",
            params={"ids": wanted, **self._namespace(collection)},
            context={"collection": collection, "ids": len(wanted)},
        )
        vectors = body.get("vectors") or {}
        return tuple(
            VectorRecord(
                id=source_id,
                vector=tuple(vectors[source_id].get("values") or ()),
                metadata=vectors[source_id].get("metadata") or {},
            )
            for source_id in wanted
            if source_id in vectors
        )

    def stats(self, collection: str | None = None) -> tuple[PartitionStats, ...]:
        body = self._request(
            "stats",
            "POST",
            "/describe_index_stats",
            json={},
            context={"collection": collection},
        )
        namespaces: Mapping[str, Any] = body.get("namespaces") or {}
        details = {"dimension": body.get("dimension")}
        if collection is not None:
            entry = namespaces.get(collection) or {}
            return (
                PartitionStats(
                    name=collection,
                    record_count=int(entry.get("vectorCount", 0)),
                    details=details,
                ),
            )
        return tuple(
            PartitionStats(
                name=name,
                record_count=int(entry.get("vectorCount", 0)),
                details=details,
            )
            for name, entry in namespaces.items()
        )


def pinecone_store_factory(context: StoreInitContext) -> PineconeStore:
    """Factory registered with the store registry."""

    config = context.config
    return PineconeStore(
        logger=context.logger,
        hostname=config.get("hostname"),
        api_key=config.get("api_key"),
        disable_namespace=bool(config.get("disable_namespace", False)),
        timeout=float(config.get("timeout", 30.0)),
        transport=context.transport,
    )
