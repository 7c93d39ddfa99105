"""Retrieval side of the pipeline: embed a query and rank stored vectors."""

from __future__ import annotations

from siteembed.core.logging import Logger

from .client import EmbeddingClient
from .models import Filters, VectorMatch, collection_for
from .stores import VectorStore
from .text import TextPreparer

__all__ = ["SemanticSearch"]


class SemanticSearch:
    """Find stored field values semantically close to a query string."""

    def __init__(
        self,
        *,
        client: EmbeddingClient,
        store: VectorStore,
        model: str,
        logger: Logger,
        preparer: TextPreparer | None = None,
    ) -> None:
        self.client = client
        self.store = store
        self.model = model
        self.logger = logger
        self.preparer = preparer or TextPreparer()

    def search(
        self,
        text: str,
        *,
        entity_type: str,
        top_k: int = 5,
        filters: Filters | None = None,
    ) -> tuple[VectorMatch, ...]:
        query = self.preparer.prepare(text)
        if not query:
            raise ValueError("search text is empty after cleaning")
        collection = collection_for(entity_type)
        result = self.client.embed(query, model=self.model)
        matches = self.store.query(
            collection,
            result.vector,
            top_k=top_k,
            filters=filters,
            include_metadata=True,
        )
        self.logger.info(
            "embedding-search",
            collection=collection,
            top_k=top_k,
            matches=len(matches),
            query_length=len(query),
        )
        return matches
