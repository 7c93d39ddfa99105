from __future__ import annotations

import httpx
import pytest

from siteembed.modules.embeddings.client import OpenAIEmbeddingClient
from siteembed.modules.embeddings.search import SemanticSearch
from siteembed.modules.embeddings.stores.pinecone import PineconeStore
from siteembed.modules.embeddings.text import TextPreparer


def _search(logger, fake_openai, recording_transport, matches=()):
    transport = recording_transport(
        lambda request: httpx.Response(200, json={"matches": list(matches)})
    )
    openai = fake_openai([0.5, 0.5])
    search = SemanticSearch(
        client=OpenAIEmbeddingClient(logger=logger, client=openai),
        store=PineconeStore(
            logger=logger,
            hostname="https://index.pinecone.io",
            api_key="pk",
            transport=transport.transport,
        ),
        model="text-embedding-ada-002",
        logger=logger,
        preparer=TextPreparer(stopwords=("the",)),
    )
    return search, openai, transport


def test_search_embeds_cleaned_query_and_ranks(
    logger, fake_openai, recording_transport
) -> None:
    search, openai, transport = _search(
        logger,
        fake_openai,
        recording_transport,
        matches=[
            {
                "id": "entity:1:node:article:body:0",
                "score": 0.87,
                "metadata": {"bundle": "article"},
            }
        ],
    )

    matches = search.search(
        "<b>The</b> best pasta",
        entity_type="node",
        top_k=3,
        filters={"bundle": "article"},
    )

    assert openai.embeddings.calls == [("text-embedding-ada-002", "best pasta")]
    assert [(m.id, m.score) for m in matches] == [
        ("entity:1:node:article:body:0", 0.87)
    ]
    body = transport.bodies()[0]
    assert body["namespace"] == "node"
    assert body["topK"] == 3
    assert body["includeMetadata"] is True
    assert body["filter"] == {"bundle": {"$eq": "article"}}
    assert logger.names("info")[-1] == "embedding-search"


def test_search_rejects_query_empty_after_cleaning(
    logger, fake_openai, recording_transport
) -> None:
    search, openai, transport = _search(logger, fake_openai, recording_transport)

    with pytest.raises(ValueError):
        search.search("<script>x()</script> the", entity_type="node")

    assert openai.embeddings.calls == []
    assert transport.requests == []
