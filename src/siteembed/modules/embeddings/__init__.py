"""Embedding generation and vector store synchronization."""

from __future__ import annotations

from .client import EmbeddingClient, OpenAIEmbeddingClient, build_embedding_client
from .content import ContentSource, InMemoryContentSource, JsonContentSource
from .errors import (
    ConfigurationError,
    GuardRejection,
    ProviderError,
    SiteEmbedError,
    VectorStoreError,
)
from .models import (
    ContentField,
    ContentItem,
    EmbeddingResult,
    EmbeddingTarget,
    EmbeddingUsage,
    PartitionStats,
    VectorMatch,
    VectorRecord,
    WorkItem,
    collection_for,
)
from .queue import DrainReport, EmbeddingQueue, QueueRunner, QueuedItem
from .repository import EmbeddingRecord, EmbeddingRecordRepository
from .search import SemanticSearch
from .settings import PipelineSettings, resolve_pipeline_settings
from .stores import (
    StoreInitContext,
    StoreRegistry,
    VectorStore,
    VectorStoreBase,
    create_default_store_registry,
)
from .text import TextPreparer, prepare_text, remove_stopwords
from .worker import EmbeddingSyncWorker, SyncSummary, build_worker

__all__ = [
    "ConfigurationError",
    "ContentField",
    "ContentItem",
    "ContentSource",
    "DrainReport",
    "EmbeddingClient",
    "EmbeddingQueue",
    "EmbeddingRecord",
    "EmbeddingRecordRepository",
    "EmbeddingResult",
    "EmbeddingSyncWorker",
    "EmbeddingTarget",
    "EmbeddingUsage",
    "GuardRejection",
    "InMemoryContentSource",
    "JsonContentSource",
    "OpenAIEmbeddingClient",
    "PartitionStats",
    "PipelineSettings",
    "ProviderError",
    "QueueRunner",
    "QueuedItem",
    "SemanticSearch",
    "SiteEmbedError",
    "StoreInitContext",
    "StoreRegistry",
    "SyncSummary",
    "TextPreparer",
    "VectorMatch",
    "VectorRecord",
    "VectorStore",
    "VectorStoreBase",
    "VectorStoreError",
    "WorkItem",
    "build_embedding_client",
    "build_worker",
    "collection_for",
    "create_default_store_registry",
    "prepare_text",
    "remove_stopwords",
    "resolve_pipeline_settings",
]
