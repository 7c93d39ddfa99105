"""Per-entity orchestration: clean, embed, upsert remotely, mirror locally."""

from __future__ import annotations

from dataclasses import dataclass, field
import sqlite3
from typing import Literal

import httpx
from openai import OpenAI

from siteembed.core.logging import Logger

from .client import EmbeddingClient, build_embedding_client
from .content import ContentSource
from .errors import ProviderError, VectorStoreError
from .models import (
    ContentField,
    ContentItem,
    EmbeddingTarget,
    VectorRecord,
    WorkItem,
    collection_for,
)
from .repository import EmbeddingRecordRepository
from .settings import PipelineSettings
from .stores import StoreRegistry, VectorStore, create_default_store_registry
from .text import TextPreparer

__all__ = [
    "EmbeddingSyncWorker",
    "SyncStatus",
    "SyncSummary",
    "build_worker",
]

SyncStatus = Literal["processed", "ineligible", "missing"]


@dataclass(slots=True)
class SyncSummary:
    """Outcome of processing one work item.

    ``failed`` counts values whose embedding or remote upsert failed;
    ``mirror_failures`` counts values stored remotely whose local row could
    not be written.
    """

    item: WorkItem
    status: SyncStatus = "processed"
    embedded: int = 0
    skipped: int = 0
    failed: int = 0
    mirror_failures: int = 0
    failed_targets: list[EmbeddingTarget] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            **self.item.to_payload(),
            "status": self.status,
            "embedded": self.embedded,
            "skipped": self.skipped,
            "failed": self.failed,
            "mirror_failures": self.mirror_failures,
            "failed_targets": [t.source_id for t in self.failed_targets],
        }


class EmbeddingSyncWorker:
    """Embed every eligible field value of one content entity.

    Fields are visited in definition order and values in delta order.
    Provider and vector store failures are isolated to the value that
    caused them; configuration errors and guard rejections propagate.
    """

    def __init__(
        self,
        *,
        settings: PipelineSettings,
        content: ContentSource,
        client: EmbeddingClient,
        store: VectorStore,
        repository: EmbeddingRecordRepository,
        logger: Logger,
        preparer: TextPreparer | None = None,
    ) -> None:
        self.settings = settings
        self.content = content
        self.client = client
        self.store = store
        self.repository = repository
        self.logger = logger
        self.preparer = preparer or settings.text_preparer()

    def process(self, item: WorkItem) -> SyncSummary:
        summary = SyncSummary(item=item)
        log = self.logger.bind(**item.to_payload())

        entity = self.content.load(item)
        if entity is None:
            log.warning("embedding-item-skipped", reason="entity-not-found")
            summary.status = "missing"
            return summary

        # Queue payloads can be stale; the loaded entity decides.
        if not self.settings.allows(entity.bundle):
            log.info(
                "embedding-item-skipped",
                reason="bundle-not-allowed",
                entity_bundle=entity.bundle,
            )
            summary.status = "ineligible"
            return summary

        collection = collection_for(entity.entity_type)
        for content_field in entity.fields:
            if not content_field.is_supported:
                log.debug(
                    "embedding-field-skipped",
                    field_name=content_field.name,
                    field_type=content_field.field_type,
                    reason="unsupported-field-type",
                )
                continue
            self._process_field(entity, content_field, collection, summary)

        log.info(
            "embedding-item-processed",
            collection=collection,
            embedded=summary.embedded,
            skipped=summary.skipped,
            failed=summary.failed,
            mirror_failures=summary.mirror_failures,
        )
        return summary

    def _process_field(
        self,
        entity: ContentItem,
        content_field: ContentField,
        collection: str,
        summary: SyncSummary,
    ) -> None:
        for delta, raw in enumerate(content_field.values):
            target = EmbeddingTarget(
                entity_type=entity.entity_type,
                entity_id=entity.entity_id,
                bundle=entity.bundle,
                field_name=content_field.name,
                delta=delta,
            )
            if not raw:
                summary.skipped += 1
                continue
            text = self.preparer.prepare(raw)
            if not text:
                self.logger.debug(
                    "embedding-field-skipped",
                    reason="empty-after-cleaning",
                    **target.log_context(),
                )
                summary.skipped += 1
                continue
            self._embed_target(target, text, collection, summary)

    def _embed_target(
        self,
        target: EmbeddingTarget,
        text: str,
        collection: str,
        summary: SyncSummary,
    ) -> None:
        try:
            result = self.client.embed(text, model=self.settings.model)
            self.store.upsert(
                collection,
                [VectorRecord.for_target(target, result.vector)],
            )
        except (ProviderError, VectorStoreError) as exc:
            self.logger.error(
                "embedding-field-failed",
                error_type=exc.__class__.__name__,
                error=str(exc),
                **target.log_context(),
            )
            summary.failed += 1
            summary.failed_targets.append(target)
            return

        try:
            self.repository.upsert(
                target,
                result.vector,
                result.usage,
                model=result.model,
            )
        except sqlite3.Error as exc:
            self.logger.error(
                "embedding-mirror-write-failed",
                error_type=exc.__class__.__name__,
                error=str(exc),
                **target.log_context(),
            )
            summary.mirror_failures += 1
        summary.embedded += 1


def build_worker(
    settings: PipelineSettings,
    *,
    content: ContentSource,
    repository: EmbeddingRecordRepository,
    logger: Logger,
    registry: StoreRegistry | None = None,
    transport: httpx.BaseTransport | None = None,
    openai_client: OpenAI | None = None,
) -> EmbeddingSyncWorker:
    """Wire a worker from resolved settings.

    Raises :class:`ConfigurationError` before any network call when the
    backend or credentials are missing.
    """

    store_registry = registry or create_default_store_registry()
    store = store_registry.create(
        settings.require_store_plugin(),
        logger=logger,
        config=settings.store_config,
        transport=transport,
    )
    client = build_embedding_client(
        settings,
        logger=logger,
        client=openai_client,
    )
    return EmbeddingSyncWorker(
        settings=settings,
        content=content,
        client=client,
        store=store,
        repository=repository,
        logger=logger,
    )
