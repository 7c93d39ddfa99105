"""Resolved, immutable settings handed to the pipeline components."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from siteembed.core.config import AppConfig
from siteembed.core.secrets import EnvSecretResolver, SecretResolver

from .errors import ConfigurationError
from .text import TextPreparer

__all__ = [
    "PipelineSettings",
    "resolve_pipeline_settings",
]


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Plain values resolved once at pipeline entry.

    Secrets are already resolved; they are excluded from ``repr`` so the
    struct is safe to log.
    """

    model: str
    content_types: tuple[str, ...]
    stopwords: tuple[str, ...]
    remove_elements: tuple[str, ...]
    max_length: int
    vector_client_plugin: str | None
    openai_api_key: str | None = field(default=None, repr=False)
    openai_base_url: str | None = None
    openai_organization: str | None = None
    openai_timeout: float = 30.0
    store_config: Mapping[str, object] = field(
        default_factory=dict, repr=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "store_config", MappingProxyType(dict(self.store_config))
        )

    def allows(self, bundle: str) -> bool:
        """Return whether entities of ``bundle`` are eligible for embedding."""

        return bundle in self.content_types

    def text_preparer(self) -> TextPreparer:
        return TextPreparer(
            remove_elements=frozenset(self.remove_elements),
            max_length=self.max_length,
            stopwords=self.stopwords,
        )

    def require_store_plugin(self) -> str:
        if not self.vector_client_plugin:
            raise ConfigurationError(
                "No vector client plugin is configured; set "
                "embeddings.vector_client_plugin to pinecone or milvus.",
                setting="embeddings.vector_client_plugin",
            )
        return self.vector_client_plugin


def _store_config(
    config: AppConfig,
    plugin: str | None,
    secrets: SecretResolver,
) -> dict[str, object]:
    if plugin == "pinecone":
        section = config.pinecone
        return {
            "hostname": section.hostname,
            "api_key": secrets.resolve(section.api_key),
            "disable_namespace": section.disable_namespace,
            "timeout": section.timeout,
        }
    if plugin == "milvus":
        section = config.milvus
        return {
            "hostname": section.hostname,
            "token": secrets.resolve(section.token),
            "dimension": section.dimension,
            "metric_type": section.metric_type,
            "query_page_size": section.query_page_size,
            "timeout": section.timeout,
        }
    return {}


def resolve_pipeline_settings(
    config: AppConfig,
    secrets: SecretResolver | None = None,
) -> PipelineSettings:
    """Resolve secret references in ``config`` into :class:`PipelineSettings`.

    Missing secrets resolve to ``None``; the component that needs one raises
    :class:`ConfigurationError` when it is built.
    """

    resolver = secrets or EnvSecretResolver()
    embeddings = config.embeddings
    model = embeddings.model.strip()
    if not model:
        raise ConfigurationError(
            "Embedding model cannot be blank.",
            setting="embeddings.model",
        )
    plugin = embeddings.vector_client_plugin
    return PipelineSettings(
        model=model,
        content_types=embeddings.content_types,
        stopwords=embeddings.stopwords,
        remove_elements=embeddings.remove_elements,
        max_length=embeddings.max_length,
        vector_client_plugin=plugin,
        openai_api_key=resolver.resolve(config.openai.api_key),
        openai_base_url=config.openai.base_url,
        openai_organization=config.openai.organization,
        openai_timeout=config.openai.timeout,
        store_config=_store_config(config, plugin, resolver),
    )
