"""Configuration models and loaders for :mod:`siteembed`."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
import os
from pathlib import Path
from typing import Any, Mapping

import tomllib
import tomlkit
from pydantic import AliasChoices, BaseModel, Field, field_validator

from siteembed.resources import get_resource

DEFAULT_EMBEDDING_MODEL = "text-embedding-ada-002"
DEFAULTS_RESOURCE_NAME = "siteembed.defaults.toml"

_SECTION_CONFIG = {
    "str_strip_whitespace": True,
    "validate_assignment": True,
    "populate_by_name": True,
}


def _split_csv(value: Any) -> Any:
    if isinstance(value, str):
        return tuple(part.strip() for part in value.split(","))
    return value


def _drop_blank(values: tuple[str, ...]) -> tuple[str, ...]:
    return tuple(dict.fromkeys(value for value in values if value))


class OpenAISettings(BaseModel):
    """Credentials and transport options for the embeddings provider."""

    api_key: str = Field(
        default="env:OPENAI_API_KEY",
        description="Secret reference resolving to the OpenAI API key.",
    )
    base_url: str | None = Field(
        default=None,
        description="Optional API base URL (proxies, compatible gateways).",
    )
    organization: str | None = Field(
        default=None,
        description="Optional OpenAI organization identifier.",
    )
    timeout: float = Field(
        default=30.0,
        gt=0.0,
        description="Request timeout in seconds.",
    )

    model_config = _SECTION_CONFIG


class PineconeSettings(BaseModel):
    """Pinecone vector client options."""

    hostname: str = Field(
        default="",
        description="Index host URL, e.g. https://index-abc.svc.pinecone.io.",
    )
    api_key: str = Field(
        default="env:PINECONE_API_KEY",
        description="Secret reference resolving to the Pinecone API key.",
    )
    disable_namespace: bool = Field(
        default=False,
        description=(
            "Starter plans lack namespaces; when set, every record shares the "
            "default namespace and namespace-wide deletes are rejected."
        ),
    )
    timeout: float = Field(default=30.0, gt=0.0)

    model_config = _SECTION_CONFIG


class MilvusSettings(BaseModel):
    """Milvus (REST v1) vector client options."""

    hostname: str = Field(
        default="",
        description="Base URL including the port when not 443.",
    )
    token: str = Field(
        default="env:MILVUS_TOKEN",
        description="Secret reference resolving to the bearer token.",
    )
    dimension: int = Field(
        default=1536,
        ge=1,
        description="Vector dimension used when creating collections.",
    )
    metric_type: str | None = Field(
        default=None,
        description="Optional metric type passed at collection creation.",
    )
    query_page_size: int = Field(
        default=1000,
        ge=1,
        description="Rows fetched per page when resolving ids for deletes.",
    )
    timeout: float = Field(default=30.0, gt=0.0)

    model_config = _SECTION_CONFIG


class EmbeddingsSettings(BaseModel):
    """Pipeline options mirroring the CMS module settings form."""

    model: str = Field(
        default=DEFAULT_EMBEDDING_MODEL,
        description="Embedding model identifier.",
    )
    content_types: tuple[str, ...] = Field(
        default_factory=tuple,
        validation_alias=AliasChoices("content_types", "node_types"),
        description="Bundles eligible for embedding.",
    )
    stopwords: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Words removed from text before embedding.",
    )
    vector_client_plugin: str | None = Field(
        default=None,
        description="Vector client plugin id (pinecone or milvus).",
    )
    max_length: int = Field(
        default=8000,
        ge=1,
        description="Character ceiling applied to cleaned field text.",
    )
    remove_elements: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Extra HTML elements dropped along with their content.",
    )

    model_config = _SECTION_CONFIG

    @field_validator("content_types", mode="before")
    @classmethod
    def _coerce_content_types(cls, value: Any) -> Any:
        # Checkbox widgets store {"article": "article", "page": 0}.
        if isinstance(value, MappingABC):
            return tuple(str(key) for key, checked in value.items() if checked)
        return _split_csv(value)

    @field_validator("stopwords", "remove_elements", mode="before")
    @classmethod
    def _coerce_csv(cls, value: Any) -> Any:
        return _split_csv(value)

    @field_validator("content_types", "stopwords", "remove_elements")
    @classmethod
    def _normalize_lists(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return _drop_blank(tuple(item.strip() for item in value))

    @field_validator("vector_client_plugin")
    @classmethod
    def _normalize_plugin(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        return normalized or None


class AppConfig(BaseModel):
    """Root configuration for the :mod:`siteembed` runtime."""

    log_level: str = Field(
        default="INFO",
        description="Default logging level for the application runtime.",
    )
    embeddings: EmbeddingsSettings = Field(default_factory=EmbeddingsSettings)
    openai: OpenAISettings = Field(default_factory=OpenAISettings)
    pinecone: PineconeSettings = Field(default_factory=PineconeSettings)
    milvus: MilvusSettings = Field(default_factory=MilvusSettings)

    model_config = _SECTION_CONFIG

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def read_packaged_defaults_text() -> str:
    """Return the raw packaged defaults TOML content."""

    resource = get_resource(DEFAULTS_RESOURCE_NAME)
    return resource.read_text(encoding="utf-8")


def load_packaged_defaults() -> dict[str, Any]:
    """Load the packaged defaults as a plain dictionary.

    Example:
        >>> load_packaged_defaults()["embeddings"]["model"]
        'text-embedding-ada-002'
    """

    return tomllib.loads(read_packaged_defaults_text())


def read_user_config(path: Path) -> dict[str, Any]:
    """Return the parsed workspace config or an empty mapping when absent."""

    if not path.exists():
        return {}
    with path.open("rb") as handle:
        return tomllib.load(handle)


def env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Translate ``SITEEMBED_*`` environment variables into config layers."""

    env = os.environ if environ is None else environ
    overrides: dict[str, Any] = {}
    level = env.get("SITEEMBED_LOG_LEVEL")
    if level:
        overrides["log_level"] = level
    plugin = env.get("SITEEMBED_VECTOR_CLIENT")
    if plugin:
        overrides["embeddings"] = {"vector_client_plugin": plugin}
    return overrides


def _deep_merge(
    base: Mapping[str, Any],
    overlay: Mapping[str, Any],
) -> dict[str, Any]:
    """Recursively merge ``overlay`` into ``base`` returning a new dict."""

    merged: dict[str, Any] = dict(base)
    for key, value in overlay.items():
        if (
            key in merged
            and isinstance(merged[key], MappingABC)
            and isinstance(value, MappingABC)
        ):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _rename_node_types(layer: Mapping[str, Any]) -> Mapping[str, Any]:
    # Both spellings may appear across layers; the later layer must win.
    section = layer.get("embeddings")
    if not isinstance(section, MappingABC) or "node_types" not in section:
        return layer
    renamed = dict(section)
    renamed["content_types"] = renamed.pop("node_types")
    return {**layer, "embeddings": renamed}


def load_config(
    *,
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
    env_config: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> AppConfig:
    """Load configuration according to the precedence stack.

    Precedence is CLI flags > environment > workspace file > defaults.

    Returns:
        A validated :class:`AppConfig` instance.
    """

    stack: dict[str, Any] = dict(_rename_node_types(defaults))
    for layer in (user_config, env_config, cli_overrides):
        if layer:
            stack = _deep_merge(stack, _rename_node_types(layer))
    return AppConfig.model_validate(stack)


def render_user_config(config: AppConfig) -> str:
    """Render a ``siteembed.toml`` template for operators to customize."""

    document = tomlkit.document()
    document.add(tomlkit.comment("Generated by siteembed init"))
    document.add(
        tomlkit.comment(
            "Precedence: CLI flags > env vars > siteembed.toml > defaults"
        )
    )
    document.add(
        tomlkit.comment('Secrets accept "env:NAME" references or literals.')
    )
    document.add(tomlkit.nl())
    document["log_level"] = config.log_level

    embeddings = tomlkit.table()
    embeddings["model"] = config.embeddings.model
    embeddings["content_types"] = list(config.embeddings.content_types)
    embeddings["stopwords"] = ", ".join(config.embeddings.stopwords)
    if config.embeddings.vector_client_plugin:
        embeddings["vector_client_plugin"] = (
            config.embeddings.vector_client_plugin
        )
    embeddings["max_length"] = config.embeddings.max_length
    embeddings["remove_elements"] = list(config.embeddings.remove_elements)
    document["embeddings"] = embeddings

    for name, section in (
        ("openai", config.openai),
        ("pinecone", config.pinecone),
        ("milvus", config.milvus),
    ):
        table = tomlkit.table()
        for key, value in section.model_dump().items():
            if value is not None:
                table[key] = value
        document[name] = table

    return tomlkit.dumps(document)


__all__ = [
    "AppConfig",
    "DEFAULT_EMBEDDING_MODEL",
    "DEFAULTS_RESOURCE_NAME",
    "EmbeddingsSettings",
    "MilvusSettings",
    "OpenAISettings",
    "PineconeSettings",
    "env_overrides",
    "load_config",
    "load_packaged_defaults",
    "read_packaged_defaults_text",
    "read_user_config",
    "render_user_config",
]
