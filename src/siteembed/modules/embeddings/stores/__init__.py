"""Vector store abstractions and registry for the embeddings module."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Mapping

import httpx

from siteembed.core.logging import Logger

from ..errors import ConfigurationError
from .base import (
    VectorStore,
    VectorStoreBase,
    normalize_filters,
    require_setting,
    sanitize_hostname,
)

__all__ = [
    "MilvusStore",
    "PineconeStore",
    "StoreFactory",
    "StoreInitContext",
    "StoreNotRegisteredError",
    "StoreRegistry",
    "StoreRegistryError",
    "VectorStore",
    "VectorStoreBase",
    "create_default_store_registry",
    "milvus_store_factory",
    "normalize_filters",
    "pinecone_store_factory",
    "register_builtin_stores",
    "require_setting",
    "sanitize_hostname",
]


@dataclass(frozen=True, slots=True)
class StoreInitContext:
    """Construction context supplied to store factories.

    ``config`` holds resolved (plain) settings for one backend. ``transport``
    lets callers swap the HTTP transport, e.g. ``httpx.MockTransport``.
    """

    logger: Logger
    config: Mapping[str, object] | None = None
    transport: httpx.BaseTransport | None = None

    def __post_init__(self) -> None:
        config = dict(self.config or {})
        object.__setattr__(self, "config", MappingProxyType(config))


StoreFactory = Callable[[StoreInitContext], VectorStore]
"""Factory callable responsible for instantiating vector stores."""


class StoreRegistryError(ConfigurationError):
    """Base error raised when interacting with the store registry."""


class StoreNotRegisteredError(StoreRegistryError):
    """Raised when no store is registered for the requested plugin id."""


class StoreRegistry:
    """Mutable registry mapping plugin ids to store factories."""

    def __init__(
        self,
        factories: Mapping[str, StoreFactory] | None = None,
    ) -> None:
        self._factories: dict[str, StoreFactory] = {}
        if factories:
            for key, factory in factories.items():
                self.register(key, factory)

    @staticmethod
    def _normalize_key(key: str | None) -> str:
        normalized = (key or "").strip().lower()
        if not normalized:
            raise StoreRegistryError(
                "No vector client plugin is configured.",
                setting="embeddings.vector_client_plugin",
            )
        return normalized

    def register(self, key: str, factory: StoreFactory) -> None:
        """Register ``factory`` under ``key``; errors if key already present."""

        normalized = self._normalize_key(key)
        if normalized in self._factories:
            raise StoreRegistryError(
                f"Vector store {normalized!r} already registered",
            )
        self._factories[normalized] = factory

    def unregister(self, key: str) -> None:
        normalized = self._normalize_key(key)
        self._factories.pop(normalized, None)

    def get_factory(self, key: str | None) -> StoreFactory:
        """Return the factory registered for ``key`` or raise."""

        normalized = self._normalize_key(key)
        try:
            return self._factories[normalized]
        except KeyError as exc:
            known = ", ".join(sorted(self._factories)) or "none"
            raise StoreNotRegisteredError(
                f"Unknown vector client plugin {normalized!r} "
                f"(available: {known}).",
                setting="embeddings.vector_client_plugin",
            ) from exc

    def create(
        self,
        key: str | None,
        *,
        logger: Logger,
        config: Mapping[str, object] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> VectorStore:
        """Instantiate the store registered under ``key``."""

        factory = self.get_factory(key)
        context = StoreInitContext(
            logger=logger,
            config=config,
            transport=transport,
        )
        return factory(context)

    def snapshot(self) -> Mapping[str, StoreFactory]:
        """Return an immutable view of registered store factories."""

        return MappingProxyType(dict(self._factories))


if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from .milvus import MilvusStore, milvus_store_factory
    from .pinecone import PineconeStore, pinecone_store_factory


def __getattr__(name: str) -> object:
    if name in {"PineconeStore", "pinecone_store_factory"}:
        from . import pinecone

        return getattr(pinecone, name)
    if name in {"MilvusStore", "milvus_store_factory"}:
        from . import milvus

        return getattr(milvus, name)

    message = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(message)


def __dir__() -> list[str]:
    return sorted({*globals(), *__all__})


def register_builtin_stores(registry: StoreRegistry) -> StoreRegistry:
    """Register the Pinecone and Milvus backends on ``registry``."""

    from .milvus import milvus_store_factory
    from .pinecone import pinecone_store_factory

    builtins = {
        "pinecone": pinecone_store_factory,
        "milvus": milvus_store_factory,
    }
    registered = registry.snapshot()
    for key, factory in builtins.items():
        if key not in registered:
            registry.register(key, factory)
    return registry


def create_default_store_registry() -> StoreRegistry:
    """Return a store registry populated with built-in backends."""

    registry = StoreRegistry()
    register_builtin_stores(registry)
    return registry
