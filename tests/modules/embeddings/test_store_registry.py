from __future__ import annotations

import httpx
import pytest

from siteembed.modules.embeddings.errors import ConfigurationError
from siteembed.modules.embeddings.stores import (
    StoreInitContext,
    StoreNotRegisteredError,
    StoreRegistry,
    StoreRegistryError,
    create_default_store_registry,
)
from siteembed.modules.embeddings.stores.milvus import MilvusStore
from siteembed.modules.embeddings.stores.pinecone import PineconeStore


def test_default_registry_exposes_builtin_backends() -> None:
    registry = create_default_store_registry()

    assert sorted(registry.snapshot()) == ["milvus", "pinecone"]


def test_create_builds_store_from_plain_config(logger) -> None:
    registry = create_default_store_registry()
    transport = httpx.MockTransport(lambda request: httpx.Response(200))

    store = registry.create(
        " Pinecone ",
        logger=logger,
        config={
            "hostname": "https://index.pinecone.io",
            "api_key": "pk",
            "disable_namespace": True,
        },
        transport=transport,
    )

    assert isinstance(store, PineconeStore)
    assert store.disable_namespace is True

    milvus = registry.create(
        "milvus",
        logger=logger,
        config={"hostname": "http://localhost:19530", "token": "t", "dimension": 8},
    )
    assert isinstance(milvus, MilvusStore)
    assert milvus.dimension == 8


@pytest.mark.parametrize("key", [None, "", "  "])
def test_blank_plugin_is_a_configuration_error(logger, key) -> None:
    registry = create_default_store_registry()

    with pytest.raises(ConfigurationError) as excinfo:
        registry.create(key, logger=logger)

    assert excinfo.value.setting == "embeddings.vector_client_plugin"


def test_unknown_plugin_lists_available_backends(logger) -> None:
    registry = create_default_store_registry()

    with pytest.raises(StoreNotRegisteredError, match="milvus, pinecone"):
        registry.create("weaviate", logger=logger)


def test_register_rejects_duplicates_and_supports_unregister() -> None:
    def factory(context: StoreInitContext):
        raise AssertionError("not called")

    registry = StoreRegistry({"custom": factory})

    with pytest.raises(StoreRegistryError):
        registry.register("CUSTOM", factory)

    registry.unregister("custom")
    assert dict(registry.snapshot()) == {}


def test_init_context_freezes_config(logger) -> None:
    source = {"hostname": "https://x"}
    context = StoreInitContext(logger=logger, config=source)
    source["hostname"] = "changed"

    assert context.config["hostname"] == "https://x"
    with pytest.raises(TypeError):
        context.config["hostname"] = "y"  # type: ignore[index]
