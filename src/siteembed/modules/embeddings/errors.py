"""Typed error hierarchy for the embeddings pipeline."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "SiteEmbedError",
    "ConfigurationError",
    "ProviderError",
    "VectorStoreError",
    "GuardRejection",
]


class SiteEmbedError(RuntimeError):
    """Base error raised by the embeddings pipeline."""


@dataclass(slots=True)
class ConfigurationError(SiteEmbedError):
    """Raised when required settings are missing or malformed.

    Raised before any network call and never retried.
    """

    message: str
    setting: str | None = None

    def __post_init__(self) -> None:
        SiteEmbedError.__init__(self, self.message)


@dataclass(slots=True)
class ProviderError(SiteEmbedError):
    """Raised when the embedding provider call fails."""

    message: str
    provider: str
    model: str
    status_code: int | None = None
    request_id: str | None = None

    def __post_init__(self) -> None:
        SiteEmbedError.__init__(self, self.message)


@dataclass(slots=True)
class VectorStoreError(SiteEmbedError):
    """Raised for vector database transport, validation or backend failures."""

    message: str
    backend: str
    operation: str
    status_code: int | None = None

    def __post_init__(self) -> None:
        SiteEmbedError.__init__(self, self.message)


@dataclass(slots=True)
class GuardRejection(SiteEmbedError):
    """Raised when configuration policy disallows an operation."""

    message: str
    backend: str
    operation: str

    def __post_init__(self) -> None:
        SiteEmbedError.__init__(self, self.message)
