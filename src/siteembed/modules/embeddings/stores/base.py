"""Shared vector store contract and HTTP plumbing."""

from __future__ import annotations

import time
from typing import Any, Callable, ClassVar, Mapping, Protocol, Sequence
from typing import runtime_checkable
from urllib.parse import urlsplit

import httpx

from siteembed.core.logging import Logger, redact

from ..errors import ConfigurationError, VectorStoreError
from ..models import Filters, PartitionStats, VectorMatch, VectorRecord

__all__ = [
    "VectorStore",
    "VectorStoreBase",
    "normalize_filters",
    "require_setting",
    "sanitize_hostname",
]


@runtime_checkable
class VectorStore(Protocol):
    """Boundary contract shared by vector database backends."""

    def upsert(
        self,
        collection: str,
        records: Sequence[VectorRecord],
    ) -> None:
        """Insert or replace ``records`` keyed by their source id."""

    def delete(
        self,
        collection: str,
        ids: Sequence[str] = (),
        *,
        filters: Filters | None = None,
    ) -> None:
        """Remove records matching ``ids`` or ``filters``."""

    def delete_all(self, collection: str) -> None:
        """Remove every record held by ``collection``."""

    def query(
        self,
        collection: str,
        vector: Sequence[float],
        *,
        top_k: int = 5,
        filters: Filters | None = None,
        include_metadata: bool = False,
    ) -> tuple[VectorMatch, ...]:
        """Return the ``top_k`` nearest records ranked by score."""

    def fetch(
        self,
        collection: str,
        ids: Sequence[str],
    ) -> tuple[VectorRecord, ...]:
        """Return stored records for the given source ids."""

    def stats(self, collection: str | None = None) -> tuple[PartitionStats, ...]:
        """Return record counts per namespace or collection."""

    def close(self) -> None:
        """Release transport resources."""


def require_setting(value: str | None, *, setting: str) -> str:
    """Return the trimmed ``value`` or raise when it is blank."""

    result = (value or "").strip()
    if not result:
        raise ConfigurationError(
            f"{setting} is not configured or could not be resolved.",
            setting=setting,
        )
    return result


def sanitize_hostname(value: str | None, *, setting: str) -> str:
    """Validate a base URL, trimming whitespace and trailing slashes.

    Example:
        >>> sanitize_hostname(" https://db.example.com:19530/ ", setting="h")
        'https://db.example.com:19530'
    """

    hostname = require_setting(value, setting=setting).rstrip("/")
    parts = urlsplit(hostname)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ConfigurationError(
            f"{setting} must be an absolute http(s) URL (got {hostname!r}).",
            setting=setting,
        )
    return hostname


def normalize_filters(
    filters: Filters | None,
    *,
    backend: str,
    operation: str,
) -> dict[str, Any]:
    """Return ``filters`` with list values as tuples, rejecting bad keys."""

    normalized: dict[str, Any] = {}
    for key, value in (filters or {}).items():
        name = str(key).strip()
        if not name:
            raise VectorStoreError(
                "Filter field names cannot be blank.",
                backend=backend,
                operation=operation,
            )
        if isinstance(value, (list, tuple, set, frozenset)):
            values = tuple(value)
            if not values:
                raise VectorStoreError(
                    f"Filter {name!r} needs at least one value.",
                    backend=backend,
                    operation=operation,
                )
            normalized[name] = values
        else:
            normalized[name] = value
    return normalized


class VectorStoreBase(VectorStore):
    """HTTP transport, validation and logging shared by backends."""

    backend: ClassVar[str] = ""

    def __init__(
        self,
        *,
        logger: Logger,
        hostname: str,
        headers: Mapping[str, str],
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.logger = logger
        self.hostname = hostname
        self._headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            **headers,
        }
        self._timeout = timeout
        self._transport = transport
        self._now = now
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.hostname,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "VectorStoreBase":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _error(
        self,
        message: str,
        *,
        operation: str,
        status_code: int | None = None,
    ) -> VectorStoreError:
        return VectorStoreError(
            message,
            backend=self.backend,
            operation=operation,
            status_code=status_code,
        )

    def _require_collection(self, collection: str | None, operation: str) -> str:
        name = (collection or "").strip()
        if not name:
            raise self._error(
                f"A collection name is required by {self.backend}.",
                operation=operation,
            )
        return name

    def _require_selector(
        self,
        ids: Sequence[str],
        filters: Filters | None,
        operation: str,
    ) -> tuple[tuple[str, ...], dict[str, Any]]:
        cleaned = tuple(str(item).strip() for item in ids if str(item).strip())
        normalized = normalize_filters(
            filters, backend=self.backend, operation=operation
        )
        if not cleaned and not normalized:
            raise self._error(
                "Either ids or filters must be provided.",
                operation=operation,
            )
        if cleaned and normalized:
            raise self._error(
                "Pass either ids or filters, not both.",
                operation=operation,
            )
        return cleaned, normalized

    def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """Send one request and return the decoded JSON body.

        ``context`` holds loggable parameters; it is redacted before logging
        and never includes vectors.
        """

        log_context = redact(dict(context or {}))
        start = self._now()
        try:
            response = self.client.request(method, path, json=json, params=params)
        except httpx.HTTPError as exc:
            self.logger.error(
                "vector-store-request-failed",
                backend=self.backend,
                operation=operation,
                error_type=exc.__class__.__name__,
                error=str(exc),
                **log_context,
            )
            raise self._error(
                f"{self.backend} {operation} request failed: {exc}",
                operation=operation,
            ) from exc

        latency = self._now() - start
        if response.is_error:
            self.logger.error(
                "vector-store-request-failed",
                backend=self.backend,
                operation=operation,
                status_code=response.status_code,
                latency=latency,
                **log_context,
            )
            raise self._error(
                f"{self.backend} {operation} returned HTTP "
                f"{response.status_code}: {response.text[:200]}",
                operation=operation,
                status_code=response.status_code,
            )

        self.logger.info(
            "vector-store-request",
            backend=self.backend,
            operation=operation,
            status_code=response.status_code,
            latency=latency,
            **log_context,
        )
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise self._error(
                f"{self.backend} {operation} returned an undecodable body.",
                operation=operation,
                status_code=response.status_code,
            ) from exc
