"""OpenAI embeddings client used by the sync pipeline."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Callable, Protocol, runtime_checkable

import httpx
from openai import APIStatusError, OpenAI, OpenAIError

from siteembed.core.logging import Logger

from .errors import ConfigurationError, ProviderError
from .models import EmbeddingResult, EmbeddingUsage

if TYPE_CHECKING:  # pragma: no cover - type checker imports only
    from .settings import PipelineSettings

__all__ = [
    "EmbeddingClient",
    "OpenAIEmbeddingClient",
    "build_embedding_client",
]

_PROVIDER = "openai"


@runtime_checkable
class EmbeddingClient(Protocol):
    """Boundary contract for embedding providers."""

    def embed(self, text: str, *, model: str) -> EmbeddingResult:
        """Return the embedding for ``text`` produced by ``model``."""


def _extract_context(exc: BaseException) -> tuple[int | None, str | None]:
    status: int | None = None
    request_id: str | None = None

    if isinstance(exc, APIStatusError):
        status = exc.status_code
        request_id = exc.request_id
    elif isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code

    return status, request_id


class OpenAIEmbeddingClient(EmbeddingClient):
    """Embed single texts via the OpenAI embeddings API.

    Failures surface as :class:`ProviderError`; retrying is left to the work
    queue, so the SDK's own retry loop is disabled.
    """

    def __init__(
        self,
        *,
        logger: Logger,
        api_key: str | None = None,
        base_url: str | None = None,
        organization: str | None = None,
        timeout: float = 30.0,
        client: OpenAI | None = None,
        now: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.logger = logger
        self._now = now
        self._client = client or self._build_client(
            api_key=api_key,
            base_url=base_url,
            organization=organization,
            timeout=timeout,
        )

    @staticmethod
    def _build_client(
        *,
        api_key: str | None,
        base_url: str | None,
        organization: str | None,
        timeout: float,
    ) -> OpenAI:
        key = (api_key or "").strip()
        if not key:
            raise ConfigurationError(
                "OpenAI API key is not configured or could not be resolved.",
                setting="openai.api_key",
            )
        return OpenAI(
            api_key=key,
            base_url=base_url or None,
            organization=organization or None,
            timeout=timeout,
            max_retries=0,
        )

    def embed(self, text: str, *, model: str) -> EmbeddingResult:
        name = model.strip()
        if not name:
            raise ConfigurationError(
                "Embedding model cannot be blank.",
                setting="embeddings.model",
            )

        start = self._now()
        try:
            response = self._client.embeddings.create(model=name, input=text)
        except (OpenAIError, httpx.HTTPError) as exc:
            status, request_id = _extract_context(exc)
            self.logger.warning(
                "openai-embed-failed",
                provider=_PROVIDER,
                model=name,
                text_length=len(text),
                error_type=exc.__class__.__name__,
                status_code=status,
                request_id=request_id,
            )
            raise ProviderError(
                str(exc) or exc.__class__.__name__,
                provider=_PROVIDER,
                model=name,
                status_code=status,
                request_id=request_id,
            ) from exc

        result = self._parse_response(response, model=name)
        self.logger.info(
            "openai-embed-request",
            provider=_PROVIDER,
            model=result.model,
            text_length=len(text),
            dimension=result.dimension,
            tokens=result.usage.tokens,
            latency=self._now() - start,
        )
        return result

    @staticmethod
    def _parse_response(response: Any, *, model: str) -> EmbeddingResult:
        try:
            item = response.data[0]
            vector = tuple(float(value) for value in item.embedding)
        except (AttributeError, IndexError, TypeError, ValueError) as exc:
            raise ProviderError(
                "Malformed embeddings response from OpenAI.",
                provider=_PROVIDER,
                model=model,
            ) from exc

        if not vector:
            raise ProviderError(
                "OpenAI returned an empty embedding vector.",
                provider=_PROVIDER,
                model=model,
            )

        usage = getattr(response, "usage", None)
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        total_tokens = int(getattr(usage, "total_tokens", 0) or prompt_tokens)
        return EmbeddingResult(
            vector=vector,
            model=str(getattr(response, "model", None) or model),
            usage=EmbeddingUsage(
                prompt_tokens=prompt_tokens,
                total_tokens=total_tokens,
            ),
        )


def build_embedding_client(
    settings: PipelineSettings,
    *,
    logger: Logger,
    client: OpenAI | None = None,
) -> OpenAIEmbeddingClient:
    """Create the embeddings client described by resolved ``settings``."""

    return OpenAIEmbeddingClient(
        logger=logger,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        organization=settings.openai_organization,
        timeout=settings.openai_timeout,
        client=client,
    )
