"""Secret reference resolution for credentials held in configuration."""

from __future__ import annotations

import os
from typing import Mapping, Protocol, runtime_checkable

__all__ = [
    "ENV_PREFIX",
    "EnvSecretResolver",
    "SecretResolver",
]

ENV_PREFIX = "env:"


@runtime_checkable
class SecretResolver(Protocol):
    """Turn an opaque secret reference into its plain value."""

    def resolve(self, reference: str | None) -> str | None:
        """Return the secret for ``reference`` or ``None`` when unset."""


class EnvSecretResolver(SecretResolver):
    """Resolve ``env:NAME`` references against an environment mapping.

    Any other non-blank reference is treated as the literal secret value.

    Example:
        >>> resolver = EnvSecretResolver({"PINECONE_API_KEY": " pk-1 "})
        >>> resolver.resolve("env:PINECONE_API_KEY")
        'pk-1'
        >>> resolver.resolve("env:MISSING") is None
        True
        >>> resolver.resolve("literal-key")
        'literal-key'
    """

    def __init__(self, environ: Mapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def resolve(self, reference: str | None) -> str | None:
        if reference is None:
            return None
        stripped = reference.strip()
        if not stripped:
            return None
        if stripped.startswith(ENV_PREFIX):
            name = stripped[len(ENV_PREFIX):].strip()
            if not name:
                return None
            value = self._environ.get(name)
            if value is None:
                return None
            return value.strip() or None
        return stripped
