"""Core utilities shared across :mod:`siteembed` modules.

The core namespace provides configuration loading, logging setup, secret
resolution and workspace path helpers so feature modules stay lightweight.
"""

from __future__ import annotations

from .config import AppConfig, load_config
from .logging import configure_logging, get_logger
from .paths import WorkspacePaths, resolve_workspace
from .secrets import EnvSecretResolver, SecretResolver

__all__ = [
    "AppConfig",
    "EnvSecretResolver",
    "SecretResolver",
    "WorkspacePaths",
    "configure_logging",
    "get_logger",
    "load_config",
    "resolve_workspace",
]
