"""Tests for :mod:`siteembed.core.secrets`."""

from __future__ import annotations

import pytest

from siteembed.core.secrets import EnvSecretResolver, SecretResolver


def test_env_reference_reads_and_trims_environment() -> None:
    resolver = EnvSecretResolver({"OPENAI_API_KEY": "  sk-test \n"})

    assert resolver.resolve("env:OPENAI_API_KEY") == "sk-test"
    assert resolver.resolve(" env: OPENAI_API_KEY ") == "sk-test"


@pytest.mark.parametrize(
    "reference",
    [None, "", "   ", "env:", "env:MISSING", "env:BLANK"],
)
def test_unresolvable_references_return_none(reference: str | None) -> None:
    resolver = EnvSecretResolver({"BLANK": "   "})

    assert resolver.resolve(reference) is None


def test_literal_values_are_used_verbatim_after_trimming() -> None:
    resolver = EnvSecretResolver({})

    assert resolver.resolve("  literal-token ") == "literal-token"


def test_defaults_to_process_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("SITEEMBED_TEST_SECRET", "from-env")

    resolver = EnvSecretResolver()

    assert resolver.resolve("env:SITEEMBED_TEST_SECRET") == "from-env"
    assert isinstance(resolver, SecretResolver)
