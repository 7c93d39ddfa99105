"""Turn rich-text field values into plain embedding input."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Iterable

from bs4 import BeautifulSoup

__all__ = [
    "DEFAULT_MAX_LENGTH",
    "DEFAULT_REMOVE_ELEMENTS",
    "TextPreparer",
    "parse_stopwords",
    "prepare_text",
    "remove_stopwords",
]

DEFAULT_MAX_LENGTH = 10_000
DEFAULT_REMOVE_ELEMENTS: frozenset[str] = frozenset(
    {"pre", "code", "script", "iframe"}
)

_WHITESPACE_RE = re.compile(r"\s+")
# Word characters, basic terminal punctuation, quotes and the space.
_DISALLOWED_RE = re.compile(r"[^\w.?!,'\" ]")


def _normalize_elements(elements: Iterable[str]) -> frozenset[str]:
    return frozenset(
        name.strip().lower() for name in elements if name and name.strip()
    )


def prepare_text(
    raw_html: str,
    remove_elements: Iterable[str] = (),
    max_length: int = DEFAULT_MAX_LENGTH,
) -> str:
    """Strip markup from ``raw_html`` and bound it to ``max_length`` chars.

    Elements in :data:`DEFAULT_REMOVE_ELEMENTS` plus ``remove_elements`` are
    dropped together with their text. Characters outside the allowed class
    are deleted, and truncation is a hard cut.

    Example:
        >>> prepare_text("<div>Hello <script>bad()</script> World!</div>")
        'Hello World!'
    """

    if max_length < 1:
        raise ValueError("max_length must be >= 1")

    elements = DEFAULT_REMOVE_ELEMENTS | _normalize_elements(remove_elements)
    soup = BeautifulSoup(f"<div>{raw_html}</div>", "html.parser")
    for node in soup.find_all(sorted(elements)):
        if not node.decomposed:
            node.decompose()

    text = soup.get_text()
    text = _WHITESPACE_RE.sub(" ", text)
    text = _DISALLOWED_RE.sub("", text)
    return text[:max_length].strip()


def remove_stopwords(text: str, stopwords: Iterable[str]) -> str:
    """Remove each stop-word by whole-word, case-insensitive match.

    Example:
        >>> remove_stopwords("The cat and THE hat", ["the"])
        'cat and hat'
    """

    result = text.strip()
    for word in stopwords:
        word = word.strip()
        if not word:
            continue
        pattern = re.compile(rf"\b{re.escape(word)}\b", re.IGNORECASE)
        result = pattern.sub("", result).strip()
    return _WHITESPACE_RE.sub(" ", result)


def parse_stopwords(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """Split a comma-separated stop-word list, trimming every entry.

    Example:
        >>> parse_stopwords(" a, the ,,of ")
        ('a', 'the', 'of')
    """

    if raw is None:
        return ()
    parts = raw.split(",") if isinstance(raw, str) else raw
    return tuple(part.strip() for part in parts if part and part.strip())


@dataclass(frozen=True, slots=True)
class TextPreparer:
    """Configured cleaning step applied to every field value."""

    remove_elements: frozenset[str] = frozenset()
    max_length: int = DEFAULT_MAX_LENGTH
    stopwords: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.max_length < 1:
            raise ValueError("max_length must be >= 1")
        object.__setattr__(
            self, "remove_elements", _normalize_elements(self.remove_elements)
        )
        object.__setattr__(self, "stopwords", parse_stopwords(self.stopwords))

    def prepare(self, raw_html: str) -> str:
        text = prepare_text(raw_html, self.remove_elements, self.max_length)
        if self.stopwords:
            text = remove_stopwords(text, self.stopwords)
        return text
