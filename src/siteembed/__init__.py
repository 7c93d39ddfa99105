"""Top-level package for :mod:`siteembed`.

The package keeps CMS content embeddings in sync with an external vector
database and exposes version metadata for downstream tooling.

Example:
    >>> from siteembed import __version__
    >>> __version__.split(".")[0]
    '0'
"""

from importlib import metadata

try:
    __version__ = metadata.version("siteembed")
except metadata.PackageNotFoundError:  # pragma: no cover - fallback for editable installs
    __version__ = "0.0.0"

__all__ = ["__version__"]
