"""Refresh source checksums recorded in ABBS package spec files.

The package resolves every ``SRCS`` entry of a recipe to its download bytes,
hashes them with bounded concurrency, and rewrites the matching ``CHKSUMS``
field in place without touching the rest of the file.

Example:
    >>> from AbbsTools.ChecksumUpdate import refresh
    >>> new_text, changed = refresh(spec_text, max_concurrency=4)  # doctest: +SKIP
"""

from __future__ import annotations

__version__ = "0.3.0"

from .core import RefreshResult, UpdateResult, refresh, refresh_async, update_from_str
from .errors import (
    ChecksumUpdateError,
    ConfigError,
    FetchError,
    FieldNotFoundError,
    ParseError,
    PatchError,
    ProgressCallbackError,
    ResolutionError,
    TreeError,
)
from .progress import ProgressChannel, ProgressEvent
from .settings import ChecksumUpdateConfiguration, build_config, get_default_config

__all__ = [
    "__version__",
    "ChecksumUpdateConfiguration",
    "ChecksumUpdateError",
    "ConfigError",
    "FetchError",
    "FieldNotFoundError",
    "ParseError",
    "PatchError",
    "ProgressCallbackError",
    "ProgressChannel",
    "ProgressEvent",
    "RefreshResult",
    "ResolutionError",
    "TreeError",
    "UpdateResult",
    "build_config",
    "get_default_config",
    "refresh",
    "refresh_async",
    "update_from_str",
]
