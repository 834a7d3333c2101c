"""Locate an ABBS tree and the ``spec`` files of packages inside it.

An ABBS tree is recognised by its top-level ``groups`` directory.  Packages
live two levels below the root, as ``<section>/<package>/spec``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import TreeError

__all__ = ["SpecLookup", "find_spec_files", "find_tree"]

logger = logging.getLogger(__name__)

SPEC_FILENAME = "spec"


@dataclass(frozen=True)
class SpecLookup:
    """Spec files found for the requested packages, plus the ones not found."""

    specs: Tuple[Path, ...] = field(default_factory=tuple)
    missing: Tuple[str, ...] = field(default_factory=tuple)


def find_tree(directory: Path) -> Path:
    """Return the closest ancestor of ``directory`` (inclusive) holding ``groups``.

    Raises:
        TreeError: If no ancestor up to the filesystem root qualifies.
    """

    start = directory.resolve()
    for candidate in (start, *start.parents):
        if (candidate / "groups").is_dir():
            return candidate
    raise TreeError(f"Failed to get ABBS tree from {directory}")


def find_spec_files(tree: Path, packages: Iterable[str]) -> SpecLookup:
    """Return the spec files of ``packages`` in request order.

    Sections and packages are visited in sorted order so that a package name
    present in several sections resolves deterministically to the first one.
    """

    wanted = list(dict.fromkeys(packages))
    found = {}
    sections = sorted(p for p in tree.iterdir() if p.is_dir() and not p.name.startswith("."))
    for section in sections:
        for package_dir in sorted(p for p in section.iterdir() if p.is_dir()):
            name = package_dir.name
            if name in wanted and name not in found:
                found[name] = package_dir / SPEC_FILENAME
        if len(found) == len(wanted):
            break

    specs: List[Path] = []
    missing: List[str] = []
    for name in wanted:
        if name in found:
            specs.append(found[name])
        else:
            missing.append(name)
            logger.warning("package not found in tree", extra={"stage": "tree", "package": name})
    return SpecLookup(specs=tuple(specs), missing=tuple(missing))
