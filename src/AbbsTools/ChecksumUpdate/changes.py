"""Order-insensitive change detection for checksum fields."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence

__all__ = ["changed_fields", "detect_changes", "field_changed", "merge_context"]

logger = logging.getLogger(__name__)


def field_changed(old_value: Optional[str], new_tokens: Sequence[str]) -> bool:
    """Return ``True`` when the multiset of tokens differs from ``old_value``.

    Order is ignored but counts are not, so ``SKIP`` against two VCS sources
    is a change.  A missing old value counts as empty, so an absent field
    compared against an empty result is not a change.

    Examples:
        >>> field_changed("sha256::b sha256::a", ["sha256::a", "sha256::b"])
        False
        >>> field_changed(None, ["SKIP"])
        True
        >>> field_changed("SKIP", ["SKIP", "SKIP"])
        True
    """

    old = Counter(token for token in (old_value or "").split() if token != "\\")
    return old != Counter(new_tokens)


def changed_fields(
    context: Mapping[str, str], new_fields: Mapping[str, Sequence[str]]
) -> List[str]:
    """Return the checksum fields whose token set differs from ``context``."""

    return [name for name, tokens in new_fields.items() if field_changed(context.get(name), tokens)]


def detect_changes(context: Mapping[str, str], new_fields: Mapping[str, Sequence[str]]) -> bool:
    """Return the global ``changed`` verdict for a refresh."""

    changed = changed_fields(context, new_fields)
    for name in changed:
        logger.info("checksum field changed", extra={"stage": "compare", "field": name})
    return bool(changed)


def merge_context(
    context: Mapping[str, str], new_fields: Mapping[str, Sequence[str]]
) -> Dict[str, str]:
    """Return a copy of ``context`` with checksum fields overwritten."""

    merged = dict(context)
    for name, tokens in new_fields.items():
        merged[name] = " ".join(tokens)
    return merged
