# === NAVMAP v1 ===
# {
#   "module": "AbbsTools.ChecksumUpdate.patcher",
#   "purpose": "Locate and rewrite checksum assignments without disturbing surrounding text",
#   "sections": [
#     {"id": "scanstate", "name": "ScanState", "anchor": "class-scanstate", "kind": "class"},
#     {"id": "patchspan", "name": "PatchSpan", "anchor": "class-patchspan", "kind": "class"},
#     {"id": "find-field-span", "name": "find_field_span", "anchor": "function-find-field-span", "kind": "function"},
#     {"id": "render-field", "name": "render_field", "anchor": "function-render-field", "kind": "function"},
#     {"id": "apply-patches", "name": "apply_patches", "anchor": "function-apply-patches", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Exact-text patching of checksum fields inside a recipe.

The recipe is never re-serialised.  Instead, the span of a single assignment
(``FIELD="...possibly multi-line..."``) is located in the raw text and only
that span is replaced.  Span detection is a small state machine:

``SEEKING`` ends when the assignment is found at the start of a line,
``IN_VALUE`` ends on the closing unescaped quote, and ``CONTINUATION`` is
entered whenever the value carries on to the next line, either through a
trailing backslash or through a bare newline inside the quotes.

Example:
    >>> apply_patches('A=1\\nCHKSUMS="SKIP"\\n', {"CHKSUMS": ["sha256::ab", "SKIP"]})
    'A=1\\nCHKSUMS="sha256::ab \\\\\\n         SKIP"\\n'
"""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from .errors import FieldNotFoundError, PatchError

__all__ = ["PatchSpan", "ScanState", "apply_patches", "find_field_span", "render_field"]

logger = logging.getLogger(__name__)

_QUOTES = ('"', "'")
_BARE_TERMINATORS = (" ", "\t", "\r", "\n", ";")


class ScanState(enum.Enum):
    """States of the assignment span scanner."""

    SEEKING = "seeking"
    IN_VALUE = "in_value"
    CONTINUATION = "continuation"
    DONE = "done"


@dataclass(frozen=True)
class PatchSpan:
    """Half-open range ``[start, end)`` covering ``FIELD=<value>`` in a text."""

    field: str
    start: int
    end: int
    quote: Optional[str] = None
    lines: int = 1

    def slice(self, text: str) -> str:
        return text[self.start : self.end]


def _assignment_pattern(field: str) -> "re.Pattern[str]":
    return re.compile(rf"^[ \t]*({re.escape(field)})=", re.MULTILINE)


def find_field_span(text: str, field: str) -> PatchSpan:
    """Return the span of the first ``field=`` assignment in ``text``.

    The assignment must start a line (leading blanks allowed), which keeps
    ``CHKSUMS`` from matching inside ``CHKSUMS__amd64`` or inside comments.

    Raises:
        FieldNotFoundError: If ``text`` has no assignment to ``field``.
        PatchError: If the quoted value is never closed.
    """

    match = _assignment_pattern(field).search(text)
    if match is None:
        raise FieldNotFoundError(f"field {field} not found in recipe", field=field)

    start = match.start(1)
    index = match.end()
    state = ScanState.SEEKING
    quote: Optional[str] = None
    lines = 1

    while state is not ScanState.DONE:
        char = text[index] if index < len(text) else ""

        if state is ScanState.SEEKING:
            if char in _QUOTES:
                quote = char
                state = ScanState.IN_VALUE
                index += 1
                continue
            # Bare (unquoted) value: it ends at the first unescaped blank.
            while index < len(text) and text[index] not in _BARE_TERMINATORS:
                if text[index] == "\\" and index + 1 < len(text):
                    if text[index + 1] == "\n":
                        lines += 1
                    index += 1
                index += 1
            state = ScanState.DONE
            continue

        if state is ScanState.CONTINUATION:
            lines += 1
            state = ScanState.IN_VALUE
            continue

        if char == "":
            raise PatchError(
                f"unterminated quoted value for {field} starting at offset {start}",
                field=field,
            )
        if char == quote:
            index += 1
            state = ScanState.DONE
        elif char == "\\" and quote == '"':
            following = text[index + 1 : index + 2]
            index += 2
            if following == "\n":
                state = ScanState.CONTINUATION
        elif char == "\n":
            index += 1
            state = ScanState.CONTINUATION
        else:
            index += 1

    return PatchSpan(field=field, start=start, end=index, quote=quote, lines=lines)


def render_field(field: str, tokens: Sequence[str]) -> str:
    """Render ``field`` as a double-quoted assignment with aligned continuations.

    Examples:
        >>> print(render_field("CHKSUMS", ["SKIP", "sha256::ab"]))
        CHKSUMS="SKIP \\
                 sha256::ab"
    """

    padding = " " * (len(field) + 2)
    return f'{field}="' + f" \\\n{padding}".join(tokens) + '"'


def _append_field(text: str, field: str, tokens: Sequence[str]) -> str:
    prefix = text if not text or text.endswith("\n") else text + "\n"
    return prefix + render_field(field, tokens) + "\n"


def apply_patches(
    text: str,
    new_fields: Mapping[str, Sequence[str]],
    *,
    append_missing: bool = False,
) -> str:
    """Replace the value of every field in ``new_fields`` inside ``text``.

    Each span is located on the already-patched text right before it is
    replaced, so earlier replacements never invalidate later offsets.

    Raises:
        FieldNotFoundError: If a field is absent and ``append_missing`` is false.
        PatchError: If a located value is malformed.
    """

    current = text
    for field, tokens in new_fields.items():
        try:
            span = find_field_span(current, field)
        except FieldNotFoundError:
            if not append_missing:
                raise
            logger.info(
                "appending new checksum field",
                extra={"stage": "patch", "field": field, "tokens": len(tokens)},
            )
            current = _append_field(current, field, tokens)
            continue
        logger.debug(
            "replace range: %s",
            span.slice(current),
            extra={"stage": "patch", "field": field, "start": span.start, "end": span.end},
        )
        current = current[: span.start] + render_field(field, tokens) + current[span.end :]
    return current
