"""Exception hierarchy shared across recipe parsing, fetching, and patching.

A checksum refresh touches three very different layers: the shell-like recipe
language, the network, and the exact text of the recipe file.  This module
groups the failure modes of those layers into a small hierarchy so callers can
react to high-level categories (for example, a broken recipe vs. an
unreachable mirror) while still having access to the details that matter for
reporting, such as HTTP status codes or the field that could not be patched.
"""

from __future__ import annotations

from typing import Optional, Sequence

__all__ = [
    "ChecksumUpdateError",
    "ParseError",
    "ParseProblem",
    "ConfigError",
    "ResolutionError",
    "FetchError",
    "PatchError",
    "FieldNotFoundError",
    "TreeError",
    "ProgressCallbackError",
]


class ChecksumUpdateError(RuntimeError):
    """Base exception for checksum refresh failures."""


class ParseProblem:
    """Single line-level problem reported by the recipe parser."""

    __slots__ = ("line", "message")

    def __init__(self, line: int, message: str) -> None:
        self.line = line
        self.message = message

    def __repr__(self) -> str:
        return f"ParseProblem(line={self.line!r}, message={self.message!r})"

    def __str__(self) -> str:
        return f"line {self.line}: {self.message}"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ParseProblem):
            return NotImplemented
        return (self.line, self.message) == (other.line, other.message)


class ParseError(ChecksumUpdateError):
    """Raised when the recipe key=value grammar cannot be parsed."""

    def __init__(self, problems: Sequence[ParseProblem]) -> None:
        self.problems = tuple(problems)
        lines = [f"{index}. {problem}" for index, problem in enumerate(self.problems)]
        super().__init__("failed to parse recipe:\n" + "\n".join(lines))


class ConfigError(ChecksumUpdateError):
    """Raised when a source entry or runtime setting is malformed."""


class ResolutionError(ChecksumUpdateError):
    """Raised when a registry lookup does not yield a downloadable artifact."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class FetchError(ChecksumUpdateError):
    """Raised when downloading a source fails."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PatchError(ChecksumUpdateError):
    """Raised when a checksum field cannot be located or replaced in the text."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class TreeError(ChecksumUpdateError):
    """Raised when no ABBS tree can be found above a directory."""


class ProgressCallbackError(ChecksumUpdateError):
    """Raised when the caller-supplied progress callback fails."""


class FieldNotFoundError(PatchError):
    """Raised when a checksum field has no assignment in the recipe text."""
