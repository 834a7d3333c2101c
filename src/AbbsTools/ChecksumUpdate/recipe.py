"""Parse ABBS recipe (``spec``) files into a field context.

Recipes are written in a small subset of shell: one ``NAME=value`` assignment
per logical line, where values may be double-quoted, single-quoted, or bare,
may span lines through backslash continuations, and may reference earlier
assignments through ``$NAME`` / ``${NAME...}`` parameter expansion.

Two parsing stages are offered.  :func:`parse_strict` understands the grammar
above and reports every problem it finds as a single :class:`ParseError`.
:func:`parse_lenient` is a naive ``KEY=value`` line splitter that never fails.
:func:`parse_recipe` ties both together and returns a tagged result so callers
can tell which stage produced the context.

Example:
    >>> outcome = parse_recipe('VER=1.2\\nSRCS="tbl::https://x.org/a-$VER.tar.gz"\\n')
    >>> outcome.context["SRCS"]
    'tbl::https://x.org/a-1.2.tar.gz'
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .errors import ParseError, ParseProblem

__all__ = [
    "LenientParse",
    "ParseOutcome",
    "StrictParse",
    "expand_parameter",
    "parse_lenient",
    "parse_recipe",
    "parse_strict",
]

logger = logging.getLogger(__name__)

_NAME_START = re.compile(r"[A-Za-z_]")
_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_DQUOTE_ESCAPABLE = {"$", "`", '"', "\\"}


@dataclass(frozen=True)
class StrictParse:
    """Context produced by the full recipe grammar."""

    context: Dict[str, str]

    @property
    def lenient(self) -> bool:
        return False


@dataclass(frozen=True)
class LenientParse:
    """Context produced by naive line splitting after the strict parser failed."""

    context: Dict[str, str]
    warnings: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def lenient(self) -> bool:
        return True


ParseOutcome = Union[StrictParse, LenientParse]


# ---------------------------------------------------------------------------
# Parameter expansion
# ---------------------------------------------------------------------------


def _glob_to_regex(pattern: str) -> "re.Pattern[str]":
    parts: List[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        elif char == "[":
            end = pattern.find("]", index + 1)
            if end <= index + 1:
                parts.append(re.escape(char))
            else:
                body = pattern[index + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                parts.append(f"[{body}]")
                index = end
        elif char == "\\" and index + 1 < len(pattern):
            index += 1
            parts.append(re.escape(pattern[index]))
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts), re.DOTALL)


def _remove_suffix(value: str, pattern: str, longest: bool) -> str:
    regex = _glob_to_regex(pattern)
    starts = range(len(value) + 1) if longest else range(len(value), -1, -1)
    for start in starts:
        if regex.fullmatch(value[start:]):
            return value[:start]
    return value


def _remove_prefix(value: str, pattern: str, longest: bool) -> str:
    regex = _glob_to_regex(pattern)
    ends = range(len(value), -1, -1) if longest else range(len(value) + 1)
    for end in ends:
        if regex.fullmatch(value[:end]):
            return value[end:]
    return value


def _replace(value: str, pattern: str, replacement: str, every: bool) -> str:
    if not pattern:
        return value
    regex = _glob_to_regex(pattern)
    result: List[str] = []
    index = 0
    replaced = False
    while index <= len(value):
        match_end: Optional[int] = None
        if not replaced or every:
            for end in range(len(value), index, -1):
                if regex.fullmatch(value[index:end]):
                    match_end = end
                    break
        if match_end is None:
            if index < len(value):
                result.append(value[index])
            index += 1
            continue
        result.append(replacement)
        replaced = True
        index = match_end
    return "".join(result)


def _split_unescaped(text: str, separator: str) -> Tuple[str, Optional[str]]:
    index = 0
    while index < len(text):
        if text[index] == "\\":
            index += 2
            continue
        if text[index] == separator:
            return text[:index], text[index + 1 :]
        index += 1
    return text, None


def expand_parameter(expression: str, variables: Dict[str, str]) -> str:
    """Evaluate the body of a ``${...}`` expansion against ``variables``.

    Raises:
        ValueError: If the expression is not a supported substitution.

    Examples:
        >>> expand_parameter("VER%.*", {"VER": "5.115.0"})
        '5.115'
        >>> expand_parameter("VER//./_", {"VER": "1.2.3"})
        '1_2_3'
    """

    match = _NAME.match(expression)
    if match is None:
        raise ValueError(f"bad substitution: ${{{expression}}}")
    name = match.group(0)
    value = variables.get(name, "")
    rest = expression[match.end() :]

    def sub(text: str) -> str:
        return _expand_plain(text, variables)

    if not rest:
        return value
    if rest.startswith("%%"):
        return _remove_suffix(value, sub(rest[2:]), longest=True)
    if rest.startswith("%"):
        return _remove_suffix(value, sub(rest[1:]), longest=False)
    if rest.startswith("##"):
        return _remove_prefix(value, sub(rest[2:]), longest=True)
    if rest.startswith("#"):
        return _remove_prefix(value, sub(rest[1:]), longest=False)
    if rest.startswith("//") or rest.startswith("/"):
        every = rest.startswith("//")
        body = rest[2:] if every else rest[1:]
        pattern, replacement = _split_unescaped(body, "/")
        return _replace(value, sub(pattern), sub(replacement or ""), every)
    if rest.startswith(":-"):
        return value if value else sub(rest[2:])
    if rest == "^^":
        return value.upper()
    if rest == ",,":
        return value.lower()
    if rest == "^":
        return value[:1].upper() + value[1:]
    if rest == ",":
        return value[:1].lower() + value[1:]
    if rest.startswith(":"):
        offset_text, _, length_text = rest[1:].partition(":")
        try:
            offset = int(offset_text.strip() or "0")
            length = int(length_text.strip()) if length_text.strip() else None
        except ValueError as exc:
            raise ValueError(f"bad substitution: ${{{expression}}}") from exc
        if offset < 0:
            offset = max(len(value) + offset, 0)
        if length is None:
            return value[offset:]
        if length < 0:
            return value[offset : len(value) + length]
        return value[offset : offset + length]
    raise ValueError(f"bad substitution: ${{{expression}}}")


def _expand_plain(text: str, variables: Dict[str, str]) -> str:
    """Expand ``$NAME`` and ``${...}`` references inside an already-unquoted string."""

    result: List[str] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char != "$":
            result.append(char)
            index += 1
            continue
        if text.startswith("${", index):
            end = _find_brace_end(text, index + 2)
            if end is None:
                raise ValueError("unterminated ${")
            result.append(expand_parameter(text[index + 2 : end], variables))
            index = end + 1
            continue
        match = _NAME.match(text, index + 1)
        if match is None:
            result.append(char)
            index += 1
            continue
        result.append(variables.get(match.group(0), ""))
        index = match.end()
    return "".join(result)


def _find_brace_end(text: str, start: int) -> Optional[int]:
    depth = 1
    index = start
    while index < len(text):
        char = text[index]
        if char == "\\":
            index += 2
            continue
        if text.startswith("${", index):
            depth += 1
            index += 2
            continue
        if char == "}":
            depth -= 1
            if depth == 0:
                return index
        index += 1
    return None


# ---------------------------------------------------------------------------
# Strict parser
# ---------------------------------------------------------------------------


class _Abort(Exception):
    """Internal signal: the current statement cannot be parsed further."""


class _RecipeParser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.line = 1
        self.context: Dict[str, str] = {}
        self.problems: List[ParseProblem] = []

    # -- cursor helpers -----------------------------------------------------

    def _peek(self, offset: int = 0) -> str:
        index = self.pos + offset
        return self.text[index] if index < len(self.text) else ""

    def _advance(self, count: int = 1) -> str:
        chunk = self.text[self.pos : self.pos + count]
        self.line += chunk.count("\n")
        self.pos += len(chunk)
        return chunk

    def _error(self, message: str, line: Optional[int] = None) -> _Abort:
        self.problems.append(ParseProblem(line if line is not None else self.line, message))
        return _Abort()

    def _skip_line(self) -> None:
        while self.pos < len(self.text) and self._peek() != "\n":
            if self._peek() == "\\" and self._peek(1) == "\n":
                self._advance(2)
                continue
            self._advance()

    # -- grammar ------------------------------------------------------------

    def parse(self) -> Dict[str, str]:
        while self.pos < len(self.text):
            char = self._peek()
            if char in " \t\r\n;":
                self._advance()
                continue
            if char == "#":
                self._skip_line()
                continue
            try:
                self._statement()
            except _Abort:
                self._skip_line()
        if self.problems:
            raise ParseError(self.problems)
        return self.context

    def _statement(self) -> None:
        match = _NAME.match(self.text, self.pos)
        if match is None or self.text[match.end() : match.end() + 1] != "=":
            raise self._error("expected NAME=value assignment")
        name = match.group(0)
        self._advance(match.end() - self.pos + 1)
        if self._peek() == "(":
            raise self._error(f"array assignment to {name} is not supported")
        value = self._word()
        self._end_of_statement()
        self.context[name] = value

    def _end_of_statement(self) -> None:
        while self._peek() in (" ", "\t", "\r"):
            self._advance()
        char = self._peek()
        if char in ("", "\n", ";"):
            return
        if char == "#":
            self._skip_line()
            return
        raise self._error(f"unexpected content after value: {char!r}")

    def _word(self) -> str:
        parts: List[str] = []
        while True:
            char = self._peek()
            if char in ("", " ", "\t", "\r", "\n", ";"):
                return "".join(parts)
            if char == '"':
                parts.append(self._double_quoted())
            elif char == "'":
                parts.append(self._single_quoted())
            elif char == "\\":
                if self._peek(1) == "\n":
                    self._advance(2)
                    continue
                self._advance()
                parts.append(self._advance())
            elif char == "$":
                parts.append(self._dollar())
            elif char == "`":
                raise self._error("command substitution is not supported")
            else:
                parts.append(self._advance())

    def _double_quoted(self) -> str:
        start_line = self.line
        self._advance()
        parts: List[str] = []
        while True:
            char = self._peek()
            if char == "":
                raise self._error("unterminated double-quoted string", start_line)
            if char == '"':
                self._advance()
                return "".join(parts)
            if char == "\\":
                following = self._peek(1)
                if following == "\n":
                    self._advance(2)
                elif following in _DQUOTE_ESCAPABLE:
                    self._advance()
                    parts.append(self._advance())
                else:
                    parts.append(self._advance())
                continue
            if char == "$":
                parts.append(self._dollar())
                continue
            if char == "`":
                raise self._error("command substitution is not supported")
            parts.append(self._advance())

    def _single_quoted(self) -> str:
        start_line = self.line
        self._advance()
        end = self.text.find("'", self.pos)
        if end == -1:
            self.pos = len(self.text)
            raise self._error("unterminated single-quoted string", start_line)
        return self._advance(end - self.pos + 1)[:-1]

    def _dollar(self) -> str:
        following = self._peek(1)
        if following == "{":
            start_line = self.line
            end = _find_brace_end(self.text, self.pos + 2)
            if end is None:
                self.pos = len(self.text)
                raise self._error("unterminated ${...} expansion", start_line)
            expression = self._advance(end - self.pos + 1)[2:-1]
            try:
                return expand_parameter(expression, self.context)
            except ValueError as exc:
                raise self._error(str(exc), start_line) from None
        if following == "(":
            raise self._error("command substitution is not supported")
        match = _NAME.match(self.text, self.pos + 1)
        if match is None:
            return self._advance()
        self._advance(match.end() - self.pos)
        return self.context.get(match.group(0), "")


def parse_strict(text: str) -> Dict[str, str]:
    """Parse ``text`` with the full recipe grammar.

    Raises:
        ParseError: With every problem encountered, one entry per statement.
    """

    return _RecipeParser(text).parse()


def parse_lenient(text: str) -> Dict[str, str]:
    """Split ``text`` into ``KEY=value`` pairs without honouring shell syntax.

    Backslash-continued lines are joined first; double quotes are dropped from
    values and no expansion takes place.
    """

    context: Dict[str, str] = {}
    joined = re.sub(r"\\\n", " ", text)
    for line in joined.split("\n"):
        if line.lstrip().startswith("#"):
            continue
        name, sep, value = line.partition("=")
        if not sep:
            continue
        context[name.strip()] = value.replace('"', "")
    return context


def parse_recipe(text: str, *, allow_fallback: bool = False) -> ParseOutcome:
    """Parse ``text`` strictly, degrading to :func:`parse_lenient` on request.

    Returns:
        :class:`StrictParse` when the grammar accepted the recipe, otherwise
        :class:`LenientParse` carrying the strict parser's problems as warnings.

    Raises:
        ParseError: If strict parsing fails and ``allow_fallback`` is false.
    """

    try:
        return StrictParse(parse_strict(text))
    except ParseError as exc:
        if not allow_fallback:
            raise
        warnings = tuple(str(problem) for problem in exc.problems)
        logger.warning(
            "recipe failed to parse, using fallback method",
            extra={"stage": "parse", "problems": list(warnings)},
        )
        return LenientParse(parse_lenient(text), warnings)
