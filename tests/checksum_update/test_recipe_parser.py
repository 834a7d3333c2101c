"""Tests for the recipe parser and its lenient fallback."""

from __future__ import annotations

import pytest

from AbbsTools.ChecksumUpdate.errors import ParseError
from AbbsTools.ChecksumUpdate.recipe import (
    LenientParse,
    StrictParse,
    expand_parameter,
    parse_lenient,
    parse_recipe,
    parse_strict,
)

KDE_SPEC = """VER=5.115.0
SRCS="tbl::https://download.kde.org/stable/frameworks/${VER%.*}/kiconthemes-$VER.tar.xz"
CHKSUMS="sha256::abc \\
         SKIP"
CHKUPDATE="anitya::id=8762"
"""

FONT_SPEC = """VER=3.113
SRCS="git::commit=tags/v$VER::https://github.com/lxgw/kose-font \\
      file::rename=XiaolaiSC-Regular.ttf::https://github.com/lxgw/kose-font/releases/download/v$VER/XiaolaiSC-Regular.ttf"
CHKSUMS="SKIP \\
         sha256::x"
"""


def test_parse_expands_variables_and_suffix_removal():
    context = parse_strict(KDE_SPEC)

    assert context["VER"] == "5.115.0"
    assert context["SRCS"] == (
        "tbl::https://download.kde.org/stable/frameworks/5.115/kiconthemes-5.115.0.tar.xz"
    )
    assert context["CHKUPDATE"] == "anitya::id=8762"


def test_parse_joins_backslash_continuations():
    context = parse_strict(FONT_SPEC)

    tokens = context["SRCS"].split()
    assert tokens == [
        "git::commit=tags/v3.113::https://github.com/lxgw/kose-font",
        "file::rename=XiaolaiSC-Regular.ttf::"
        "https://github.com/lxgw/kose-font/releases/download/v3.113/XiaolaiSC-Regular.ttf",
    ]
    assert context["CHKSUMS"].split() == ["SKIP", "sha256::x"]


def test_parse_handles_quotes_comments_and_unknown_variables():
    text = (
        "# leading comment\n"
        "\n"
        "A='$VER literal'\n"
        'B="say \\"hi\\"" # trailing comment\n'
        "C=bare$UNKNOWN\n"
        "D=\n"
        'E="multi\n'
        'line"\n'
    )

    context = parse_strict(text)

    assert context == {
        "A": "$VER literal",
        "B": 'say "hi"',
        "C": "bare",
        "D": "",
        "E": "multi\nline",
    }


def test_parse_reports_every_problem():
    text = 'GOOD=1\nthis is not valid\nALSO bad\nFINE="ok"\n'

    with pytest.raises(ParseError) as excinfo:
        parse_strict(text)

    lines = [problem.line for problem in excinfo.value.problems]
    assert lines == [2, 3]
    assert "line 2" in str(excinfo.value)


def test_parse_reports_unterminated_quote():
    with pytest.raises(ParseError) as excinfo:
        parse_strict('A=1\nCHKSUMS="sha256::abc\n')

    (problem,) = excinfo.value.problems
    assert problem.line == 2
    assert "unterminated" in problem.message


def test_parse_rejects_arrays_and_command_substitution():
    with pytest.raises(ParseError) as excinfo:
        parse_strict("A=(one two)\nB=$(date)\n")

    assert len(excinfo.value.problems) == 2


@pytest.mark.parametrize(
    ("expression", "variables", "expected"),
    [
        ("VER%%.*", {"VER": "1.2.3"}, "1"),
        ("VER#*.", {"VER": "1.2.3"}, "2.3"),
        ("VER##*.", {"VER": "1.2.3"}, "3"),
        ("VER/./_", {"VER": "1.2.3"}, "1_2.3"),
        ("VER//./_", {"VER": "1.2.3"}, "1_2_3"),
        ("VER:2", {"VER": "1.2.3"}, "2.3"),
        ("VER:0:3", {"VER": "1.2.3"}, "1.2"),
        ("NAME^^", {"NAME": "abc"}, "ABC"),
        ("NAME,,", {"NAME": "AbC"}, "abc"),
        ("MISSING:-fallback", {}, "fallback"),
        ("VER%[0-9]", {"VER": "1.2.3"}, "1.2."),
    ],
)
def test_expand_parameter(expression, variables, expected):
    assert expand_parameter(expression, variables) == expected


def test_expand_parameter_rejects_unknown_operator():
    with pytest.raises(ValueError):
        expand_parameter("VER@Q", {"VER": "1"})


def test_parse_recipe_is_strict_by_default():
    outcome = parse_recipe(KDE_SPEC)

    assert isinstance(outcome, StrictParse)
    assert outcome.lenient is False

    with pytest.raises(ParseError):
        parse_recipe('A="x"\nfoo bar\n')


def test_parse_recipe_falls_back_when_allowed():
    outcome = parse_recipe('A="x"\nfoo bar\nCHKSUMS="SKIP"\n', allow_fallback=True)

    assert isinstance(outcome, LenientParse)
    assert outcome.lenient is True
    assert outcome.context == {"A": "x", "CHKSUMS": "SKIP"}
    assert outcome.warnings and "line 2" in outcome.warnings[0]


def test_parse_lenient_joins_continued_lines():
    context = parse_lenient('SRCS="a \\\n     b"\n# X=1\n')

    assert context["SRCS"].split() == ["a", "b"]
    assert "# X" not in context
