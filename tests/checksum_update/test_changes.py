"""Tests for order-insensitive change detection."""

from __future__ import annotations

import pytest

from AbbsTools.ChecksumUpdate.changes import (
    changed_fields,
    detect_changes,
    field_changed,
    merge_context,
)


@pytest.mark.parametrize(
    ("old", "new", "expected"),
    [
        ("sha256::a sha256::b", ["sha256::b", "sha256::a"], False),
        ("sha256::a  \\\n   SKIP", ["SKIP", "sha256::a"], False),
        ("sha256::a", ["sha256::b"], True),
        ("sha256::a", ["sha256::a", "SKIP"], True),
        (None, [], False),
        ("", [], False),
        (None, ["SKIP"], True),
        ("SKIP", ["SKIP", "SKIP"], True),
        ("sha256::a sha256::a", ["sha256::a"], True),
        ("SKIP sha256::a SKIP", ["SKIP", "SKIP", "sha256::a"], False),
    ],
)
def test_field_changed(old, new, expected):
    assert field_changed(old, new) is expected


def test_changed_fields_reports_each_differing_field():
    context = {"CHKSUMS": "SKIP sha256::a", "CHKSUMS__amd64": "sha256::x"}
    new_fields = {
        "CHKSUMS": ["sha256::a", "SKIP"],
        "CHKSUMS__amd64": ["sha256::y"],
        "CHKSUMS__arm64": ["SKIP"],
    }

    assert changed_fields(context, new_fields) == ["CHKSUMS__amd64", "CHKSUMS__arm64"]
    assert detect_changes(context, new_fields) is True


def test_detect_changes_without_changes():
    assert detect_changes({"CHKSUMS": "SKIP"}, {"CHKSUMS": ["SKIP"]}) is False


def test_merge_context_overwrites_checksum_fields_only():
    context = {"VER": "1", "CHKSUMS": "SKIP"}

    merged = merge_context(context, {"CHKSUMS": ["sha256::a", "SKIP"]})

    assert merged == {"VER": "1", "CHKSUMS": "sha256::a SKIP"}
    assert context["CHKSUMS"] == "SKIP"
