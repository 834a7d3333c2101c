"""Tests for source token classification and checksum tokens."""

from __future__ import annotations

import pytest

from AbbsTools.ChecksumUpdate.entries import (
    DEFAULT_TRANSPORT,
    ChecksumEntry,
    classify_field,
    classify_token,
)
from AbbsTools.ChecksumUpdate.errors import ConfigError


def test_tarball_token():
    entry = classify_token(
        "tbl::https://download.kde.org/kiconthemes-5.115.0.tar.xz", field="SRCS", position=0
    )

    assert entry.transport == "tbl"
    assert entry.locator == "https://download.kde.org/kiconthemes-5.115.0.tar.xz"
    assert entry.options == {}
    assert entry.needs_fetch
    assert not entry.is_registry


def test_bare_url_defaults_to_tarball_transport():
    entry = classify_token("https://example.org/a.tar.gz", field="SRCS", position=3)

    assert entry.transport == DEFAULT_TRANSPORT
    assert entry.locator == "https://example.org/a.tar.gz"
    assert entry.position == 3


def test_vcs_token_with_options():
    entry = classify_token(
        "GIT::commit=tags/v3.113::https://github.com/lxgw/kose-font",
        field="SRCS",
        position=0,
    )

    assert entry.transport == "git"
    assert entry.is_vcs
    assert not entry.needs_fetch
    assert entry.options == {"commit": "tags/v3.113"}
    assert entry.locator == "https://github.com/lxgw/kose-font"


def test_file_token_keeps_rename_option():
    entry = classify_token(
        "file::rename=XiaolaiSC-Regular.ttf::https://example.org/XiaolaiSC-Regular.ttf",
        field="SRCS",
        position=1,
    )

    assert entry.transport == "file"
    assert entry.options == {"rename": "XiaolaiSC-Regular.ttf"}
    assert entry.needs_fetch


def test_custom_vcs_transport_set():
    entry = classify_token("tbl::https://x.org/a", field="SRCS", position=0, vcs_transports=["tbl"])

    assert entry.is_vcs


def test_registry_token_requires_version():
    entry = classify_token("pypi::version=1.0::requests", field="SRCS", position=0)

    assert entry.is_registry
    assert entry.options["version"] == "1.0"
    assert entry.locator == "requests"

    with pytest.raises(ConfigError, match="version="):
        classify_token("pypi::requests", field="SRCS", position=0)


def test_empty_locator_is_rejected():
    with pytest.raises(ConfigError, match="no locator"):
        classify_token("tbl::", field="SRCS", position=0)


def test_classify_field_assigns_dense_positions():
    entries = classify_field(
        "SRCS__amd64",
        "tbl::https://x.org/a.tar.gz\n   git::commit=v1::https://x.org/r  file::https://x.org/b",
    )

    assert [entry.position for entry in entries] == [0, 1, 2]
    assert all(entry.field == "SRCS__amd64" for entry in entries)


def test_classify_field_of_parsed_value():
    entries = classify_field("SRCS", "tbl::https://x.org/a.tar.gz   git::https://x.org/r")

    assert [(entry.position, entry.transport) for entry in entries] == [(0, "tbl"), (1, "git")]


@pytest.mark.parametrize(
    ("token", "expected"),
    [
        ("SKIP", "SKIP"),
        ("sha256::ABCDEF", "sha256::abcdef"),
        ("SHA512::00ff", "sha512::00ff"),
    ],
)
def test_checksum_entry_round_trip(token, expected):
    assert str(ChecksumEntry.parse(token)) == expected


def test_checksum_entry_skip():
    assert ChecksumEntry.parse("SKIP").is_skip
    assert not ChecksumEntry.hashed("sha256", "ab").is_skip


@pytest.mark.parametrize("token", ["sha256", "sha256::", "::abc"])
def test_checksum_entry_rejects_malformed(token):
    with pytest.raises(ConfigError):
        ChecksumEntry.parse(token)
