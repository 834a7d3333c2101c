"""Tests for configuration models and environment overrides."""

from __future__ import annotations

import pytest

from AbbsTools.ChecksumUpdate.errors import ConfigError
from AbbsTools.ChecksumUpdate.settings import (
    ChecksumUpdateConfiguration,
    build_config,
    get_default_config,
    invalidate_default_config_cache,
)


def test_defaults(config):
    assert config.max_concurrency == 4
    assert config.user_agent == "curl/8.10.0"
    assert config.hash_algorithm == "sha256"
    assert config.field_families == {"SRCS": "CHKSUMS", "SOURCES": "CHECKSUMS"}
    assert config.allow_lenient_parse is False
    assert config.append_missing_fields is False


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("SRCS", "CHKSUMS"),
        ("SRCS__amd64", "CHKSUMS__amd64"),
        ("SOURCES__loongarch64", "CHECKSUMS__loongarch64"),
        ("SRCS__", None),
        ("CHKSUMS", None),
        ("VER", None),
    ],
)
def test_checksum_field_for(config, source, expected):
    assert config.checksum_field_for(source) == expected
    assert config.is_source_field(source) is (expected is not None)


def test_custom_field_families():
    config = ChecksumUpdateConfiguration(field_families={"DISTFILES": "DIGESTS"})

    assert config.checksum_field_for("DISTFILES__arm64") == "DIGESTS__arm64"
    assert config.checksum_field_for("SRCS") is None


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("ABBS_CHECKSUM_MAX_CONCURRENCY", "7")
    monkeypatch.setenv("ABBS_CHECKSUM_USER_AGENT", "abbs-test/1.0")
    monkeypatch.setenv("ABBS_CHECKSUM_LOG_LEVEL", "debug")

    config = build_config()

    assert config.max_concurrency == 7
    assert config.user_agent == "abbs-test/1.0"
    assert config.logging.level == "DEBUG"


def test_explicit_overrides_win_over_environment(monkeypatch):
    monkeypatch.setenv("ABBS_CHECKSUM_MAX_CONCURRENCY", "7")

    assert build_config(max_concurrency=2).max_concurrency == 2
    assert build_config(max_concurrency=None).max_concurrency == 7


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_concurrency": 0},
        {"hash_algorithm": "crc32"},
        {"read_timeout_sec": -1},
        {"no_such_option": True},
    ],
)
def test_invalid_overrides(overrides):
    with pytest.raises(ConfigError):
        build_config(**overrides)


def test_invalid_environment_value(monkeypatch):
    monkeypatch.setenv("ABBS_CHECKSUM_HASH_ALGORITHM", "crc32")

    with pytest.raises(ConfigError, match="hash_algorithm"):
        build_config()


def test_normalisation():
    config = build_config(
        hash_algorithm=" SHA512 ",
        pypi_base_url="https://pypi.internal/pypi/",
        vcs_transports=["GIT", " ", "Fossil"],
    )

    assert config.hash_algorithm == "sha512"
    assert config.pypi_base_url == "https://pypi.internal/pypi"
    assert config.vcs_transports == ["git", "fossil"]


def test_default_config_is_memoised(monkeypatch):
    first = get_default_config()

    assert get_default_config() is first
    assert get_default_config(copy=True) is not first

    monkeypatch.setenv("ABBS_CHECKSUM_MAX_CONCURRENCY", "9")
    invalidate_default_config_cache()

    assert get_default_config().max_concurrency == 9
