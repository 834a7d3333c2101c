"""Shared fixtures for checksum refresh tests."""

from __future__ import annotations

import logging

import pytest

from AbbsTools.ChecksumUpdate.logging_utils import LOGGER_NAME
from AbbsTools.ChecksumUpdate.settings import (
    ChecksumUpdateConfiguration,
    invalidate_default_config_cache,
)
from AbbsTools.ChecksumUpdate.testing import FakeMirror

_ENV_VARS = (
    "ABBS_CHECKSUM_MAX_CONCURRENCY",
    "ABBS_CHECKSUM_USER_AGENT",
    "ABBS_CHECKSUM_CONNECT_TIMEOUT_SEC",
    "ABBS_CHECKSUM_READ_TIMEOUT_SEC",
    "ABBS_CHECKSUM_HASH_ALGORITHM",
    "ABBS_CHECKSUM_PYPI_BASE_URL",
    "ABBS_CHECKSUM_LOG_LEVEL",
    "ABBS_CHECKSUM_LOG_DIR",
)


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    invalidate_default_config_cache()
    yield
    invalidate_default_config_cache()


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_abbs_managed", False):
            logger.removeHandler(handler)
            handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture
def config() -> ChecksumUpdateConfiguration:
    return ChecksumUpdateConfiguration()
