"""Runtime configuration for checksum refresh runs.

Settings are expressed as pydantic models so that values coming from the
command line, environment variables, or direct API callers share a single
validation path.  Environment overrides use the ``ABBS_CHECKSUM_`` prefix and
are applied once when the memoised default configuration is built.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

__all__ = [
    "DEFAULT_FIELD_FAMILIES",
    "DEFAULT_USER_AGENT",
    "DEFAULT_VCS_TRANSPORTS",
    "ChecksumUpdateConfiguration",
    "EnvironmentOverrides",
    "LoggingConfiguration",
    "build_config",
    "get_default_config",
    "invalidate_default_config_cache",
]

DEFAULT_USER_AGENT = "curl/8.10.0"
DEFAULT_VCS_TRANSPORTS = ("git", "bzr", "svn", "hg", "bk")
DEFAULT_REGISTRY_TRANSPORTS = ("pypi",)
DEFAULT_FIELD_FAMILIES = {"SRCS": "CHKSUMS", "SOURCES": "CHECKSUMS"}
SUPPORTED_ALGORITHMS = frozenset({"md5", "sha1", "sha256", "sha512"})

_DEFAULT_CONFIG_CACHE: Optional["ChecksumUpdateConfiguration"] = None
_DEFAULT_CONFIG_LOCK = threading.Lock()


class LoggingConfiguration(BaseModel):
    """Logging-related configuration for checksum refresh runs."""

    level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_dir: Optional[Path] = Field(default=None, description="Directory for JSON log files")
    max_log_size_mb: int = Field(default=10, gt=0, description="Maximum size of rotated log files")
    backup_count: int = Field(default=3, ge=0, description="Number of rotated files to keep")

    @field_validator("level")
    @classmethod
    def validate_level(cls, value: str) -> str:
        """Normalise logging levels and ensure they match the supported set."""

        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR"}
        upper = value.upper()
        if upper not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")
        return upper

    model_config = {"validate_assignment": True}


class ChecksumUpdateConfiguration(BaseModel):
    """Network, hashing, and patching options for a refresh run."""

    max_concurrency: int = Field(default=4, ge=1, le=64)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    connect_timeout_sec: float = Field(default=10.0, gt=0.0, le=300.0)
    read_timeout_sec: float = Field(default=60.0, gt=0.0, le=3600.0)
    follow_redirects: bool = Field(default=True)
    chunk_size: int = Field(default=64 * 1024, ge=1024, le=16 * 1024 * 1024)
    hash_algorithm: str = Field(default="sha256")
    pypi_base_url: str = Field(default="https://pypi.org/pypi")
    vcs_transports: List[str] = Field(default_factory=lambda: list(DEFAULT_VCS_TRANSPORTS))
    registry_transports: List[str] = Field(
        default_factory=lambda: list(DEFAULT_REGISTRY_TRANSPORTS)
    )
    field_families: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_FIELD_FAMILIES),
        description="Mapping of source field name to checksum field name",
    )
    allow_lenient_parse: bool = Field(
        default=False,
        description="Fall back to naive KEY=value splitting when the recipe fails to parse",
    )
    append_missing_fields: bool = Field(
        default=False,
        description="Append checksum fields that are absent from the recipe instead of failing",
    )
    logging: LoggingConfiguration = Field(default_factory=LoggingConfiguration)

    @field_validator("hash_algorithm")
    @classmethod
    def validate_algorithm(cls, value: str) -> str:
        """Restrict hashing to algorithms understood by ABBS."""

        candidate = value.strip().lower()
        if candidate not in SUPPORTED_ALGORITHMS:
            raise ValueError(f"unsupported checksum algorithm '{candidate}'")
        return candidate

    @field_validator("vcs_transports", "registry_transports")
    @classmethod
    def lower_transports(cls, value: List[str]) -> List[str]:
        return [item.strip().lower() for item in value if item.strip()]

    @field_validator("pypi_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    model_config = {"validate_assignment": True, "extra": "ignore"}

    def checksum_field_for(self, source_field: str) -> Optional[str]:
        """Return the checksum field paired with ``source_field``.

        ``SRCS`` maps to ``CHKSUMS`` and ``SRCS__amd64`` to ``CHKSUMS__amd64``;
        names outside the configured families return ``None``.
        """

        base, sep, arch = source_field.partition("__")
        target = self.field_families.get(base)
        if target is None:
            return None
        if sep and not arch:
            return None
        return f"{target}__{arch}" if sep else target

    def is_source_field(self, name: str) -> bool:
        return self.checksum_field_for(name) is not None


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing environment-derived overrides."""

    max_concurrency: Optional[int] = Field(default=None, alias="ABBS_CHECKSUM_MAX_CONCURRENCY")
    user_agent: Optional[str] = Field(default=None, alias="ABBS_CHECKSUM_USER_AGENT")
    connect_timeout_sec: Optional[float] = Field(
        default=None, alias="ABBS_CHECKSUM_CONNECT_TIMEOUT_SEC"
    )
    read_timeout_sec: Optional[float] = Field(default=None, alias="ABBS_CHECKSUM_READ_TIMEOUT_SEC")
    hash_algorithm: Optional[str] = Field(default=None, alias="ABBS_CHECKSUM_HASH_ALGORITHM")
    pypi_base_url: Optional[str] = Field(default=None, alias="ABBS_CHECKSUM_PYPI_BASE_URL")
    log_level: Optional[str] = Field(default=None, alias="ABBS_CHECKSUM_LOG_LEVEL")
    log_dir: Optional[Path] = Field(default=None, alias="ABBS_CHECKSUM_LOG_DIR")

    model_config = SettingsConfigDict(
        env_prefix="ABBS_CHECKSUM_", case_sensitive=False, extra="ignore"
    )


def _apply_env_overrides(config: ChecksumUpdateConfiguration) -> None:
    """Mutate ``config`` in-place using values from :class:`EnvironmentOverrides`."""

    env = EnvironmentOverrides()
    logger = logging.getLogger(__name__)

    for name in (
        "max_concurrency",
        "user_agent",
        "connect_timeout_sec",
        "read_timeout_sec",
        "hash_algorithm",
        "pypi_base_url",
    ):
        value = getattr(env, name)
        if value is not None:
            setattr(config, name, value)
            logger.info("Config overridden: %s=%s", name, value, extra={"stage": "config"})
    if env.log_level is not None:
        config.logging.level = env.log_level
        logger.info("Config overridden: log_level=%s", env.log_level, extra={"stage": "config"})
    if env.log_dir is not None:
        config.logging.log_dir = env.log_dir
        logger.info("Config overridden: log_dir=%s", env.log_dir, extra={"stage": "config"})


def _format_validation_error(exc: PydanticValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = " -> ".join(str(part) for part in error["loc"])
        messages.append(f"{location}: {error['msg']}")
    return "; ".join(messages)


def build_config(**overrides: object) -> ChecksumUpdateConfiguration:
    """Build a configuration from defaults, environment, and explicit overrides.

    Explicit keyword overrides win over environment variables. ``None`` values
    are ignored so CLI options that were not supplied do not mask defaults.
    """

    try:
        config = ChecksumUpdateConfiguration()
        _apply_env_overrides(config)
        for key, value in overrides.items():
            if value is None:
                continue
            if not hasattr(config, key):
                raise ConfigError(f"unknown configuration option '{key}'")
            setattr(config, key, value)
    except PydanticValidationError as exc:
        raise ConfigError(f"invalid configuration: {_format_validation_error(exc)}") from exc
    return config


def get_default_config(*, copy: bool = False) -> ChecksumUpdateConfiguration:
    """Return a memoised :class:`ChecksumUpdateConfiguration` built from defaults."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        if _DEFAULT_CONFIG_CACHE is None:
            _DEFAULT_CONFIG_CACHE = build_config()
        cached = _DEFAULT_CONFIG_CACHE
    if copy:
        return cached.model_copy(deep=True)
    return cached


def invalidate_default_config_cache() -> None:
    """Invalidate the cached default configuration."""

    global _DEFAULT_CONFIG_CACHE  # noqa: PLW0603

    with _DEFAULT_CONFIG_LOCK:
        _DEFAULT_CONFIG_CACHE = None
