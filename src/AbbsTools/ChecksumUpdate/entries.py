"""Source-list mini-language and checksum token types.

A source field is a whitespace-separated list of tokens of the form
``[<transport>::][<key>=<value>::]*<locator>``.  Each token is classified into
a :class:`SourceEntry` that remembers its position in the field; the position
is what ties a computed checksum back to its slot in the checksum field.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .errors import ConfigError
from .settings import DEFAULT_REGISTRY_TRANSPORTS, DEFAULT_VCS_TRANSPORTS

__all__ = [
    "DEFAULT_TRANSPORT",
    "REGISTRY_VERSION_OPTION",
    "SKIP",
    "ChecksumEntry",
    "SourceEntry",
    "classify_field",
    "classify_token",
]

logger = logging.getLogger(__name__)

SKIP = "SKIP"
DEFAULT_TRANSPORT = "tbl"
SEPARATOR = "::"

REGISTRY_VERSION_OPTION = "version"


@dataclass(frozen=True)
class SourceEntry:
    """One classified token of a source field."""

    field: str
    position: int
    transport: str
    locator: str
    options: Dict[str, str] = field(default_factory=dict)
    is_vcs: bool = False
    is_registry: bool = False

    @property
    def needs_fetch(self) -> bool:
        """Return ``True`` when the entry can be verified by content hash."""

        return not self.is_vcs


@dataclass(frozen=True)
class ChecksumEntry:
    """Either ``SKIP`` or an ``<algorithm>::<hex digest>`` pair."""

    algorithm: Optional[str] = None
    digest: Optional[str] = None

    @classmethod
    def skip(cls) -> "ChecksumEntry":
        return cls()

    @classmethod
    def hashed(cls, algorithm: str, digest: str) -> "ChecksumEntry":
        return cls(algorithm=algorithm.lower(), digest=digest.lower())

    @classmethod
    def parse(cls, token: str) -> "ChecksumEntry":
        """Parse a serialised checksum token.

        Raises:
            ConfigError: If ``token`` is neither ``SKIP`` nor ``algo::hex``.
        """

        token = token.strip()
        if token == SKIP:
            return cls.skip()
        algorithm, sep, digest = token.partition(SEPARATOR)
        if not sep or not algorithm or not digest:
            raise ConfigError(f"malformed checksum token '{token}'")
        return cls.hashed(algorithm, digest)

    @property
    def is_skip(self) -> bool:
        return self.digest is None

    def __str__(self) -> str:
        if self.is_skip:
            return SKIP
        return f"{self.algorithm}{SEPARATOR}{self.digest}"


def classify_token(
    token: str,
    *,
    field: str,
    position: int,
    vcs_transports: Iterable[str] = DEFAULT_VCS_TRANSPORTS,
    registry_transports: Iterable[str] = DEFAULT_REGISTRY_TRANSPORTS,
) -> SourceEntry:
    """Classify a single source token.

    Examples:
        >>> entry = classify_token("git::commit=v1::https://x.org/r", field="SRCS", position=0)
        >>> entry.transport, entry.options, entry.is_vcs
        ('git', {'commit': 'v1'}, True)

    Raises:
        ConfigError: If the locator is empty or a mandatory option is absent.
    """

    segments = token.strip().split(SEPARATOR)
    locator = segments[-1].strip()
    if len(segments) == 1:
        transport = DEFAULT_TRANSPORT
    else:
        transport = segments[0].strip().lower() or DEFAULT_TRANSPORT

    options: Dict[str, str] = {}
    for segment in segments[1:-1]:
        key, sep, value = segment.partition("=")
        if sep and key:
            options[key.strip()] = value
        else:
            logger.debug(
                "ignoring source option without '='",
                extra={"stage": "classify", "field": field, "segment": segment},
            )

    if not locator:
        raise ConfigError(f"{field}: source #{position} '{token}' has no locator")

    vcs = {name.lower() for name in vcs_transports}
    registries = {name.lower() for name in registry_transports}
    if transport in registries and not options.get(REGISTRY_VERSION_OPTION):
        raise ConfigError(
            f"{field}: {transport} source '{token}' is missing required option"
            f" '{REGISTRY_VERSION_OPTION}='"
        )

    return SourceEntry(
        field=field,
        position=position,
        transport=transport,
        locator=locator,
        options=options,
        is_vcs=transport in vcs,
        is_registry=transport in registries,
    )


def classify_field(
    field: str,
    value: str,
    *,
    vcs_transports: Iterable[str] = DEFAULT_VCS_TRANSPORTS,
    registry_transports: Iterable[str] = DEFAULT_REGISTRY_TRANSPORTS,
) -> List[SourceEntry]:
    """Classify every token of a source field, preserving token order."""

    vcs = tuple(vcs_transports)
    registries = tuple(registry_transports)
    return [
        classify_token(
            token,
            field=field,
            position=position,
            vcs_transports=vcs,
            registry_transports=registries,
        )
        for position, token in enumerate(value.split())
    ]
