"""Data models for upstream version selection."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from common.errors import ConfigError


class FetchMode(Enum):
    """How many non-stored versions are selected per scope."""
    LATEST = "latest"
    NEWER = "newer"
    ALL = "all"

    @classmethod
    def from_config(cls, value: Optional[str]) -> "FetchMode":
        """Parse the ``Fetch`` field of upstream.yaml; empty means LATEST."""
        raw = (value or "").strip().lower()
        if not raw:
            return cls.LATEST
        try:
            return cls(raw)
        except ValueError as exc:
            raise ConfigError(f"unknown fetch mode {value!r} (expected latest, newer or all)") from exc


@dataclass(frozen=True)
class TrackedLine:
    """A (major, minor) release line an operator wants continuous coverage of."""
    major: int
    minor: int

    @property
    def key(self) -> Tuple[int, int]:
        return (self.major, self.minor)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class UpstreamVersion:
    """One chart version as published by upstream."""
    name: str
    version: str
    source_urls: Tuple[str, ...] = ()
    created_at: Optional[datetime] = None
    # Raw index entry, kept so fetchers can read fields such as digest.
    extra: dict = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class StoredVersion:
    """A version already persisted in the repository index."""
    version: str
    created_at: Optional[datetime] = None
    revision_suffix: Optional[str] = None
