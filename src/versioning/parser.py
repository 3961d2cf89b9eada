"""Version string parsing utilities built on semantic_version.

Upstream charts are not always strict about semver, so parsing is lenient
about a leading ``v`` and missing minor/patch components, the way Helm's own
tooling is.
"""

import re
from typing import Optional, Tuple

import semantic_version

from constants import Constants
from common.errors import MalformedVersionError
from .models import StoredVersion, TrackedLine

_REVISION_RE = re.compile(r"[+.](" + re.escape(Constants.REVISION_MARKER) + r"\d+)$")


def parse_version(raw: str) -> semantic_version.Version:
    """Parse ``raw`` into a Version.

    Raises:
        MalformedVersionError: If ``raw`` is not a usable version string.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedVersionError(str(raw), "empty version")
    s = raw.strip()
    if s[:1] in ("v", "V"):
        s = s[1:]
    try:
        return semantic_version.Version(s)
    except ValueError:
        pass
    try:
        return semantic_version.Version.coerce(s)
    except ValueError as exc:
        raise MalformedVersionError(raw, str(exc)) from exc


def normalize_version(raw: str) -> str:
    """Return the canonical string form of ``raw``."""
    return str(parse_version(raw))


def precedence(version: semantic_version.Version) -> semantic_version.Version:
    """Drop build metadata so comparisons follow semver precedence only."""
    return version.truncate("prerelease")


def release_line(version: semantic_version.Version) -> Tuple[int, int]:
    return (version.major, version.minor)


def is_prerelease(version: semantic_version.Version) -> bool:
    return bool(version.prerelease)


def split_revision(raw: str) -> Tuple[str, Optional[str]]:
    """Split a stored version string into (upstream version, revision suffix)."""
    match = _REVISION_RE.search(raw.strip())
    if not match:
        return raw.strip(), None
    return raw.strip()[:match.start()], raw.strip()[match.start():]


def strip_revision(raw: str) -> str:
    """Remove any package revision suffix from ``raw``."""
    return split_revision(raw)[0]


def generate_package_version(upstream_version: str, revision: int) -> str:
    """Append package revision ``revision`` to ``upstream_version``.

    The revision is semver build metadata, so it never changes precedence:
    ``1.2.3`` becomes ``1.2.3+pkg1`` and ``1.2.3+k3s1`` becomes ``1.2.3+k3s1.pkg1``.

    Raises:
        MalformedVersionError: If ``upstream_version`` does not parse.
        ValueError: If ``revision`` is not a positive integer.
    """
    if not isinstance(revision, int) or revision < 1:
        raise ValueError(f"package revision must be a positive integer, got {revision!r}")
    base = strip_revision(normalize_version(upstream_version))
    separator = "." if "+" in base else "+"
    return f"{base}{separator}{Constants.REVISION_MARKER}{revision}"


def parse_stored_version(raw: str, created_at=None) -> StoredVersion:
    """Build a StoredVersion, extracting its revision suffix."""
    _, suffix = split_revision(raw)
    return StoredVersion(version=raw.strip(), created_at=created_at, revision_suffix=suffix)


def parse_tracked_line(raw) -> TrackedLine:
    """Parse a TrackVersions entry such as ``"1.2"`` or ``"1.2.0"``.

    YAML turns an unquoted ``1.2`` into a float, so numbers are accepted too.
    """
    version = parse_version(str(raw))
    return TrackedLine(major=version.major, minor=version.minor)
