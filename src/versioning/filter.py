"""Selection of upstream chart versions that must be fetched.

Given what upstream publishes, what is already stored, the tracked release
lines and the fetch mode, decide which versions to pull in. The scans that
stop early rely on newest-first ordering, so both inputs are sorted by
semver precedence here rather than trusting the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import semantic_version

from common.errors import EmptyUpstreamError, MalformedVersionError
from common.logging_utils import extra_context, is_debug_enabled
from .models import FetchMode, StoredVersion, TrackedLine, UpstreamVersion
from .parser import is_prerelease, parse_version, precedence, release_line, strip_revision

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Parsed:
    """A version paired with its parsed form; ``item`` is the caller's object."""
    item: object
    version: semantic_version.Version

    @property
    def canonical(self) -> str:
        return str(self.version)


def _parse_upstream(versions: Iterable[UpstreamVersion]) -> List[_Parsed]:
    parsed = []
    for uv in versions:
        try:
            parsed.append(_Parsed(uv, parse_version(uv.version)))
        except MalformedVersionError as exc:
            logger.error("Skipping upstream version of %s: %s", uv.name, exc)
    return parsed


def _parse_stored(versions: Iterable[StoredVersion]) -> List[_Parsed]:
    parsed = []
    for sv in versions:
        try:
            parsed.append(_Parsed(sv, parse_version(strip_revision(sv.version))))
        except MalformedVersionError as exc:
            logger.error("Skipping stored version: %s", exc)
    return parsed


def _sorted_newest_first(parsed: List[_Parsed], label: str) -> List[_Parsed]:
    ordered = sorted(parsed, key=lambda p: precedence(p.version), reverse=True)
    if ordered != parsed and is_debug_enabled(logger):
        logger.debug(
            "Input was not sorted newest-first; sorted it",
            extra=extra_context(event="decision", component="version_filter", action="sort", target=label)
        )
    return ordered


def strip_prerelease(versions: Sequence[UpstreamVersion]) -> List[UpstreamVersion]:
    """Drop every version carrying a prerelease qualifier (and unparseable ones)."""
    return [p.item for p in _parse_upstream(versions) if not is_prerelease(p.version)]


def latest_tracked(tracked: Sequence[TrackedLine]) -> Optional[TrackedLine]:
    if not tracked:
        return None
    return max(tracked, key=lambda line: line.key)


def _newer_untracked(tracked: Sequence[TrackedLine], upstream: List[_Parsed]) -> List[str]:
    newest_line = latest_tracked(tracked)
    if newest_line is None:
        return []
    newer = []
    for p in upstream:
        line = release_line(p.version)
        if line > newest_line.key:
            newer.append(p.canonical)
        elif line == newest_line.key:
            break
    return newer


def check_newer_untracked(tracked: Sequence[TrackedLine], upstream: Sequence[UpstreamVersion]) -> List[str]:
    """Return upstream versions on release lines newer than the newest tracked line.

    Advisory only: callers surface this as a warning and never let it gate
    fetching.
    """
    parsed = [p for p in _parse_upstream(upstream) if not is_prerelease(p.version)]
    return _newer_untracked(tracked, _sorted_newest_first(parsed, "upstream"))


def collect_tracked_versions(
    versions: List[_Parsed], tracked: Sequence[TrackedLine]
) -> Dict[TrackedLine, List[_Parsed]]:
    """Bucket newest-first ``versions`` per tracked line.

    Each bucket's scan halts at the first version below its line; on a
    newest-first list nothing after that point can belong to the line.
    """
    buckets: Dict[TrackedLine, List[_Parsed]] = {}
    for line in tracked:
        bucket = []
        for p in versions:
            version_line = release_line(p.version)
            if version_line == line.key:
                bucket.append(p)
            elif version_line < line.key:
                break
        buckets[line] = bucket
    return buckets


def collect_non_stored_versions(
    versions: List[_Parsed], stored: List[_Parsed], mode: FetchMode
) -> List[UpstreamVersion]:
    """Apply ``mode`` to one newest-first bucket against its stored versions."""
    stored_canonical = {p.canonical for p in stored}
    if not versions:
        return []

    if mode == FetchMode.LATEST:
        newest = versions[0]
        if newest.canonical in stored_canonical:
            logger.debug("Latest version %s already stored", newest.canonical)
            return []
        return [newest.item]

    if mode == FetchMode.NEWER:
        if not stored:
            return [p.item for p in versions]
        stored_latest = precedence(stored[0].version)
        selected = []
        for p in versions:
            if precedence(p.version) > stored_latest:
                logger.debug("Version %s > %s", p.canonical, stored[0].canonical)
                selected.append(p.item)
        return selected

    return [p.item for p in versions if p.canonical not in stored_canonical]


def select_versions_to_fetch(
    upstream: Sequence[UpstreamVersion],
    stored: Sequence[StoredVersion],
    tracked: Sequence[TrackedLine],
    mode: FetchMode,
    package_name: Optional[str] = None,
) -> List[UpstreamVersion]:
    """Return the upstream versions that must be fetched, in bucket order.

    ``package_name`` labels log lines and errors; it defaults to the upstream
    chart name.

    Raises:
        EmptyUpstreamError: If no non-prerelease upstream version remains.
    """
    name = package_name or (upstream[0].name if upstream else "<unknown>")
    logger.debug("Filtering versions for %s", name)

    kept = strip_prerelease(upstream)
    if not kept:
        raise EmptyUpstreamError(
            f"{name}: no versions available in upstream or all versions are marked pre-release"
        )
    candidates = _sorted_newest_first(_parse_upstream(kept), "upstream")
    stored_parsed = _sorted_newest_first(_parse_stored(stored), "stored")

    # Duplicate lines would fetch the same versions twice.
    lines: List[TrackedLine] = list(dict.fromkeys(tracked))

    if lines:
        newer = check_newer_untracked(lines, kept)
        if newer:
            logger.warning("Newer untracked version available: %s (%s)", name, ", ".join(newer))
        else:
            logger.debug("No newer untracked versions found")

        upstream_buckets = collect_tracked_versions(candidates, lines)
        stored_buckets = collect_tracked_versions(stored_parsed, lines)
        scopes: List[Tuple[List[_Parsed], List[_Parsed]]] = [
            (upstream_buckets[line], stored_buckets[line]) for line in lines
        ]
    else:
        scopes = [(candidates, stored_parsed)]

    selected: List[UpstreamVersion] = []
    for bucket, stored_bucket in scopes:
        selected.extend(collect_non_stored_versions(bucket, stored_bucket, mode))

    if is_debug_enabled(logger):
        logger.debug(
            "Selected versions to fetch",
            extra=extra_context(
                event="decision",
                component="version_filter",
                action="select",
                target=name,
                mode=mode.value,
                count=len(selected)
            )
        )
    return selected
