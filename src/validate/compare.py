"""Equivalence checks between chart archives and between directory trees.

Used to verify that what the repository stores matches what a reference copy
holds. Fields chartsync manages itself (reserved-namespace annotations and
the ``deprecated`` flag) are expected to drift and are ignored.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from constants import Constants
from common.errors import ReadError
from charts.annotations import is_reserved
from charts.archive import decode_chart_yaml, read_members

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


@dataclass
class DirectoryComparison:
    """Paths (rooted at the candidate tree) that differ between two trees."""
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)

    def merge(self, other: "DirectoryComparison") -> None:
        self.added.extend(other.added)
        self.removed.extend(other.removed)
        self.modified.extend(other.modified)

    @property
    def is_clean(self) -> bool:
        return not (self.added or self.removed or self.modified)


def normalize_chart_yaml(data: Dict[str, Any]) -> Dict[str, Any]:
    """Drop the fields excluded from equivalence from a decoded Chart.yaml."""
    normalized = dict(data)
    normalized.pop(Constants.DEPRECATED_FIELD, None)
    annotations = normalized.pop("annotations", None)
    if isinstance(annotations, dict):
        kept = {k: v for k, v in annotations.items() if not is_reserved(str(k))}
        if kept:
            normalized["annotations"] = kept
    return normalized


def _read(path: PathLike) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise ReadError(f"failed to read {path}: {exc}") from exc


def artifacts_equivalent(a: PathLike, b: PathLike) -> bool:
    """Return True if two chart archives hold the same chart.

    Every member must be byte-identical except the Chart.yaml files, which are
    compared after dropping reserved-namespace annotations and ``deprecated``.

    Raises:
        ReadError: If either archive cannot be read or decoded.
    """
    members_a = read_members(_read(a), str(a))
    members_b = read_members(_read(b), str(b))

    if set(members_a) != set(members_b):
        logger.debug(
            "File sets differ: only in %s: %s; only in %s: %s",
            a, sorted(set(members_a) - set(members_b)),
            b, sorted(set(members_b) - set(members_a)),
        )
        return False

    for name in sorted(members_a):
        data_a, data_b = members_a[name], members_b[name]
        if data_a == data_b:
            continue
        if name.count("/") == 1 and name.endswith("/" + Constants.CHART_FILE):
            meta_a = normalize_chart_yaml(decode_chart_yaml(data_a, f"{a}:{name}"))
            meta_b = normalize_chart_yaml(decode_chart_yaml(data_b, f"{b}:{name}"))
            if meta_a == meta_b:
                continue
        logger.debug("%s differs between %s and %s", name, a, b)
        return False
    return True


def _is_skipped(relative: str, skip_dirs: Iterable[str]) -> bool:
    parts = relative.split("/")
    prefixes = {"/".join(parts[:i]) for i in range(1, len(parts) + 1)}
    return any(s.strip("/") in prefixes for s in skip_dirs)


def _walk_files(root: Path, skip_dirs: List[str]) -> Dict[str, Path]:
    """Map relative POSIX paths to files under ``root``; a missing root is empty."""
    files: Dict[str, Path] = {}
    if not root.is_dir():
        return files
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        dirnames[:] = sorted(
            d for d in dirnames
            if not _is_skipped(d if rel_dir == "." else f"{rel_dir}/{d}", skip_dirs)
        )
        for filename in sorted(filenames):
            relative = filename if rel_dir == "." else f"{rel_dir}/{filename}"
            if _is_skipped(relative, skip_dirs):
                continue
            files[relative] = current / filename
    return files


def compare_directories(reference: PathLike, candidate: PathLike, skip_dirs: Iterable[str] = ()) -> DirectoryComparison:
    """Compare the file trees under ``reference`` and ``candidate``.

    Paths are reported joined onto ``candidate`` and sorted, so results are
    stable for a given input.

    Raises:
        ReadError: If a file present in both trees cannot be read.
    """
    skip = list(skip_dirs)
    reference_root, candidate_root = Path(reference), Path(candidate)
    reference_files = _walk_files(reference_root, skip)
    candidate_files = _walk_files(candidate_root, skip)

    comparison = DirectoryComparison()
    for relative in sorted(set(reference_files) | set(candidate_files)):
        reported = os.path.join(str(candidate_root), *relative.split("/"))
        if relative not in reference_files:
            comparison.added.append(reported)
        elif relative not in candidate_files:
            comparison.removed.append(reported)
        elif _read(reference_files[relative]) != _read(candidate_files[relative]):
            comparison.modified.append(reported)
    return comparison


def drop_equivalent_archives(comparison: DirectoryComparison, reference: PathLike, candidate: PathLike) -> DirectoryComparison:
    """Return ``comparison`` without modified chart archives that are equivalent.

    Archives are re-packed whenever chartsync writes them, so a byte
    difference in a ``.tgz`` is only drift if :func:`artifacts_equivalent`
    disagrees.
    """
    candidate_root = Path(candidate)
    reference_root = Path(reference)
    still_modified = []
    for reported in comparison.modified:
        path = Path(reported)
        if path.suffix == ".tgz":
            relative = path.relative_to(candidate_root)
            if artifacts_equivalent(reference_root / relative, path):
                logger.debug("%s differs only in managed fields", reported)
                continue
        still_modified.append(reported)
    return DirectoryComparison(
        added=list(comparison.added),
        removed=list(comparison.removed),
        modified=still_modified,
    )
