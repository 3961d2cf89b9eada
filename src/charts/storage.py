"""Chart persistence under ``assets/`` (archives) and ``charts/`` (unpacked).

Layout for package ``<vendor>/<name>``:

* ``assets/<vendor>/<name>-<version>.tgz``
* ``charts/<vendor>/<name>/<version>/``
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Iterable, List, Protocol

from constants import Constants
from common.errors import MalformedVersionError, ReadError, WriteError
from common.logging_utils import extra_context, is_debug_enabled
from versioning.parser import parse_version, precedence
from . import archive
from .models import Chart, ChartWrapper

logger = logging.getLogger(__name__)


class ChartStorage(Protocol):
    """Operations the reconciler may issue against durable storage."""

    def exists(self, path: Path) -> bool:
        ...

    def listdir(self, path: Path) -> List[str]:
        ...

    def read_archive(self, path: Path) -> Chart:
        ...

    def write_archive(self, chart: Chart, directory: Path) -> Path:
        ...

    def unpack(self, archive_path: Path, dest_dir: Path) -> None:
        ...

    def remove_all(self, path: Path) -> None:
        ...


class FilesystemStorage:
    """ChartStorage backed by the local filesystem."""

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def listdir(self, path: Path) -> List[str]:
        """Entry names in ``path``; a missing directory is empty."""
        try:
            return sorted(p.name for p in Path(path).iterdir())
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise ReadError(f"failed to read dir {path}: {exc}") from exc

    def read_archive(self, path: Path) -> Chart:
        return archive.load_archive(path)

    def write_archive(self, chart: Chart, directory: Path) -> Path:
        return archive.save_archive(chart, directory)

    def unpack(self, archive_path: Path, dest_dir: Path) -> None:
        archive.unpack_archive(archive_path, dest_dir)

    def remove_all(self, path: Path) -> None:
        target = Path(path)
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            elif target.exists() or target.is_symlink():
                target.unlink()
        except OSError as exc:
            raise WriteError(f"failed to remove {target}: {exc}") from exc


def assets_dir(repo_root: Path, vendor: str) -> Path:
    return Path(repo_root) / Constants.ASSETS_DIR / vendor


def charts_dir(repo_root: Path, vendor: str, name: str) -> Path:
    return Path(repo_root) / Constants.CHARTS_DIR / vendor / name


def _version_key(version: str):
    try:
        return (1, precedence(parse_version(version)))
    except MalformedVersionError:
        return (0, None)


def sort_newest_first(wrappers: Iterable[ChartWrapper]) -> List[ChartWrapper]:
    """Sort charts by semver precedence, newest first; unparseable versions last."""
    wrappers = list(wrappers)
    parsed = [w for w in wrappers if _version_key(w.version)[0]]
    unparsed = [w for w in wrappers if not _version_key(w.version)[0]]
    parsed.sort(key=lambda w: _version_key(w.version)[1], reverse=True)
    return parsed + unparsed


def _stored_archives(storage: ChartStorage, repo_root: Path, vendor: str, name: str):
    """Yield (path, chart) for every archive of chart ``name`` in the vendor's assets."""
    directory = assets_dir(repo_root, vendor)
    prefix = f"{name}-"
    for entry in storage.listdir(directory):
        if not (entry.startswith(prefix) and entry.endswith(".tgz")):
            continue
        path = directory / entry
        chart = storage.read_archive(path)
        # <name>-*.tgz also matches charts like <name>-operator.
        if chart.name != name:
            continue
        yield path, chart


def load_existing_charts(storage: ChartStorage, repo_root: Path, vendor: str, name: str) -> List[ChartWrapper]:
    """Load the stored charts of ``<vendor>/<name>``, newest first, all unmodified.

    Raises:
        ReadError: If a stored archive cannot be read.
    """
    wrappers = [ChartWrapper(chart) for _, chart in _stored_archives(storage, repo_root, vendor, name)]
    return sort_newest_first(wrappers)


def prune_stale(storage: ChartStorage, repo_root: Path, vendor: str, name: str, keep_versions) -> List[Path]:
    """Remove stored archives and unpacked directories whose version is not kept."""
    keep = set(keep_versions)
    removed: List[Path] = []
    for path, chart in list(_stored_archives(storage, repo_root, vendor, name)):
        if chart.version not in keep:
            storage.remove_all(path)
            removed.append(path)
    unpacked_root = charts_dir(repo_root, vendor, name)
    for entry in storage.listdir(unpacked_root):
        if entry not in keep:
            storage.remove_all(unpacked_root / entry)
            removed.append(unpacked_root / entry)
    for path in removed:
        logger.info("Removed stale %s", path)
    return removed


def write_charts(
    storage: ChartStorage,
    repo_root: Path,
    vendor: str,
    name: str,
    wrappers: List[ChartWrapper],
) -> List[Path]:
    """Make storage for ``<vendor>/<name>`` reflect exactly ``wrappers``.

    Charts not in ``wrappers`` are pruned first. Then every chart that is
    modified, or missing on disk, is written as an archive and unpacked.
    Untouched charts are left byte-identical. Returns the paths that changed.

    The prune and write steps are not atomic: a failure part-way leaves the
    package partially pruned.
    """
    changed = prune_stale(storage, repo_root, vendor, name, (w.version for w in wrappers))
    archive_dir = assets_dir(repo_root, vendor)
    unpacked_root = charts_dir(repo_root, vendor, name)

    for wrapper in wrappers:
        archive_path = archive_dir / archive.tgz_filename(wrapper.chart)
        if wrapper.modified or not storage.exists(archive_path):
            archive_path = storage.write_archive(wrapper.chart, archive_dir)
            changed.append(archive_path)

        unpacked_path = unpacked_root / wrapper.version
        if wrapper.modified or not storage.exists(unpacked_path):
            storage.remove_all(unpacked_path)
            storage.unpack(archive_path, unpacked_path)
            changed.append(unpacked_path)

    if is_debug_enabled(logger):
        logger.debug(
            "Wrote charts",
            extra=extra_context(
                event="storage_write",
                component="storage",
                action="write_charts",
                target=f"{vendor}/{name}",
                count=len(changed)
            )
        )
    return changed
